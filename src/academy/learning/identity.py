"""Identity link interface consumed by the completion gate and the issuance coordinator."""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IdentityStatus:
    has_identity: bool
    username: str | None = None


@dataclass(frozen=True)
class VerifiedIdentity:
    """What the provider round trip hands back to the learner's browser."""

    username: str
    external_id: str | None = None


def new_correlation_token() -> str:
    return secrets.token_urlsafe(16)


class IdentityLinkService(ABC):
    """Binds a wallet address to a verified external username."""

    @abstractmethod
    async def check(self, wallet: str) -> IdentityStatus:
        ...

    @abstractmethod
    async def initiate(self, wallet: str, correlation: str, return_to: str | None = None) -> str:
        """Start verification. Returns the URL the learner must visit."""
        ...

    @abstractmethod
    async def complete(self, wallet: str, identity: VerifiedIdentity) -> IdentityStatus:
        """Store the verified identity. Raises AlreadyProcessed if linked to someone else."""
        ...
