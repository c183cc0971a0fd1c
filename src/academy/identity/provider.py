"""
External identity provider abstraction.

GitHub OAuth is the only provider in use. The provider turns an OAuth
callback ``code`` into a verified (username, external id) pair; the link
itself is stored by the identity service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
import structlog

from academy.config import get_settings

logger = structlog.get_logger()

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105
GITHUB_USER_URL = "https://api.github.com/user"


@dataclass(frozen=True)
class ExternalIdentity:
    username: str
    external_id: str


class IdentityProviderError(Exception):
    """The provider refused the code or returned an unusable profile.

    ``reason`` is a short machine-readable tag used in error redirects.
    """

    def __init__(self, reason: str, message: str = "") -> None:
        super().__init__(message or reason)
        self.reason = reason


class IdentityProvider(ABC):
    """Abstract base class for OAuth identity providers."""

    name: str = ""

    @abstractmethod
    def authorize_url(self, state: str) -> str:
        """URL the learner is sent to in order to grant access."""
        ...

    @abstractmethod
    async def fetch_identity(self, code: str) -> ExternalIdentity:
        """Exchange a callback code for the verified identity."""
        ...


class GitHubProvider(IdentityProvider):
    """GitHub OAuth app, read:user scope."""

    name = "github"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def authorize_url(self, state: str) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": "read:user",
                "state": state,
            }
        )
        return f"{GITHUB_AUTHORIZE_URL}?{query}"

    async def fetch_identity(self, code: str) -> ExternalIdentity:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                token_response = await client.post(
                    GITHUB_TOKEN_URL,
                    headers={"Accept": "application/json"},
                    json={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.redirect_uri,
                    },
                )
                token_data = token_response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("github_token_exchange_failed", error=str(exc))
                raise IdentityProviderError("token_error", str(exc)) from exc

            if not isinstance(token_data, dict):
                token_data = {}
            access_token = token_data.get("access_token")
            if not access_token:
                logger.warning("github_token_rejected", error=token_data.get("error"))
                raise IdentityProviderError("token_error")

            try:
                user_response = await client.get(
                    GITHUB_USER_URL,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/vnd.github.v3+json",
                    },
                )
            except httpx.HTTPError as exc:
                logger.warning("github_user_fetch_failed", error=str(exc))
                raise IdentityProviderError("user_error", str(exc)) from exc

        if user_response.status_code != 200:
            logger.warning("github_user_fetch_failed", status=user_response.status_code)
            raise IdentityProviderError("user_error")

        profile = user_response.json()
        login = profile.get("login")
        if not login:
            raise IdentityProviderError("user_error", "GitHub profile has no login")
        return ExternalIdentity(username=login, external_id=str(profile.get("id", "")))


def get_identity_provider() -> IdentityProvider:
    """FastAPI dependency: provider configured from settings."""
    settings = get_settings()
    return GitHubProvider(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        redirect_uri=settings.github_redirect_uri,
        timeout=settings.http_timeout_seconds,
    )
