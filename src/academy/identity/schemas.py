"""Request/response schemas for identity link endpoints."""

from __future__ import annotations

from pydantic import Field, field_validator

from academy.schemas import CamelModel, normalize_wallet


class IdentityLinkRequest(CamelModel):
    """Complete an identity link with a verified username."""

    wallet_address: str = Field(..., min_length=1, max_length=64)
    username: str = Field(..., min_length=1, max_length=64)
    external_id: str | None = Field(None, max_length=64)

    @field_validator("wallet_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return normalize_wallet(v)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()


class IdentityStatusResponse(CamelModel):
    has_identity: bool
    username: str | None = None
    external_id: str | None = None


class AuthorizeResponse(CamelModel):
    auth_url: str
