"""Request schemas for certification endpoints."""

from __future__ import annotations

from pydantic import Field, field_validator

from academy.schemas import CamelModel, normalize_wallet


class MintedStoreRequest(CamelModel):
    """Record a credential after the on-chain mint succeeded."""

    wallet_address: str = Field(..., min_length=1, max_length=64)
    transaction_reference: str = Field(..., min_length=1, max_length=128)
    metadata_url: str = Field(..., min_length=1)
    image_url: str = Field(..., min_length=1)
    level_name: str = Field(..., min_length=1, max_length=128)
    level: int = Field(..., ge=1)
    level_key: str | None = Field(None, max_length=64)
    username: str | None = Field(None, max_length=64)

    @field_validator("wallet_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return normalize_wallet(v)


class ModuleClaimRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1, max_length=64)
    transaction_reference: str | None = Field(None, max_length=128)
    metadata_url: str | None = None
    image_url: str | None = None

    @field_validator("wallet_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return normalize_wallet(v)
