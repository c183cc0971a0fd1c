"""Request schemas for progress endpoints."""

from __future__ import annotations

from pydantic import Field, field_validator

from academy.curriculum.catalog import DEFAULT_MODULE_ID
from academy.schemas import CamelModel, normalize_wallet


class ProgressUpdateRequest(CamelModel):
    """Mark one section (or, with ``finalizeChapter``, a whole chapter) complete."""

    user_address: str = Field(..., min_length=1, max_length=64)
    chapter_id: str = Field(..., min_length=1, max_length=128)
    section_id: str = Field(..., min_length=1, max_length=128)
    module: str = DEFAULT_MODULE_ID
    finalize_chapter: bool = False

    @field_validator("user_address")
    @classmethod
    def normalize_address(cls, v: str) -> str:
        return normalize_wallet(v)
