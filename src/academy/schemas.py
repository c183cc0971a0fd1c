"""Shared request/response schema helpers.

The wire format is camelCase (``userAddress``, ``chapterId``); Python
attributes stay snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def normalize_wallet(value: str) -> str:
    """Wallet addresses are compared case-insensitively everywhere."""
    return value.strip().lower()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
