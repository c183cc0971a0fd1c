"""ORM models for progress, identity links and credentials.

Wallet addresses are stored lower-cased. Uniqueness constraints are the
source of truth for deduplication; services check first and fall back to
the IntegrityError on races.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from academy.db.base import Base

# BIGSERIAL on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY
_BigId = BigInteger().with_variant(Integer(), "sqlite")
_Json = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class SectionCompletion(Base):
    """One completed section. UNIQUE(wallet, module, chapter, section) dedups writes."""

    __tablename__ = "section_completions"
    __table_args__ = (
        UniqueConstraint("wallet_address", "module_id", "chapter_id", "section_id", name="uq_section_completion"),
        Index("ix_section_completions_wallet_module", "wallet_address", "module_id"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    module_id: Mapped[str] = mapped_column(String(64), nullable=False)
    chapter_id: Mapped[str] = mapped_column(String(128), nullable=False)
    section_id: Mapped[str] = mapped_column(String(128), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ModuleCertification(Base):
    """Module certification claim. UNIQUE(wallet, module)."""

    __tablename__ = "module_certifications"
    __table_args__ = (UniqueConstraint("wallet_address", "module_id", name="uq_module_certification"),)

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    module_id: Mapped[str] = mapped_column(String(64), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    metadata_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)


# ---------------------------------------------------------------------------
# Identity links
# ---------------------------------------------------------------------------


class IdentityLink(Base):
    """Wallet → external (GitHub) username. Written once, never updated."""

    __tablename__ = "identity_links"

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    provider: Mapped[str] = mapped_column(String(16), nullable=False, default="github")
    linked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class IdentityLinkState(Base):
    """Single-use OAuth state carrying the wallet and correlation token across the redirect."""

    __tablename__ = "identity_link_states"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    token_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    return_to: Mapped[str | None] = mapped_column(Text, nullable=True)
    correlation: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Challenges & credentials
# ---------------------------------------------------------------------------


class ChallengeSubmission(Base):
    """Reviewed challenge submission, written by the challenge review pipeline."""

    __tablename__ = "challenge_submissions"
    __table_args__ = (Index("ix_challenge_submissions_wallet", "wallet_address"),)

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    challenge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    review_action: Mapped[str] = mapped_column(String(16), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)


class MintedCredential(Base):
    """Issued certification credential. UNIQUE(wallet, level); never mutated."""

    __tablename__ = "minted_credentials"
    __table_args__ = (UniqueConstraint("wallet_address", "level", name="uq_minted_wallet_level"),)

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    level_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    level_name: Mapped[str] = mapped_column(String(128), nullable=False)
    transaction_reference: Mapped[str] = mapped_column(String(128), nullable=False)
    metadata_url: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    network: Mapped[str] = mapped_column(String(32), nullable=False)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(_Json, nullable=False, default=dict)
    minted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
