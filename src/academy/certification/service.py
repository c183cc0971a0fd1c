"""
Certification service: eligibility, minted credentials, module claims.

Eligibility is derived from accepted challenge submissions. Eligibility and
minted-status responses are cached in Redis when it is available; storing
a minted credential or a new submission invalidates the learner's entries
once the write is committed.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.certification.eligibility import (
    ChallengeRecord,
    EligibilityCalculator,
    EligibilityReport,
    LevelEligibility,
)
from academy.certification.levels import ACCEPTED_REVIEW_ACTION, CERTIFICATION_LEVELS, get_level
from academy.config import get_settings
from academy.db.models import ChallengeSubmission, IdentityLink, MintedCredential, ModuleCertification
from academy.errors import AlreadyProcessed, IneligibleState
from academy.progress.service import ProgressService, require_module

logger = structlog.get_logger()

ELIGIBILITY_CACHE_KEY = "certification:eligibility:{wallet}"
MINTED_CACHE_KEY = "certification:minted:{wallet}"


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def serialize_level(entry: LevelEligibility) -> dict:
    return {
        "levelKey": entry.level_key,
        "level": entry.level,
        "name": entry.name,
        "description": entry.description,
        "isEligible": entry.is_eligible,
        "completedRequiredChallenges": entry.completed_count,
        "requiredChallenges": entry.required_count,
        "challengeDetails": [
            {"id": d.id, "completed": d.completed, "detail": d.detail} for d in entry.challenge_details
        ],
    }


def serialize_report(report: EligibilityReport) -> dict:
    highest = report.highest_eligible
    return {
        "certificationLevels": [serialize_level(entry) for entry in report.levels],
        "totalCompletedChallenges": report.total_completed_challenges,
        "highestEligibleLevel": serialize_level(highest) if highest else None,
    }


def serialize_credential(row: MintedCredential) -> dict:
    return {
        "level": row.level,
        "levelKey": row.level_key,
        "levelName": row.level_name,
        "transactionReference": row.transaction_reference,
        "metadataUrl": row.metadata_url,
        "imageUrl": row.image_url,
        "network": row.network,
        "mintedAt": _iso(row.minted_at),
    }


def serialize_claim(row: ModuleCertification) -> dict:
    certification: dict[str, Any] = {"claimed": True, "claimedAt": _iso(row.claimed_at)}
    if row.transaction_reference:
        certification["transactionReference"] = row.transaction_reference
    if row.metadata_url:
        certification["metadataUrl"] = row.metadata_url
    if row.image_url:
        certification["imageUrl"] = row.image_url
    return certification


class CertificationService:
    """Eligibility queries and credential bookkeeping for one request."""

    def __init__(self, db: AsyncSession, redis: aioredis.Redis | None = None) -> None:
        self.db = db
        self.redis = redis
        self.calculator = EligibilityCalculator(CERTIFICATION_LEVELS)

    # --- Cache helpers ---

    async def _cache_get(self, key: str) -> Any:  # noqa: ANN401
        if self.redis is None:
            return None
        try:
            cached = await self.redis.get(key)
        except RedisError:
            logger.warning("certification_cache_read_failed", key=key, exc_info=True)
            return None
        return json.loads(cached) if cached else None

    async def _cache_set(self, key: str, value: Any) -> None:  # noqa: ANN401
        if self.redis is None:
            return
        ttl = get_settings().eligibility_cache_ttl_seconds
        try:
            await self.redis.set(key, json.dumps(value), ex=ttl)
        except RedisError:
            logger.warning("certification_cache_write_failed", key=key, exc_info=True)

    async def invalidate(self, wallet: str) -> None:
        """Drop the learner's cached eligibility and minted status."""
        if self.redis is None:
            return
        try:
            await self.redis.delete(
                ELIGIBILITY_CACHE_KEY.format(wallet=wallet),
                MINTED_CACHE_KEY.format(wallet=wallet),
            )
        except RedisError:
            logger.warning("certification_cache_invalidate_failed", wallet=wallet, exc_info=True)

    # --- Challenge submissions ---

    async def record_submission(
        self,
        wallet: str,
        challenge_id: str,
        review_action: str,
        username: str | None = None,
    ) -> ChallengeSubmission:
        """Store a reviewed submission (written by the challenge review pipeline).

        Commits before invalidating so a concurrent reader cannot re-cache
        eligibility computed without this row.
        """
        submission = ChallengeSubmission(
            wallet_address=wallet,
            challenge_id=challenge_id,
            review_action=review_action,
            username=username,
            submitted_at=datetime.now(timezone.utc),
        )
        self.db.add(submission)
        await self.db.commit()
        await self.invalidate(wallet)
        return submission

    async def challenge_records(self, wallet: str) -> tuple[list[ChallengeRecord], str | None]:
        """Accepted submissions as completion records, plus the latest submitting username."""
        result = await self.db.execute(
            select(ChallengeSubmission)
            .where(
                ChallengeSubmission.wallet_address == wallet,
                ChallengeSubmission.review_action == ACCEPTED_REVIEW_ACTION,
            )
            .order_by(ChallengeSubmission.submitted_at.desc())
        )
        records = []
        username = None
        for row in result.scalars().all():
            if username is None and row.username:
                username = row.username
            records.append(
                ChallengeRecord(
                    challenge_id=row.challenge_id,
                    completed=True,
                    detail={
                        "challengeId": row.challenge_id,
                        "reviewAction": row.review_action,
                        "submittedAt": _iso(row.submitted_at),
                    },
                )
            )
        return records, username

    # --- Eligibility ---

    async def get_eligibility(self, wallet: str) -> dict:
        """Per-level eligibility document for one learner."""
        cache_key = ELIGIBILITY_CACHE_KEY.format(wallet=wallet)
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        records, submitted_username = await self.challenge_records(wallet)
        report = self.calculator.evaluate(records)
        link = await self.db.get(IdentityLink, wallet)

        response = {
            "userAddress": wallet,
            "username": link.username if link else submitted_username,
            **serialize_report(report),
        }
        await self._cache_set(cache_key, response)
        return response

    # --- Minted credentials ---

    async def minted_credentials(self, wallet: str) -> list[dict]:
        cache_key = MINTED_CACHE_KEY.format(wallet=wallet)
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return cached

        result = await self.db.execute(
            select(MintedCredential)
            .where(MintedCredential.wallet_address == wallet)
            .order_by(MintedCredential.level)
        )
        nfts = [serialize_credential(row) for row in result.scalars().all()]
        await self._cache_set(cache_key, nfts)
        return nfts

    async def get_minted(self, wallet: str, level: int | None = None) -> dict:
        """Minted status, optionally focused on one level."""
        nfts = await self.minted_credentials(wallet)
        if level is None:
            return {"hasMinted": bool(nfts), "nft": None, "nfts": nfts, "totalMinted": len(nfts)}
        nft = next((n for n in nfts if n["level"] == level), None)
        return {"hasMinted": nft is not None, "nft": nft, "nfts": nfts, "totalMinted": len(nfts)}

    async def store_minted(
        self,
        wallet: str,
        level: int,
        level_name: str,
        transaction_reference: str,
        metadata_url: str,
        image_url: str,
        level_key: str | None = None,
        username: str | None = None,
    ) -> dict:
        """Record an issued credential. One per (wallet, level).

        The caller commits and then calls ``invalidate``; dropping the cache
        before the commit lets a concurrent read cache the pre-mint state.

        Raises:
            ValueError: Unknown level.
            AlreadyProcessed: A credential for this level already exists.
        """
        definition = get_level(level)
        if definition is None:
            msg = f"Unknown certification level: {level}"
            raise ValueError(msg)

        existing = await self.db.execute(
            select(MintedCredential.id).where(
                MintedCredential.wallet_address == wallet,
                MintedCredential.level == level,
            )
        )
        if existing.scalar_one_or_none() is not None:
            msg = f"User has already minted NFT for level {level}"
            raise AlreadyProcessed(msg)

        row = MintedCredential(
            wallet_address=wallet,
            level=level,
            level_key=level_key or definition.level_key,
            level_name=level_name,
            transaction_reference=transaction_reference,
            metadata_url=metadata_url,
            image_url=image_url,
            network=get_settings().mint_network,
            username=username,
            minted_at=datetime.now(timezone.utc),
        )
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            msg = f"User has already minted NFT for level {level}"
            raise AlreadyProcessed(msg) from None

        logger.info("credential_stored", wallet=wallet, level=level, tx=transaction_reference)
        return serialize_credential(row)

    # --- Module certification ---

    async def get_claim(self, wallet: str, module_id: str) -> dict:
        module = require_module(module_id)
        row = await self._claim_row(wallet, module.id)
        return {
            "module": module.id,
            "claimed": row is not None,
            "certification": serialize_claim(row) if row else None,
        }

    async def claim_module(
        self,
        wallet: str,
        module_id: str,
        transaction_reference: str | None = None,
        metadata_url: str | None = None,
        image_url: str | None = None,
    ) -> dict:
        """Claim a completed module's certification. Repeat claims return the first one.

        Raises:
            LookupError: Unknown module.
            IneligibleState: The module is not completed yet.
        """
        module = require_module(module_id)
        row = await self._claim_row(wallet, module.id)
        if row is not None:
            return {"success": True, "alreadyClaimed": True, "certification": serialize_claim(row)}

        if not await ProgressService(self.db).is_completed(wallet, module.id):
            msg = f"Module {module.id} is not completed"
            raise IneligibleState(msg)

        row = ModuleCertification(
            wallet_address=wallet,
            module_id=module.id,
            claimed_at=datetime.now(timezone.utc),
            transaction_reference=transaction_reference,
            metadata_url=metadata_url,
            image_url=image_url,
        )
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            row = await self._claim_row(wallet, module.id)
            if row is None:
                raise
            return {"success": True, "alreadyClaimed": True, "certification": serialize_claim(row)}

        logger.info("module_certification_claimed", wallet=wallet, module=module.id)
        return {"success": True, "alreadyClaimed": False, "certification": serialize_claim(row)}

    async def _claim_row(self, wallet: str, module_id: str) -> ModuleCertification | None:
        result = await self.db.execute(
            select(ModuleCertification).where(
                ModuleCertification.wallet_address == wallet,
                ModuleCertification.module_id == module_id,
            )
        )
        return result.scalar_one_or_none()
