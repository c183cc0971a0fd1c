"""Certification endpoints: eligibility, minted credentials, module claims."""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from academy.certification.schemas import MintedStoreRequest, ModuleClaimRequest
from academy.certification.service import CertificationService
from academy.database import get_session
from academy.redis_client import get_redis_optional
from academy.schemas import normalize_wallet

router = APIRouter(prefix="/api/v1", tags=["Certification"])


@router.get("/eligibility")
async def get_eligibility(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis_optional),
) -> dict:
    """Per-level completion counts and eligibility."""
    svc = CertificationService(db, redis=redis)
    return await svc.get_eligibility(normalize_wallet(wallet_address))


@router.get("/minted")
async def get_minted(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    level: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis_optional),
) -> dict:
    """Minted credentials for a wallet, optionally for a single level."""
    svc = CertificationService(db, redis=redis)
    return await svc.get_minted(normalize_wallet(wallet_address), level=level)


@router.post("/minted")
async def store_minted(
    body: MintedStoreRequest,
    db: AsyncSession = Depends(get_session),
    redis: aioredis.Redis | None = Depends(get_redis_optional),
) -> dict:
    """Record an issued credential. 409 if the level was already minted."""
    svc = CertificationService(db, redis=redis)
    try:
        nft = await svc.store_minted(
            body.wallet_address,
            level=body.level,
            level_name=body.level_name,
            transaction_reference=body.transaction_reference,
            metadata_url=body.metadata_url,
            image_url=body.image_url,
            level_key=body.level_key,
            username=body.username,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    await db.commit()
    await svc.invalidate(body.wallet_address)
    return {"success": True, "nft": nft}


@router.get("/certification/{module}/claim")
async def get_claim(
    module: str,
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Whether the module's certification has been claimed."""
    svc = CertificationService(db)
    try:
        return await svc.get_claim(normalize_wallet(wallet_address), module)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc


@router.post("/certification/{module}/claim")
async def claim(
    module: str,
    body: ModuleClaimRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Claim a completed module's certification (idempotent)."""
    svc = CertificationService(db)
    try:
        result = await svc.claim_module(
            body.wallet_address,
            module,
            transaction_reference=body.transaction_reference,
            metadata_url=body.metadata_url,
            image_url=body.image_url,
        )
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    await db.commit()
    return result
