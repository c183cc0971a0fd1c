"""Progress endpoints: read and record section completions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from academy.curriculum.catalog import DEFAULT_MODULE_ID
from academy.database import get_session
from academy.progress.schemas import ProgressUpdateRequest
from academy.progress.service import ProgressService
from academy.schemas import normalize_wallet

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


@router.get("")
async def get_progress(
    user_address: str = Query(..., alias="userAddress", min_length=1),
    module: str = Query(DEFAULT_MODULE_ID),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Completed sections per chapter plus derived chapter and module figures."""
    svc = ProgressService(db)
    try:
        return await svc.get_progress(normalize_wallet(user_address), module)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc


@router.post("")
async def update_progress(
    body: ProgressUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Record a section completion. Duplicates answer ``alreadyCompleted``."""
    svc = ProgressService(db)
    try:
        result = await svc.record_completion(
            body.user_address,
            body.module,
            body.chapter_id,
            body.section_id,
            finalize_chapter=body.finalize_chapter,
        )
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    await db.commit()
    return result
