"""Identity link endpoints: check, OAuth round trip, and link completion."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import get_session
from academy.identity import service
from academy.identity.provider import IdentityProvider, IdentityProviderError, get_identity_provider
from academy.identity.schemas import AuthorizeResponse, IdentityLinkRequest, IdentityStatusResponse
from academy.schemas import normalize_wallet

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/identity", tags=["Identity"])


@router.get("", response_model=IdentityStatusResponse, response_model_by_alias=True)
async def check_identity(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    db: AsyncSession = Depends(get_session),
) -> IdentityStatusResponse:
    """Whether the wallet has a verified identity link."""
    link = await service.get_link(db, normalize_wallet(wallet_address))
    if link is None:
        return IdentityStatusResponse(has_identity=False)
    return IdentityStatusResponse(has_identity=True, username=link.username, external_id=link.external_id)


@router.get("/authorize", response_model=AuthorizeResponse, response_model_by_alias=True)
async def authorize(
    wallet_address: str = Query(..., alias="walletAddress", min_length=1),
    return_to: str | None = Query(None, alias="returnTo"),
    correlation: str | None = Query(None, max_length=128),
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> AuthorizeResponse:
    """Start an identity link. The correlation token comes back on the final redirect."""
    try:
        state = await service.create_link_state(
            db, normalize_wallet(wallet_address), return_to=return_to, correlation=correlation
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    await db.commit()
    return AuthorizeResponse(auth_url=provider.authorize_url(state))


@router.get("/callback")
async def callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> RedirectResponse:
    """OAuth callback. Always answers with a redirect to the frontend."""
    if error:
        return RedirectResponse(service.build_error_redirect(error), status_code=302)
    if not code or not state:
        return RedirectResponse(service.build_error_redirect("missing_params"), status_code=302)

    try:
        link_state = await service.consume_link_state(db, state)
    except ValueError:
        return RedirectResponse(service.build_error_redirect("invalid_state"), status_code=302)
    # State is spent even if the provider exchange fails below
    await db.commit()

    try:
        identity = await provider.fetch_identity(code)
    except IdentityProviderError as exc:
        return RedirectResponse(service.build_error_redirect(exc.reason), status_code=302)

    try:
        await service.link_identity(
            db,
            link_state.wallet_address,
            identity.username,
            external_id=identity.external_id,
            provider=provider.name,
        )
    except service.IdentityConflict as exc:
        logger.warning("identity_link_conflict", wallet=exc.wallet, existing=exc.existing)
        return RedirectResponse(service.build_error_redirect("already_linked"), status_code=302)
    await db.commit()

    target = service.build_success_redirect(link_state, identity.username, identity.external_id)
    return RedirectResponse(target, status_code=302)


@router.post("")
async def complete_link(
    body: IdentityLinkRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Store a verified username for a wallet. Links are immutable."""
    try:
        link, created = await service.link_identity(
            db, body.wallet_address, body.username, external_id=body.external_id
        )
    except service.IdentityConflict as exc:
        raise HTTPException(409, str(exc)) from exc
    await db.commit()
    return {"success": True, "created": created, "username": link.username}
