"""
Identity link service.

Binds a wallet address to a verified external (GitHub) username. A link is
written once and never changed. The OAuth round trip carries its context
(wallet, return URL, correlation token) in a single-use state row; only the
SHA-256 of the state token is stored.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode, urljoin, urlsplit

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config import get_settings
from academy.db.models import IdentityLink, IdentityLinkState

logger = structlog.get_logger()


class IdentityConflict(Exception):
    """The wallet is already linked to a different username."""

    def __init__(self, wallet: str, existing: str) -> None:
        super().__init__(f"Wallet {wallet} is already linked to {existing}")
        self.wallet = wallet
        self.existing = existing


def _hash_state(raw_state: str) -> str:
    return hashlib.sha256(raw_state.encode()).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


async def get_link(db: AsyncSession, wallet: str) -> IdentityLink | None:
    """Look up the identity link for a wallet."""
    result = await db.execute(select(IdentityLink).where(IdentityLink.wallet_address == wallet))
    return result.scalar_one_or_none()


async def link_identity(
    db: AsyncSession,
    wallet: str,
    username: str,
    external_id: str | None = None,
    provider: str = "github",
) -> tuple[IdentityLink, bool]:
    """Create the link for a wallet. Returns (link, created).

    Repeating the same username is a no-op. Raises:
        IdentityConflict: If the wallet is already linked to another username.
    """
    existing = await get_link(db, wallet)
    if existing is not None:
        if existing.username.lower() != username.lower():
            raise IdentityConflict(wallet, existing.username)
        return existing, False

    link = IdentityLink(
        wallet_address=wallet,
        username=username,
        external_id=external_id,
        provider=provider,
        linked_at=datetime.now(timezone.utc),
    )
    db.add(link)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        # Lost the race: the winner's row decides
        winner = await get_link(db, wallet)
        if winner is None:
            raise
        if winner.username.lower() != username.lower():
            raise IdentityConflict(wallet, winner.username) from None
        return winner, False

    logger.info("identity_linked", wallet=wallet, username=username, provider=provider)
    return link, True


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------


def resolve_return_to(return_to: str | None) -> str:
    """Absolute redirect target on the frontend origin.

    Relative paths are joined to the frontend base URL. Absolute URLs must
    share its origin. Raises ValueError otherwise.
    """
    base = get_settings().frontend_base_url
    if not return_to:
        return base
    target = urljoin(base.rstrip("/") + "/", return_to)
    base_parts = urlsplit(base)
    target_parts = urlsplit(target)
    if (target_parts.scheme, target_parts.netloc) != (base_parts.scheme, base_parts.netloc):
        msg = "returnTo must stay on the frontend origin"
        raise ValueError(msg)
    return target


async def create_link_state(
    db: AsyncSession,
    wallet: str,
    return_to: str | None = None,
    correlation: str | None = None,
) -> str:
    """Create a single-use OAuth state. Returns the raw state token."""
    settings = get_settings()
    target = resolve_return_to(return_to)
    raw_state = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)

    # Older unfinished attempts for this wallet are superseded
    await db.execute(
        update(IdentityLinkState)
        .where(IdentityLinkState.wallet_address == wallet)
        .where(IdentityLinkState.used_at == None)  # noqa: E711
        .values(used_at=now)
    )

    db.add(
        IdentityLinkState(
            token_hash=_hash_state(raw_state),
            wallet_address=wallet,
            return_to=target,
            correlation=correlation,
            created_at=now,
            expires_at=now + timedelta(minutes=settings.identity_state_ttl_minutes),
        )
    )
    await db.flush()
    return raw_state


async def consume_link_state(db: AsyncSession, raw_state: str) -> IdentityLinkState:
    """Validate and mark a state token used.

    Raises:
        ValueError: If the state is unknown, already used, or expired.
    """
    result = await db.execute(
        select(IdentityLinkState).where(IdentityLinkState.token_hash == _hash_state(raw_state))
    )
    state = result.scalar_one_or_none()

    if state is None:
        msg = "Invalid state"
        raise ValueError(msg)
    if state.used_at is not None:
        msg = "State has already been used"
        raise ValueError(msg)
    if _as_utc(state.expires_at) < datetime.now(timezone.utc):
        msg = "State has expired"
        raise ValueError(msg)

    state.used_at = datetime.now(timezone.utc)
    await db.flush()
    return state


def build_success_redirect(state: IdentityLinkState, username: str, external_id: str) -> str:
    """Return URL carrying the verified identity and the correlation token."""
    params = {"username": username, "externalId": external_id}
    if state.correlation:
        params["correlation"] = state.correlation
    target = state.return_to or get_settings().frontend_base_url
    separator = "&" if urlsplit(target).query else "?"
    return f"{target}{separator}{urlencode(params)}"


def build_error_redirect(reason: str) -> str:
    base = get_settings().frontend_base_url.rstrip("/")
    return f"{base}/auth/error?{urlencode({'error': reason})}"
