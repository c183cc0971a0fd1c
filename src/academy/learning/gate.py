"""
Completion gate.

Decides whether a section completion may commit now or must wait for the
learner to link an external identity first. Quiz and challenge sections are
gated when a wallet is connected and no identity link exists. A gated
completion is held as the single pending action until the verification
round trip returns with the matching correlation token, then replayed
through the normal commit path exactly once.

State machine::

    Idle -> AwaitingIdentity -> Committing -> Completed
                  \\-> Idle (cancel / verification failure)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

import structlog

from academy.curriculum import Chapter, Section
from academy.errors import (
    AcademyError,
    AlreadyProcessed,
    AuthenticationRequired,
    IdentityMissing,
    NetworkFailure,
)
from academy.learning.identity import IdentityLinkService, VerifiedIdentity, new_correlation_token
from academy.learning.progress import ProgressSync, SyncResult

logger = structlog.get_logger()


class GateState(str, Enum):
    IDLE = "idle"
    AWAITING_IDENTITY = "awaiting-identity"
    COMMITTING = "committing"
    COMPLETED = "completed"


VALID_TRANSITIONS: dict[GateState, list[GateState]] = {
    GateState.IDLE: [GateState.AWAITING_IDENTITY, GateState.COMMITTING],
    GateState.AWAITING_IDENTITY: [GateState.IDLE, GateState.COMMITTING],
    # Back to Idle only when the store rejects the completion outright
    GateState.COMMITTING: [GateState.COMPLETED, GateState.IDLE],
    GateState.COMPLETED: [GateState.IDLE, GateState.AWAITING_IDENTITY, GateState.COMMITTING],
}


def validate_transition(current: GateState, target: GateState) -> None:
    """Raises ValueError if ``current -> target`` is not allowed."""
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise ValueError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )


class GateOutcome(str, Enum):
    COMMITTED = "committed"
    ALREADY_COMPLETED = "already-completed"
    AWAITING_IDENTITY = "awaiting-identity"
    REJECTED = "rejected"
    VERIFICATION_FAILED = "verification-failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PendingCompletion:
    chapter_id: str
    section_id: str
    correlation: str


@dataclass(frozen=True)
class GateResult:
    outcome: GateOutcome
    chapter_id: str
    section_id: str
    auth_url: str | None = None
    correlation: str | None = None
    sync: SyncResult | None = None
    notice: AcademyError | None = None

    @property
    def committed(self) -> bool:
        return self.outcome is GateOutcome.COMMITTED


class CompletionGate:
    """One gate per learning session. Actions are processed one at a time."""

    def __init__(
        self,
        sync: ProgressSync,
        identity: IdentityLinkService,
        wallet: str | None,
        return_to: str | None = None,
    ) -> None:
        self.sync = sync
        self.identity = identity
        self.wallet = wallet
        self.return_to = return_to
        self.state = GateState.IDLE
        self.pending: PendingCompletion | None = None
        self._auth_url: str | None = None
        self._has_link: bool | None = None
        self._lock = asyncio.Lock()

    def _transition(self, target: GateState) -> None:
        validate_transition(self.state, target)
        logger.debug("gate_transition", source=self.state.value, target=target.value)
        self.state = target

    async def _identity_linked(self, wallet: str) -> bool:
        # Only a positive answer is cached; a link can appear but never disappear
        if self._has_link:
            return True
        try:
            status = await self.identity.check(wallet)
        except NetworkFailure as exc:
            # Unknown counts as unlinked so gated work never commits early
            logger.warning("identity_check_failed", error=exc.message)
            return False
        self._has_link = status.has_identity
        return status.has_identity

    async def attempt(self, chapter: Chapter, section: Section) -> GateResult:
        """Try to complete ``section``. Completing it twice is a no-op."""
        async with self._lock:
            if self.sync.overlay.is_completed(chapter.id, section.id):
                return GateResult(GateOutcome.ALREADY_COMPLETED, chapter.id, section.id)

            if self.wallet is None:
                return await self._commit(
                    chapter.id,
                    section.id,
                    notice=AuthenticationRequired("Connect a wallet to save progress"),
                )

            if section.requires_identity and not await self._identity_linked(self.wallet):
                return await self._hold(self.wallet, chapter.id, section.id)

            if self.state is GateState.AWAITING_IDENTITY:
                # A later attempt replaces the held completion
                self._drop_pending("replaced")
            return await self._commit(chapter.id, section.id)

    async def _hold(self, wallet: str, chapter_id: str, section_id: str) -> GateResult:
        if self.state is GateState.AWAITING_IDENTITY and self.pending is not None:
            # Same verification round trip, new target
            self.pending = PendingCompletion(chapter_id, section_id, self.pending.correlation)
            return GateResult(
                GateOutcome.AWAITING_IDENTITY,
                chapter_id,
                section_id,
                auth_url=self._auth_url,
                correlation=self.pending.correlation,
                notice=IdentityMissing("Link your GitHub account to save this result"),
            )

        correlation = new_correlation_token()
        self._transition(GateState.AWAITING_IDENTITY)
        self.pending = PendingCompletion(chapter_id, section_id, correlation)
        try:
            auth_url = await self.identity.initiate(wallet, correlation, self.return_to)
        except AcademyError as exc:
            logger.warning("identity_initiate_failed", error=exc.message)
            self._drop_pending("initiate_failed")
            return GateResult(GateOutcome.VERIFICATION_FAILED, chapter_id, section_id, notice=exc)
        if self.pending is None or self.pending.correlation != correlation:
            # Cancelled while the round trip was being set up
            return GateResult(GateOutcome.IGNORED, chapter_id, section_id)
        self._auth_url = auth_url

        logger.info("completion_gated", chapter=chapter_id, section=section_id)
        return GateResult(
            GateOutcome.AWAITING_IDENTITY,
            chapter_id,
            section_id,
            auth_url=self._auth_url,
            correlation=correlation,
            notice=IdentityMissing("Link your GitHub account to save this result"),
        )

    async def complete_identity(self, correlation: str, identity: VerifiedIdentity) -> GateResult:
        """Verification came back. Replays the held completion if the token matches."""
        async with self._lock:
            pending = self.pending
            wallet = self.wallet
            if (
                wallet is None
                or self.state is not GateState.AWAITING_IDENTITY
                or pending is None
                or pending.correlation != correlation
            ):
                logger.info("identity_callback_ignored", state=self.state.value)
                return GateResult(GateOutcome.IGNORED, "", "")

            try:
                await self.identity.complete(wallet, identity)
            except (AlreadyProcessed, NetworkFailure) as exc:
                logger.warning("identity_complete_failed", error=exc.message)
                self._drop_pending("verification_failed")
                return GateResult(
                    GateOutcome.VERIFICATION_FAILED, pending.chapter_id, pending.section_id, notice=exc
                )

            self._has_link = True
            self.pending = None
            self._auth_url = None
            if self.sync.overlay.is_completed(pending.chapter_id, pending.section_id):
                self._transition(GateState.IDLE)
                return GateResult(GateOutcome.ALREADY_COMPLETED, pending.chapter_id, pending.section_id)
            return await self._commit(pending.chapter_id, pending.section_id)

    def cancel(self) -> None:
        """Abandon the held completion, if any."""
        if self.state is GateState.AWAITING_IDENTITY:
            self._drop_pending("cancelled")

    def _drop_pending(self, reason: str) -> None:
        if self.pending is not None:
            logger.info("pending_completion_dropped", section=self.pending.section_id, reason=reason)
        self.pending = None
        self._auth_url = None
        self._transition(GateState.IDLE)

    async def _commit(self, chapter_id: str, section_id: str, notice: AcademyError | None = None) -> GateResult:
        self._transition(GateState.COMMITTING)
        self.sync.stage(chapter_id, section_id)
        result = await self.sync.persist(chapter_id, section_id)
        if result is SyncResult.REJECTED:
            self._transition(GateState.IDLE)
            return GateResult(GateOutcome.REJECTED, chapter_id, section_id, sync=result, notice=notice)
        self._transition(GateState.COMPLETED)
        return GateResult(GateOutcome.COMMITTED, chapter_id, section_id, sync=result, notice=notice)
