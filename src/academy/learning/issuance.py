"""
Credential issuance coordinator.

Per certification level the learner moves through::

    NotEligible -> Eligible -> Minting -> Minted
                      ^-----------'  (mint failed)

Only one mint may be in flight at a time across all levels. Minted state
comes from the authoritative minted-status query; a successful mint is
also kept in a local overlay so the level stays Minted even if storing the
credential fails. Eligibility and minted refreshes are sequence-numbered
and a response older than the latest request is dropped.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import structlog

from academy.certification.eligibility import EligibilityReport, LevelEligibility
from academy.errors import (
    AcademyError,
    AlreadyProcessed,
    ConcurrentOperation,
    IdentityMissing,
    IneligibleState,
    NetworkFailure,
)
from academy.learning.identity import IdentityLinkService

logger = structlog.get_logger()


class MintState(str, Enum):
    NOT_ELIGIBLE = "not-eligible"
    ELIGIBLE = "eligible"
    MINTING = "minting"
    MINTED = "minted"


@dataclass(frozen=True)
class MintRequest:
    username: str
    level_name: str
    level: int
    level_key: str


@dataclass(frozen=True)
class MintReceipt:
    transaction_reference: str
    metadata_url: str
    image_url: str


@dataclass(frozen=True)
class MintedRecord:
    level: int
    level_name: str
    transaction_reference: str
    metadata_url: str
    image_url: str
    level_key: str | None = None
    minted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class MintOutcome:
    level: int
    record: MintedRecord
    notice: AcademyError | None = None


class Minter(ABC):
    """Performs the on-chain mint. Transaction mechanics are its own business."""

    @abstractmethod
    async def mint(self, request: MintRequest) -> MintReceipt:
        ...


class EligibilitySource(ABC):
    @abstractmethod
    async def fetch(self, wallet: str) -> EligibilityReport:
        """Raises NetworkFailure."""
        ...


class CredentialLedger(ABC):
    """Authoritative record of issued credentials."""

    @abstractmethod
    async def minted(self, wallet: str) -> dict[int, MintedRecord]:
        """level -> credential. Raises NetworkFailure."""
        ...

    @abstractmethod
    async def store(self, wallet: str, record: MintedRecord, username: str | None = None) -> None:
        """Raises AlreadyProcessed if the level is already recorded, NetworkFailure otherwise."""
        ...


class CredentialIssuanceCoordinator:
    def __init__(
        self,
        wallet: str,
        eligibility: EligibilitySource,
        ledger: CredentialLedger,
        minter: Minter,
        identity: IdentityLinkService | None = None,
        username: str | None = None,
    ) -> None:
        self.wallet = wallet.lower()
        self.eligibility = eligibility
        self.ledger = ledger
        self.minter = minter
        self.identity = identity
        self.username = username
        self.report: EligibilityReport | None = None
        self._remote_minted: dict[int, MintedRecord] = {}
        self._local_minted: dict[int, MintedRecord] = {}
        self._minting_level: int | None = None
        self._mint_lock = asyncio.Lock()
        self._eligibility_seq = 0
        self._minted_seq = 0

    # --- Queries ---

    @property
    def minted(self) -> dict[int, MintedRecord]:
        return {**self._remote_minted, **self._local_minted}

    def level_info(self, level: int) -> LevelEligibility | None:
        return self.report.for_level(level) if self.report else None

    def state(self, level: int) -> MintState:
        if self._minting_level == level:
            return MintState.MINTING
        if level in self.minted:
            return MintState.MINTED
        info = self.level_info(level)
        if info is not None and info.is_eligible:
            return MintState.ELIGIBLE
        return MintState.NOT_ELIGIBLE

    def states(self) -> dict[int, MintState]:
        levels = [entry.level for entry in self.report.levels] if self.report else []
        return {level: self.state(level) for level in sorted(set(levels) | set(self.minted))}

    # --- Refresh ---

    async def refresh(self) -> None:
        """Reload eligibility, minted status and (if missing) the linked username concurrently."""
        tasks = [self.refresh_eligibility(), self.refresh_minted()]
        if self.username is None and self.identity is not None:
            tasks.append(self.refresh_username())
        await asyncio.gather(*tasks)

    async def refresh_eligibility(self) -> None:
        self._eligibility_seq += 1
        seq = self._eligibility_seq
        try:
            report = await self.eligibility.fetch(self.wallet)
        except NetworkFailure as exc:
            logger.warning("eligibility_refresh_failed", error=exc.message)
            return
        if seq != self._eligibility_seq:
            logger.debug("eligibility_response_stale", seq=seq, latest=self._eligibility_seq)
            return
        self.report = report

    async def refresh_minted(self) -> None:
        self._minted_seq += 1
        seq = self._minted_seq
        try:
            minted = await self.ledger.minted(self.wallet)
        except NetworkFailure as exc:
            logger.warning("minted_refresh_failed", error=exc.message)
            return
        if seq != self._minted_seq:
            logger.debug("minted_response_stale", seq=seq, latest=self._minted_seq)
            return
        self._remote_minted = dict(minted)

    async def refresh_username(self) -> None:
        if self.identity is None:
            return
        try:
            status = await self.identity.check(self.wallet)
        except NetworkFailure as exc:
            logger.warning("identity_refresh_failed", error=exc.message)
            return
        if status.has_identity:
            self.username = status.username

    # --- Mint ---

    async def mint(self, level: int) -> MintOutcome:
        """Mint the credential for ``level``.

        Raises:
            ConcurrentOperation: Another mint is in flight. Nothing is invoked.
            AlreadyProcessed: The level is already minted.
            IneligibleState: Required challenges are not complete.
            IdentityMissing: No linked username to put on the credential.
        """
        if self._mint_lock.locked():
            raise ConcurrentOperation("A mint is already in progress")

        async with self._mint_lock:
            current = self.state(level)
            if current is MintState.MINTED:
                raise AlreadyProcessed(f"Level {level} is already minted")
            info = self.level_info(level)
            if current is not MintState.ELIGIBLE or info is None:
                raise IneligibleState(f"Not eligible for level {level}")
            if not self.username:
                await self.refresh_username()
            if not self.username:
                raise IdentityMissing("Link your GitHub account before minting")

            request = MintRequest(
                username=self.username,
                level_name=info.name,
                level=info.level,
                level_key=info.level_key,
            )
            self._minting_level = level
            logger.info("mint_started", level=level, level_key=info.level_key)
            try:
                receipt = await self.minter.mint(request)
            finally:
                self._minting_level = None

            record = MintedRecord(
                level=info.level,
                level_key=info.level_key,
                level_name=info.name,
                transaction_reference=receipt.transaction_reference,
                metadata_url=receipt.metadata_url,
                image_url=receipt.image_url,
            )
            self._local_minted[level] = record
            logger.info("mint_succeeded", level=level, tx=receipt.transaction_reference)

            notice: AcademyError | None = None
            try:
                await self.ledger.store(self.wallet, record, username=self.username)
            except AlreadyProcessed:
                logger.info("minted_store_duplicate", level=level)
            except NetworkFailure as exc:
                logger.warning("minted_store_failed", level=level, error=exc.message)
                notice = exc

        # Every level display shares the minted set: re-query all of it
        await self.refresh_minted()
        return MintOutcome(level=level, record=record, notice=notice)
