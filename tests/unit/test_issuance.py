"""Credential issuance coordinator tests."""

from __future__ import annotations

import asyncio

import pytest

from academy.certification.eligibility import (
    CertificationLevel,
    ChallengeRecord,
    EligibilityCalculator,
    EligibilityReport,
)
from academy.errors import (
    AlreadyProcessed,
    ConcurrentOperation,
    IdentityMissing,
    IneligibleState,
    NetworkFailure,
)
from academy.learning.identity import IdentityLinkService, IdentityStatus, VerifiedIdentity
from academy.learning.issuance import (
    CredentialIssuanceCoordinator,
    CredentialLedger,
    EligibilitySource,
    MintedRecord,
    Minter,
    MintReceipt,
    MintRequest,
    MintState,
)

WALLET = "0xAbC"

LEVELS = [
    CertificationLevel(level_key="basics", level=1, name="Basics", required_challenges=("c1",)),
    CertificationLevel(level_key="core", level=2, name="Core", required_challenges=("c1", "c2", "c3")),
]


def _report(*completed: str) -> EligibilityReport:
    records = [ChallengeRecord(challenge_id=cid, completed=True) for cid in completed]
    return EligibilityCalculator(LEVELS).evaluate(records)


class FakeEligibility(EligibilitySource):
    def __init__(self, report: EligibilityReport) -> None:
        self.report = report
        self.error: Exception | None = None

    async def fetch(self, wallet: str) -> EligibilityReport:
        if self.error:
            raise self.error
        return self.report


class FakeLedger(CredentialLedger):
    def __init__(self) -> None:
        self.records: dict[int, MintedRecord] = {}
        self.stored: list[tuple[str, MintedRecord, str | None]] = []
        self.store_error: Exception | None = None
        self.read_error: Exception | None = None

    async def minted(self, wallet: str) -> dict[int, MintedRecord]:
        if self.read_error:
            raise self.read_error
        return dict(self.records)

    async def store(self, wallet: str, record: MintedRecord, username: str | None = None) -> None:
        if self.store_error:
            raise self.store_error
        self.stored.append((wallet, record, username))
        self.records[record.level] = record


class FakeMinter(Minter):
    def __init__(self) -> None:
        self.requests: list[MintRequest] = []
        self.error: Exception | None = None
        self.release: asyncio.Event | None = None

    async def mint(self, request: MintRequest) -> MintReceipt:
        self.requests.append(request)
        if self.release is not None:
            await self.release.wait()
        if self.error:
            raise self.error
        return MintReceipt(
            transaction_reference=f"0xtx{request.level}",
            metadata_url=f"ipfs://meta/{request.level}",
            image_url=f"ipfs://image/{request.level}",
        )


class FakeIdentity(IdentityLinkService):
    def __init__(self, username: str | None) -> None:
        self.username = username

    async def check(self, wallet: str) -> IdentityStatus:
        return IdentityStatus(has_identity=self.username is not None, username=self.username)

    async def initiate(self, wallet: str, correlation: str, return_to: str | None = None) -> str:
        return "https://github.example/authorize"

    async def complete(self, wallet: str, identity: VerifiedIdentity) -> IdentityStatus:
        return IdentityStatus(has_identity=True, username=identity.username)


def _record(level: int) -> MintedRecord:
    return MintedRecord(
        level=level,
        level_name="Core",
        transaction_reference="0xold",
        metadata_url="ipfs://meta",
        image_url="ipfs://image",
    )


def _coordinator(
    report: EligibilityReport,
    username: str | None = "octocat",
) -> tuple[CredentialIssuanceCoordinator, FakeEligibility, FakeLedger, FakeMinter]:
    eligibility = FakeEligibility(report)
    ledger = FakeLedger()
    minter = FakeMinter()
    coordinator = CredentialIssuanceCoordinator(
        WALLET,
        eligibility,
        ledger,
        minter,
        identity=FakeIdentity(username),
    )
    return coordinator, eligibility, ledger, minter


@pytest.mark.asyncio
class TestStates:
    async def test_states_follow_eligibility(self) -> None:
        coordinator, *_ = _coordinator(_report("c1", "c2"))
        await coordinator.refresh()
        assert coordinator.states() == {1: MintState.ELIGIBLE, 2: MintState.NOT_ELIGIBLE}

    async def test_minted_level_reports_minted(self) -> None:
        coordinator, _, ledger, _ = _coordinator(_report("c1", "c2", "c3"))
        ledger.records[2] = _record(2)
        await coordinator.refresh()
        assert coordinator.state(2) is MintState.MINTED

    async def test_refresh_failures_fail_open(self) -> None:
        coordinator, eligibility, ledger, _ = _coordinator(_report("c1"))
        await coordinator.refresh()
        eligibility.error = NetworkFailure("GET /eligibility", status=503)
        ledger.read_error = NetworkFailure("GET /minted", status=503)

        await coordinator.refresh()

        assert coordinator.state(1) is MintState.ELIGIBLE

    async def test_stale_eligibility_response_is_dropped(self) -> None:
        slow_release = asyncio.Event()
        fresh = _report("c1", "c2", "c3")
        stale = _report()

        class OrderedEligibility(EligibilitySource):
            def __init__(self) -> None:
                self.calls = 0

            async def fetch(self, wallet: str) -> EligibilityReport:
                self.calls += 1
                if self.calls == 1:
                    await slow_release.wait()
                    return stale
                return fresh

        coordinator = CredentialIssuanceCoordinator(WALLET, OrderedEligibility(), FakeLedger(), FakeMinter())
        first = asyncio.create_task(coordinator.refresh_eligibility())
        await asyncio.sleep(0)
        await coordinator.refresh_eligibility()
        slow_release.set()
        await first

        assert coordinator.report is fresh
        assert coordinator.state(2) is MintState.ELIGIBLE


@pytest.mark.asyncio
class TestMint:
    async def test_eligible_mint_stores_credential(self) -> None:
        coordinator, _, ledger, minter = _coordinator(_report("c1", "c2", "c3"))
        await coordinator.refresh()

        outcome = await coordinator.mint(2)

        assert outcome.notice is None
        assert minter.requests == [MintRequest(username="octocat", level_name="Core", level=2, level_key="core")]
        assert ledger.stored[0][0] == WALLET.lower()
        assert ledger.stored[0][2] == "octocat"
        assert coordinator.state(2) is MintState.MINTED

    async def test_already_minted_never_invokes_minter(self) -> None:
        coordinator, _, ledger, minter = _coordinator(_report("c1", "c2", "c3"))
        ledger.records[2] = _record(2)
        await coordinator.refresh()

        with pytest.raises(AlreadyProcessed):
            await coordinator.mint(2)
        assert minter.requests == []

    async def test_ineligible_level_is_refused(self) -> None:
        coordinator, _, _, minter = _coordinator(_report("c1", "c2"))
        await coordinator.refresh()
        with pytest.raises(IneligibleState):
            await coordinator.mint(2)
        assert minter.requests == []

    async def test_missing_username_is_refused(self) -> None:
        coordinator, _, _, minter = _coordinator(_report("c1"), username=None)
        await coordinator.refresh()
        with pytest.raises(IdentityMissing):
            await coordinator.mint(1)
        assert minter.requests == []

    async def test_concurrent_mints_invoke_minter_once(self) -> None:
        coordinator, _, _, minter = _coordinator(_report("c1", "c2", "c3"))
        await coordinator.refresh()
        minter.release = asyncio.Event()

        first = asyncio.create_task(coordinator.mint(2))
        await asyncio.sleep(0)
        assert coordinator.state(2) is MintState.MINTING

        with pytest.raises(ConcurrentOperation):
            await coordinator.mint(1)

        minter.release.set()
        await first
        assert len(minter.requests) == 1

    async def test_mint_failure_reverts_to_eligible(self) -> None:
        coordinator, _, ledger, minter = _coordinator(_report("c1", "c2", "c3"))
        await coordinator.refresh()
        minter.error = RuntimeError("user rejected transaction")

        with pytest.raises(RuntimeError):
            await coordinator.mint(2)

        assert coordinator.state(2) is MintState.ELIGIBLE
        assert ledger.stored == []

    async def test_store_failure_keeps_level_minted(self) -> None:
        coordinator, _, ledger, minter = _coordinator(_report("c1", "c2", "c3"))
        await coordinator.refresh()
        ledger.store_error = NetworkFailure("POST /minted", status=503)

        outcome = await coordinator.mint(2)

        assert isinstance(outcome.notice, NetworkFailure)
        assert coordinator.state(2) is MintState.MINTED
        assert outcome.record.transaction_reference == "0xtx2"

    async def test_duplicate_store_is_not_a_notice(self) -> None:
        coordinator, _, ledger, _ = _coordinator(_report("c1"))
        await coordinator.refresh()
        ledger.store_error = AlreadyProcessed("Level 1 already minted")
        outcome = await coordinator.mint(1)
        assert outcome.notice is None
        assert coordinator.state(1) is MintState.MINTED

    async def test_three_challenges_unlock_level_two(self) -> None:
        coordinator, _, ledger, minter = _coordinator(_report("c1", "c2", "c3"))
        await coordinator.refresh()
        assert coordinator.state(2) is MintState.ELIGIBLE

        await coordinator.mint(2)
        with pytest.raises(AlreadyProcessed):
            await coordinator.mint(2)

        assert len(minter.requests) == 1
        assert list(ledger.records) == [2]
