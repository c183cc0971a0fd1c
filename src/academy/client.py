"""
HTTP client for the Academy API, plus adapters that plug it into the
learner engine's store, identity, eligibility and ledger interfaces.

Transport errors and 5xx/429 answers become ``NetworkFailure``. A 4xx on a
progress write is a confirmed rejection (``ProgressRejected``); a 409 on
identity linking or credential storage is ``AlreadyProcessed``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import TracebackType
from typing import Any

import httpx
import structlog

from academy.certification.eligibility import ChallengeDetail, EligibilityReport, LevelEligibility
from academy.config import get_settings
from academy.errors import AlreadyProcessed, NetworkFailure, ProgressRejected
from academy.learning.identity import IdentityLinkService, IdentityStatus, VerifiedIdentity
from academy.learning.issuance import CredentialLedger, EligibilitySource, MintedRecord
from academy.learning.modules import ModuleStatusSource
from academy.learning.progress import ChapterProgress, ProgressStore, WriteAck

logger = structlog.get_logger()

API_PREFIX = "/api/v1"

# Transient statuses: retrying may succeed
_RETRYABLE_STATUSES = frozenset({408, 425, 429})


def _parse_datetime(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_eligibility(payload: dict[str, Any]) -> EligibilityReport:
    """Build a report from the eligibility response. ``isEligible`` is re-derived from the counts."""
    levels = []
    for raw in payload.get("certificationLevels", []):
        levels.append(
            LevelEligibility(
                level_key=raw["levelKey"],
                level=int(raw["level"]),
                name=raw.get("name", ""),
                description=raw.get("description", ""),
                completed_count=int(raw.get("completedRequiredChallenges", 0)),
                required_count=int(raw.get("requiredChallenges", 0)),
                challenge_details=tuple(
                    ChallengeDetail(id=d["id"], completed=bool(d.get("completed")), detail=d.get("detail"))
                    for d in raw.get("challengeDetails", [])
                ),
            )
        )
    return EligibilityReport(
        levels=tuple(levels),
        total_completed_challenges=int(payload.get("totalCompletedChallenges", 0)),
    )


def parse_minted(nft: dict[str, Any]) -> MintedRecord:
    return MintedRecord(
        level=int(nft["level"]),
        level_key=nft.get("levelKey"),
        level_name=nft.get("levelName", ""),
        transaction_reference=nft.get("transactionReference", ""),
        metadata_url=nft.get("metadataUrl", ""),
        image_url=nft.get("imageUrl", ""),
        minted_at=_parse_datetime(nft.get("mintedAt")),
    )


class AcademyClient:
    """Typed wrapper over the ``/api/v1`` endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> AcademyClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:  # noqa: ANN401
        endpoint = f"{method} {path}"
        try:
            response = await self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("academy_request_failed", endpoint=endpoint, error=str(exc))
            raise NetworkFailure(endpoint, message=f"{endpoint} unreachable: {exc}") from exc
        if response.status_code >= 500 or response.status_code in _RETRYABLE_STATUSES:
            raise NetworkFailure(endpoint, status=response.status_code)
        return response

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        return str(body.get("detail", body)) if isinstance(body, dict) else str(body)

    def _ensure_ok(self, response: httpx.Response, endpoint: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise NetworkFailure(endpoint, status=response.status_code, message=self._detail(response))
        return response.json()

    # --- Progress ---

    async def get_progress(self, wallet: str, module: str) -> dict[str, Any]:
        response = await self._request("GET", "/progress", params={"userAddress": wallet, "module": module})
        return self._ensure_ok(response, "GET /progress")

    async def post_progress(
        self,
        wallet: str,
        chapter_id: str,
        section_id: str,
        module: str,
        finalize_chapter: bool = False,
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/progress",
            json={
                "userAddress": wallet,
                "chapterId": chapter_id,
                "sectionId": section_id,
                "module": module,
                "finalizeChapter": finalize_chapter,
            },
        )
        if response.status_code >= 400:
            raise ProgressRejected(self._detail(response))
        return response.json()

    # --- Identity ---

    async def check_identity(self, wallet: str) -> IdentityStatus:
        response = await self._request("GET", "/identity", params={"walletAddress": wallet})
        body = self._ensure_ok(response, "GET /identity")
        return IdentityStatus(has_identity=bool(body.get("hasIdentity")), username=body.get("username"))

    async def authorize_identity(self, wallet: str, correlation: str, return_to: str | None = None) -> str:
        params = {"walletAddress": wallet, "correlation": correlation}
        if return_to:
            params["returnTo"] = return_to
        response = await self._request("GET", "/identity/authorize", params=params)
        return self._ensure_ok(response, "GET /identity/authorize")["authUrl"]

    async def link_identity(self, wallet: str, username: str, external_id: str | None = None) -> IdentityStatus:
        response = await self._request(
            "POST",
            "/identity",
            json={"walletAddress": wallet, "username": username, "externalId": external_id},
        )
        if response.status_code == 409:
            raise AlreadyProcessed(self._detail(response))
        body = self._ensure_ok(response, "POST /identity")
        return IdentityStatus(has_identity=True, username=body.get("username", username))

    # --- Certification ---

    async def get_eligibility(self, wallet: str) -> EligibilityReport:
        response = await self._request("GET", "/eligibility", params={"walletAddress": wallet})
        return parse_eligibility(self._ensure_ok(response, "GET /eligibility"))

    async def get_minted(self, wallet: str, level: int | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"walletAddress": wallet}
        if level is not None:
            params["level"] = level
        response = await self._request("GET", "/minted", params=params)
        return self._ensure_ok(response, "GET /minted")

    async def store_minted(self, wallet: str, record: MintedRecord, username: str | None = None) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/minted",
            json={
                "walletAddress": wallet,
                "transactionReference": record.transaction_reference,
                "metadataUrl": record.metadata_url,
                "imageUrl": record.image_url,
                "levelName": record.level_name,
                "level": record.level,
                "levelKey": record.level_key,
                "username": username,
            },
        )
        if response.status_code == 409:
            raise AlreadyProcessed(self._detail(response))
        return self._ensure_ok(response, "POST /minted")

    async def get_claim(self, wallet: str, module: str) -> dict[str, Any]:
        response = await self._request(
            "GET", f"/certification/{module}/claim", params={"walletAddress": wallet}
        )
        return self._ensure_ok(response, f"GET /certification/{module}/claim")

    async def claim_module(self, wallet: str, module: str, **extra: str) -> dict[str, Any]:
        response = await self._request(
            "POST", f"/certification/{module}/claim", json={"walletAddress": wallet, **extra}
        )
        return self._ensure_ok(response, f"POST /certification/{module}/claim")


# ---------------------------------------------------------------------------
# Engine adapters
# ---------------------------------------------------------------------------


class HttpProgressStore(ProgressStore):
    def __init__(self, client: AcademyClient) -> None:
        self.client = client

    async def read(self, user: str, module: str) -> ChapterProgress:
        body = await self.client.get_progress(user, module)
        return {chapter_id: set(ids) for chapter_id, ids in body.get("chapters", {}).items()}

    async def write(self, user: str, chapter_id: str, section_id: str, module: str) -> WriteAck:
        body = await self.client.post_progress(user, chapter_id, section_id, module)
        return WriteAck(already_completed=bool(body.get("alreadyCompleted")))


class HttpIdentityLinkService(IdentityLinkService):
    def __init__(self, client: AcademyClient) -> None:
        self.client = client

    async def check(self, wallet: str) -> IdentityStatus:
        return await self.client.check_identity(wallet)

    async def initiate(self, wallet: str, correlation: str, return_to: str | None = None) -> str:
        return await self.client.authorize_identity(wallet, correlation, return_to)

    async def complete(self, wallet: str, identity: VerifiedIdentity) -> IdentityStatus:
        return await self.client.link_identity(wallet, identity.username, identity.external_id)


class HttpEligibilitySource(EligibilitySource):
    def __init__(self, client: AcademyClient) -> None:
        self.client = client

    async def fetch(self, wallet: str) -> EligibilityReport:
        return await self.client.get_eligibility(wallet)


class HttpCredentialLedger(CredentialLedger):
    def __init__(self, client: AcademyClient) -> None:
        self.client = client

    async def minted(self, wallet: str) -> dict[int, MintedRecord]:
        body = await self.client.get_minted(wallet)
        records = [parse_minted(nft) for nft in body.get("nfts", [])]
        return {record.level: record for record in records}

    async def store(self, wallet: str, record: MintedRecord, username: str | None = None) -> None:
        await self.client.store_minted(wallet, record, username=username)


class HttpModuleStatusSource(ModuleStatusSource):
    def __init__(self, client: AcademyClient) -> None:
        self.client = client

    async def is_module_completed(self, wallet: str, module_id: str) -> bool:
        body = await self.client.get_progress(wallet, module_id)
        return bool(body.get("isCompleted"))

    async def is_module_claimed(self, wallet: str, module_id: str) -> bool:
        body = await self.client.get_claim(wallet, module_id)
        return bool(body.get("claimed"))
