"""Progress endpoint tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from httpx import AsyncClient

from academy.db.models import SectionCompletion

pytestmark = pytest.mark.asyncio

MODULE = "web3-basics"


def _completion(wallet: str, chapter: str, section: str, **extra) -> dict:
    return {"userAddress": wallet, "chapterId": chapter, "sectionId": section, "module": MODULE, **extra}


async def _complete(client: AsyncClient, wallet: str, chapter: str, section: str, **extra) -> dict:
    resp = await client.post("/api/v1/progress", json=_completion(wallet, chapter, section, **extra))
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestReadProgress:
    async def test_empty_progress(self, client: AsyncClient, wallet: str):
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})
        assert resp.status_code == 200
        data = resp.json()
        assert data["userAddress"] == wallet.lower()
        assert data["chapters"] == {}
        assert data["completedChapters"] == []
        assert data["totalPoints"] == 0
        assert data["isCompleted"] is False
        assert data["progressByChapter"]["evolution-of-the-web"] == {"completed": 0, "total": 2, "percentage": 0}

    async def test_chapters_unlock_in_order(self, client: AsyncClient, wallet: str):
        params = {"userAddress": wallet, "module": MODULE}
        data = (await client.get("/api/v1/progress", params=params)).json()
        assert data["accessibleChapters"] == ["evolution-of-the-web"]

        await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        await _complete(client, wallet, "evolution-of-the-web", "web-evolution-quiz")

        data = (await client.get("/api/v1/progress", params=params)).json()
        assert data["accessibleChapters"] == ["evolution-of-the-web", "public-private-keys"]

    async def test_unknown_module_is_404(self, client: AsyncClient, wallet: str):
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": "nope"})
        assert resp.status_code == 404

    async def test_legacy_module_alias(self, client: AsyncClient, wallet: str):
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": "defi-arbitrum"})
        assert resp.status_code == 200
        assert resp.json()["module"] == "master-defi"

    async def test_wallet_case_is_ignored(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet.upper().replace("0X", "0x"), "evolution-of-the-web", "web1-to-web3-story")
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet.lower(), "module": MODULE})
        assert resp.json()["chapters"] == {"evolution-of-the-web": ["web1-to-web3-story"]}


class TestRecordCompletion:
    async def test_first_completion(self, client: AsyncClient, wallet: str):
        data = await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        assert data["success"] is True
        assert data["alreadyCompleted"] is False
        assert data["chapters"] == {"evolution-of-the-web": ["web1-to-web3-story"]}
        assert data["chapterCompleted"] is False

    async def test_duplicate_completion_is_acknowledged(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        data = await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        assert data["success"] is True
        assert data["alreadyCompleted"] is True

        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})
        assert resp.json()["chapters"]["evolution-of-the-web"] == ["web1-to-web3-story"]

    async def test_sections_listed_in_sequence_order(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "public-private-keys", "key-security-quiz")
        await _complete(client, wallet, "public-private-keys", "kais-key-adventure")
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})
        assert resp.json()["chapters"]["public-private-keys"] == ["kais-key-adventure", "key-security-quiz"]

    async def test_chapter_completion_awards_points(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        data = await _complete(client, wallet, "evolution-of-the-web", "web-evolution-quiz")
        assert data["chapterCompleted"] is True

        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})
        body = resp.json()
        assert body["completedChapters"] == [
            {"chapterId": "evolution-of-the-web", "level": 1, "difficulty": "Beginner", "points": 10}
        ]
        assert body["totalPoints"] == 10
        assert body["progressByChapter"]["evolution-of-the-web"]["percentage"] == 100

    async def test_coming_soon_sections_do_not_block_chapter(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "digital-wallets", "mayas-wallet-journey")
        data = await _complete(client, wallet, "digital-wallets", "wallet-quiz")
        assert data["chapterCompleted"] is True

    async def test_coming_soon_section_is_rejected(self, client: AsyncClient, wallet: str):
        resp = await client.post(
            "/api/v1/progress", json=_completion(wallet, "digital-wallets", "hardware-wallet-lab")
        )
        assert resp.status_code == 400

    async def test_recorded_coming_soon_completion_is_listed(self, client: AsyncClient, wallet: str, db_session):
        db_session.add(
            SectionCompletion(
                wallet_address=wallet.lower(),
                module_id=MODULE,
                chapter_id="digital-wallets",
                section_id="hardware-wallet-lab",
                completed_at=datetime.now(timezone.utc),
            )
        )
        await db_session.commit()

        data = (await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})).json()

        assert data["chapters"]["digital-wallets"] == ["hardware-wallet-lab"]
        assert data["progressByChapter"]["digital-wallets"] == {"completed": 0, "total": 2, "percentage": 0}
        assert data["completedChapters"] == []

    async def test_unknown_section_is_404(self, client: AsyncClient, wallet: str):
        resp = await client.post("/api/v1/progress", json=_completion(wallet, "evolution-of-the-web", "nope"))
        assert resp.status_code == 404

    async def test_unknown_chapter_is_404(self, client: AsyncClient, wallet: str):
        resp = await client.post("/api/v1/progress", json=_completion(wallet, "nope", "web1-to-web3-story"))
        assert resp.status_code == 404

    async def test_missing_wallet_is_422(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/progress", json={"chapterId": "evolution-of-the-web", "sectionId": "web1-to-web3-story"}
        )
        assert resp.status_code == 422

    async def test_finalize_chapter_backfills_sections(self, client: AsyncClient, wallet: str):
        data = await _complete(client, wallet, "public-private-keys", "key-security-quiz", finalizeChapter=True)
        assert data["chapterCompleted"] is True
        assert data["chapters"]["public-private-keys"] == [
            "kais-key-adventure",
            "key-pairs-explained",
            "key-security-quiz",
        ]

    async def test_module_completion(self, client: AsyncClient, wallet: str):
        for chapter, section in [
            ("evolution-of-the-web", "web-evolution-quiz"),
            ("public-private-keys", "key-security-quiz"),
            ("digital-wallets", "wallet-quiz"),
        ]:
            await _complete(client, wallet, chapter, section, finalizeChapter=True)

        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": MODULE})
        body = resp.json()
        assert body["isCompleted"] is True
        assert body["totalPoints"] == 30
        assert "nfts-digital-ownership" not in body["chapters"]

    async def test_progress_is_per_wallet(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        other = "0x1111111111111111111111111111111111111111"
        resp = await client.get("/api/v1/progress", params={"userAddress": other, "module": MODULE})
        assert resp.json()["chapters"] == {}

    async def test_progress_is_scoped_to_module(self, client: AsyncClient, wallet: str):
        await _complete(client, wallet, "evolution-of-the-web", "web1-to-web3-story")
        resp = await client.get("/api/v1/progress", params={"userAddress": wallet, "module": "cross-chain"})
        assert resp.json()["chapters"] == {}
