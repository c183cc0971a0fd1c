"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from academy.database import close_db, create_tables, get_session, init_db
from academy.identity.provider import ExternalIdentity, IdentityProvider, IdentityProviderError, get_identity_provider
from academy.main import create_app

WALLET = "0xAbCdEf0000000000000000000000000000000001"
OTHER_WALLET = "0x1111111111111111111111111111111111111111"


class FakeIdentityProvider(IdentityProvider):
    """Stands in for GitHub: any code maps to a fixed identity, ``bad`` is refused."""

    name = "github"

    def __init__(self, username: str = "octocat", external_id: str = "583231") -> None:
        self.username = username
        self.external_id = external_id
        self.codes: list[str] = []

    def authorize_url(self, state: str) -> str:
        return f"https://github.example/authorize?state={state}"

    async def fetch_identity(self, code: str) -> ExternalIdentity:
        self.codes.append(code)
        if code == "bad":
            raise IdentityProviderError("token_error")
        return ExternalIdentity(username=self.username, external_id=self.external_id)


@pytest.fixture
def wallet() -> str:
    return WALLET


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest_asyncio.fixture
async def app(tmp_path, identity_provider: FakeIdentityProvider) -> AsyncGenerator[FastAPI, None]:
    """App wired to a throwaway SQLite file. Redis is left uninitialised."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'academy.db'}")
    await create_tables()

    application = create_app()
    application.dependency_overrides[get_identity_provider] = lambda: identity_provider
    yield application

    application.dependency_overrides.clear()
    await close_db()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client driving the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for seeding rows the API does not write."""
    sessions = get_session()
    session = await sessions.__anext__()
    yield session
    await sessions.aclose()
