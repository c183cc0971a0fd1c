"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from academy.certification.router import router as certification_router
from academy.config import get_settings
from academy.database import close_db, create_tables, init_db
from academy.health.router import router as health_router
from academy.identity.router import router as identity_router
from academy.middleware import setup_middleware
from academy.progress.router import router as progress_router
from academy.redis_client import close_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await create_tables()
    if settings.redis_url:
        await init_redis(settings.redis_url)
    else:
        logger.info("redis_disabled")

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Academy API",
        description="Learner progress, identity links and certification credentials",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progress_router)
    app.include_router(identity_router)
    app.include_router(certification_router)

    return app


app = create_app()
