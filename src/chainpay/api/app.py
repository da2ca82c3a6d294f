"""FastAPI application configuration."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..env import get_settings
from ..infrastructure.database import get_database_client
from ..infrastructure.scripts import PAYMENT_SCRIPTS
from ..infrastructure.storage import RedisKeyValueStore
from .dependencies import get_card_provider_client, get_ledger_client, get_price_oracle
from .routers import payments

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    db_client = get_database_client(settings)
    store = RedisKeyValueStore(db_client)
    for name, script in PAYMENT_SCRIPTS.items():
        await store.register_script(name, script)
    logger.info("Registered %d Lua scripts", len(PAYMENT_SCRIPTS))

    yield

    await get_ledger_client().aclose()
    await get_card_provider_client().aclose()
    await get_price_oracle().aclose()
    await db_client.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="ChainPay on-chain payment reconciliation API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Include routers
    app.include_router(payments.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name} API",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    return app


app = create_app()
