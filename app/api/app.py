"""
FastAPI app for the deepfake verification ordering service.

The app factory wires routers and error handlers. When no prebuilt services
are given, the lifespan opens the connection pool, runs the schema migration
and builds them.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.errors import register_exception_handlers
from app.api.routes import orders, payments, uploads
from app.api.schemas import HealthResponse
from app.config.settings import Settings
from app.database.connection import close_pool, init_pool
from app.database.migrations import migrate
from app.services import Services, build_services


def create_app(settings: Settings, services: Services | None = None) -> FastAPI:
    owns_services = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if owns_services:
            init_pool(settings)
            migrate()
            app.state.services = build_services(settings)
        try:
            yield
        finally:
            if owns_services:
                close_pool()

    app = FastAPI(
        title="Deepfake Verification Orders",
        version="0.1.0",
        description="Uploads, priced orders, card/token payments and detection results.",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.public_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    app.include_router(orders.router)
    app.include_router(uploads.router)
    app.include_router(payments.router)
    return app
