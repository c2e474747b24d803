"""FastAPI application factory: entry point for the REST API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from easyscrapy.config import get_settings
from easyscrapy.routers import (
    admin,
    auth,
    credits,
    facebook_pages,
    items,
    mentions,
    mvola,
    packs,
    payments,
    scheduled,
    scrape,
    sessions,
    users,
)
from easyscrapy_cli.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    # Auto-create tables for SQLite (dev mode); PostgreSQL uses Alembic
    from easyscrapy.db.session import engine
    from easyscrapy.models import Base

    settings = get_settings()
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # Initialize third-party API keys once at startup
    if settings.stripe_secret_key:
        from easyscrapy.services.payment_service import init_stripe
        init_stripe()
    if settings.resend_api_key:
        import resend
        resend.api_key = settings.resend_api_key

    # Initialize shared httpx client for connection pooling
    from easyscrapy.http_client import init_http_client, close_http_client
    await init_http_client()

    yield

    await close_http_client()
    await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(verbose=settings.debug)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    # --- Error handlers ---
    @app.exception_handler(500)
    async def server_error_handler(request: Request, exc):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "An unexpected error occurred. Please try again later."},
        )

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    # --- Routers ---
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(scrape.router)
    app.include_router(sessions.router)
    app.include_router(payments.router)
    app.include_router(mvola.router)
    app.include_router(credits.router)
    app.include_router(credits.estimate_router)
    app.include_router(packs.router)
    app.include_router(items.router)
    app.include_router(scheduled.router)
    app.include_router(facebook_pages.router)
    app.include_router(mentions.router)
    app.include_router(admin.router)

    return app


app = create_app()
