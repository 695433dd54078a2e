"""
Billing Sync Service

Entry point for the FastAPI application.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI
from starlette.responses import JSONResponse, PlainTextResponse

from billing_sync import __version__
from billing_sync.api.v1 import router as api_v1_router
from billing_sync.api.webhooks import router as webhooks_router
from billing_sync.core.config import Settings, get_settings
from billing_sync.core.container import ServiceContainer
from billing_sync.core.logging import configure_logging
from billing_sync.services.stripe_client import SubscriptionFetcher

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    *,
    fetcher: Optional[SubscriptionFetcher] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Billing Sync",
        description="Keeps subscriber subscription state in step with Stripe.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    container = ServiceContainer.from_settings(settings, fetcher=fetcher)
    app.state.container = container

    app.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the subscriber store must answer."""
        try:
            await container.database.ping()
        except Exception as exc:
            log.warning("readiness.database_unavailable", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.get("/metrics", tags=["System"], response_class=PlainTextResponse)
    async def metrics():
        return container.metrics.to_prometheus()

    @app.on_event("startup")
    async def on_startup():
        if not settings.stripe_webhook_secret:
            log.warning("startup.webhook_secret_missing")
        log.info(
            "Billing sync starting",
            redis=bool(settings.redis_url),
            subscription_fetch=bool(settings.stripe_api_key or fetcher),
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Billing sync shutting down")
        await container.close()

    return app


app = create_app()
