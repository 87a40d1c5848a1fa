"""FastAPI application factory for the customer request sync service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI

from app.api.customer_requests import router as customer_requests_router
from app.api.webhooks import router as webhooks_router
from app.core.config import Settings, get_settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging, get_logger
from app.db.store import RecordStore, create_store, init_schema
from app.schemas.common import OkResponse
from app.services.customer_requests import CustomerRequestService
from app.services.issue_tracker import LinearClient
from app.services.text_generation import TextGenerationClient
from app.services.webhook_reconciliation import WebhookReconciler

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStore | None = None,
    tracker_transport: httpx.AsyncBaseTransport | None = None,
    text_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Wire settings, store and clients into a new application.

    Transports are injectable so tests can answer Linear and text generation
    calls without a network.
    """
    settings = settings or get_settings()
    store = store or create_store(settings)
    tracker = LinearClient(settings, transport=tracker_transport)
    text_generator = TextGenerationClient(settings, transport=text_transport)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings)
        if settings.db_auto_create:
            await init_schema(store.engine)
        if not tracker.configured:
            logger.warning("app.startup.linear_unconfigured customer request creation will fail")
        logger.info(
            "app.startup environment=%s ai_enabled=%s webhook_auth=%s",
            settings.environment,
            text_generator.enabled,
            settings.webhook_auth_configured(),
        )
        try:
            yield
        finally:
            await store.dispose()

    app = FastAPI(title="Customer Request Sync", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.customer_requests = CustomerRequestService(
        settings=settings,
        store=store,
        tracker=tracker,
        text_generator=text_generator,
    )
    app.state.webhook_reconciler = WebhookReconciler(
        settings=settings,
        store=store,
        tracker=tracker,
        text_generator=text_generator,
    )
    register_exception_handlers(app)

    @app.get("/health", response_model=OkResponse, tags=["health"])
    async def health() -> OkResponse:
        return OkResponse()

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(customer_requests_router)
    api_v1.include_router(webhooks_router)
    app.include_router(api_v1)
    return app
