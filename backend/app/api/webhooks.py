"""Inbound Linear webhook receiver."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_webhook_reconciler
from app.core.errors import WebhookAuthError, format_error_response
from app.core.logging import get_logger
from app.schemas.webhooks import WebhookAck
from app.services.webhook_reconciliation import WebhookReconciler

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
RECONCILER_DEP = Depends(get_webhook_reconciler)
logger = get_logger(__name__)


@router.post("/linear", response_model=WebhookAck)
async def receive_linear_webhook(
    request: Request,
    reconciler: WebhookReconciler = RECONCILER_DEP,
) -> WebhookAck | JSONResponse:
    """Apply a Linear event.

    Processing errors are acknowledged with `success: false` and status 200 so
    Linear does not redeliver; only authentication failures return 401.
    """
    raw_body = await request.body()
    try:
        return await reconciler.receive(request.headers, raw_body)
    except WebhookAuthError as exc:
        logger.warning(
            "webhook.linear.unauthorized client=%s",
            request.client.host if request.client else "unknown",
        )
        return JSONResponse(format_error_response(exc), status_code=exc.status_code)
