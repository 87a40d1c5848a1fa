"""Dependency providers for the components `create_app` stores on `app.state`."""

from __future__ import annotations

from fastapi import Request

from app.services.customer_requests import CustomerRequestService
from app.services.webhook_reconciliation import WebhookReconciler


def get_customer_request_service(request: Request) -> CustomerRequestService:
    return request.app.state.customer_requests


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.webhook_reconciler
