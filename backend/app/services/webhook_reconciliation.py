"""Linear webhook authentication and the reconciliation state machine.

Inbound events advance the local record's status. The equality check between
the mapped status and the stored status is the idempotency guard: replayed or
duplicate deliveries find nothing to change and write nothing.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from app.core.auth import extract_bearer_token, tokens_match
from app.core.errors import AppError, ValidationError, WebhookAuthError, format_error_response
from app.core.logging import get_logger
from app.core.time import isoformat, utcnow
from app.db import customer_requests as crud
from app.schemas.customer_requests import (
    CustomerRequestMetadata,
    CustomerRequestRead,
    LatestCommentSnapshot,
    LinearStateSnapshot,
)
from app.schemas.webhooks import LinearWebhookEvent, WebhookAck
from app.services.issue_tracker import map_state_to_status

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.db.store import RecordStore
    from app.services.issue_tracker import LinearClient
    from app.services.text_generation import TextGenerationClient

logger = get_logger(__name__)

SIGNATURE_HEADER = "linear-signature"
SIGNATURE_PREFIX = "sha256="
ISSUE_UPSERT_ACTIONS = frozenset({"create", "update"})
ISSUE_DELETE_ACTIONS = frozenset({"remove", "delete"})
HANDLED_EVENTS = frozenset(
    {("Issue", action) for action in ISSUE_UPSERT_ACTIONS | ISSUE_DELETE_ACTIONS} | {("Comment", "create")},
)
RESOLVED_STATUS = "resolved"


class ReconcileOutcome(StrEnum):
    IGNORED = "ignored"
    NO_STATE = "no_state"
    UNMATCHED = "unmatched"
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    CONFLICT = "conflict"
    DELETED = "deleted"
    NO_COMMENTS = "no_comments"
    COMMENT_RECORDED = "comment_recorded"


def compute_signature(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def signature_matches(secret: str, raw_body: bytes, header_value: str | None) -> bool:
    """Accept either `<hex>` or `sha256=<hex>` for the HMAC-SHA256 of the body."""
    if not secret or not header_value:
        return False
    presented = header_value.strip()
    if presented.startswith(SIGNATURE_PREFIX):
        presented = presented[len(SIGNATURE_PREFIX) :]
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(presented.lower().encode("utf-8"), expected.encode("utf-8"))


class WebhookReconciler:
    """Applies Linear events to customer request records."""

    def __init__(
        self,
        *,
        settings: Settings,
        store: RecordStore,
        tracker: LinearClient,
        text_generator: TextGenerationClient,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.text_generator = text_generator
        self.bearer_token = settings.webhook_bearer_token.strip()
        self.signing_secret = settings.linear_webhook_secret.strip()
        self.conditional_updates = settings.webhook_conditional_updates
        self.max_attempts = settings.webhook_update_max_attempts
        self._warned_unconfigured = False

    def authenticate(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        """Raise `WebhookAuthError` unless a configured credential matches.

        With no bearer token and no signing secret configured every request is
        accepted; this is the development fallback and is logged.
        """
        normalized = {str(key).lower(): value for key, value in headers.items()}
        if self.bearer_token and tokens_match(extract_bearer_token(normalized), self.bearer_token):
            return
        if signature_matches(self.signing_secret, raw_body, normalized.get(SIGNATURE_HEADER)):
            return
        if not self.bearer_token and not self.signing_secret:
            if not self._warned_unconfigured:
                logger.warning("webhook.auth.unconfigured accepting unauthenticated deliveries")
                self._warned_unconfigured = True
            return
        raise WebhookAuthError("Invalid webhook authentication")

    @staticmethod
    def parse_event(raw_body: bytes) -> LinearWebhookEvent | None:
        """Decode a delivery; `None` means a `(type, action)` pair that is not handled.

        Only handled pairs are validated against the issue-shaped payload, so
        other Linear event kinds never fail on their own `data` shape.
        """
        try:
            decoded = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError("Webhook body is not valid JSON") from exc
        if not isinstance(decoded, dict):
            raise ValidationError("Webhook body is not a JSON object")
        event_type, action = decoded.get("type"), decoded.get("action")
        if not isinstance(event_type, str) or not isinstance(action, str):
            return None
        if (event_type, action) not in HANDLED_EVENTS:
            return None
        try:
            return LinearWebhookEvent.model_validate(decoded)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Webhook body is not a recognized event",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    async def receive(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookAck:
        """Authenticate, parse and apply one delivery.

        Only `WebhookAuthError` escapes; every other failure is logged and
        reported in the acknowledgement so the sender does not retry it.
        """
        self.authenticate(headers, raw_body)
        try:
            event = self.parse_event(raw_body)
            if event is None:
                logger.debug("webhook.linear.ignored")
                return WebhookAck(success=True)
            outcome = await self.handle(event)
        except AppError as exc:
            logger.warning("webhook.linear.rejected error_type=%s message=%s", exc.__class__.__name__, exc.message)
            return WebhookAck(success=False, error=format_error_response(exc))
        except Exception as exc:
            logger.exception("webhook.linear.failed error_type=%s", exc.__class__.__name__)
            return WebhookAck(success=False, error=format_error_response(exc))
        logger.info(
            "webhook.linear.handled type=%s action=%s ticket_id=%s outcome=%s",
            event.type,
            event.action,
            event.data.id,
            outcome.value,
        )
        return WebhookAck(success=True)

    async def handle(self, event: LinearWebhookEvent) -> ReconcileOutcome:
        if event.type == "Issue" and event.action in ISSUE_UPSERT_ACTIONS:
            return await self.handle_issue_upsert(event)
        if event.type == "Issue" and event.action in ISSUE_DELETE_ACTIONS:
            return await self.handle_issue_deletion(event)
        if event.type == "Comment" and event.action == "create":
            return await self.handle_comment(event)
        return ReconcileOutcome.IGNORED

    async def handle_issue_upsert(self, event: LinearWebhookEvent) -> ReconcileOutcome:
        ticket_id = event.data.id
        if event.action == "create":
            try:
                await self.tracker.add_default_label(ticket_id)
            except Exception as exc:
                logger.warning("webhook.issue.label_failed ticket_id=%s error=%s", ticket_id, exc)

        state = event.data.state
        if state is None:
            return ReconcileOutcome.NO_STATE

        new_status = map_state_to_status(state.name)
        drafted: dict[str, str | None] = {}
        for attempt in range(1, self.max_attempts + 1):
            row = await crud.find_active_by_ticket(self.store, ticket_id)
            if row is None:
                return ReconcileOutcome.UNMATCHED
            current = crud.row_to_read(row)
            if current.status == new_status:
                return ReconcileOutcome.UNCHANGED

            now = isoformat(utcnow())
            metadata = (current.metadata_ or CustomerRequestMetadata()).model_copy(
                update={
                    "linear_state": LinearStateSnapshot(id=state.id, name=state.name, updated_at=now),
                },
            )
            response = current.response
            if new_status == RESOLVED_STATUS and current.status != RESOLVED_STATUS:
                if "message" not in drafted:
                    drafted["message"] = await self._draft_resolution(current, event)
                response = drafted["message"] or current.response

            affected = await crud.update_reconciled(
                self.store,
                current.id,
                status=new_status,
                metadata=metadata.to_json(),
                response=response,
                now=now,
                expected_status=current.status if self.conditional_updates else None,
            )
            if affected:
                logger.info(
                    "webhook.issue.status_changed request_id=%s ticket_id=%s from=%s to=%s",
                    current.id,
                    ticket_id,
                    current.status,
                    new_status,
                )
                return ReconcileOutcome.UPDATED
            logger.warning(
                "webhook.issue.update_conflict request_id=%s ticket_id=%s attempt=%s",
                current.id,
                ticket_id,
                attempt,
            )
        return ReconcileOutcome.CONFLICT

    async def _draft_resolution(
        self,
        current: CustomerRequestRead,
        event: LinearWebhookEvent,
    ) -> str | None:
        """Draft the customer-facing resolution message; `None` keeps the old response."""
        if not self.text_generator.enabled:
            return None
        ticket_id = event.data.id
        try:
            latest_comment = await self.tracker.fetch_latest_comment(ticket_id)
        except Exception as exc:
            logger.warning("webhook.issue.comment_fetch_failed ticket_id=%s error=%s", ticket_id, exc)
            return None
        if not latest_comment:
            return None
        try:
            return await self.text_generator.draft_resolution_message(
                user_name=current.user_name,
                original_content=current.content,
                latest_comment=latest_comment,
                identifier=event.data.identifier or ticket_id,
            )
        except Exception as exc:
            logger.warning("webhook.issue.resolution_draft_failed ticket_id=%s error=%s", ticket_id, exc)
            return None

    async def handle_issue_deletion(self, event: LinearWebhookEvent) -> ReconcileOutcome:
        row = await crud.find_active_by_ticket(self.store, event.data.id)
        if row is None:
            return ReconcileOutcome.UNMATCHED
        await crud.soft_delete(self.store, str(row["id"]), now=isoformat(utcnow()))
        logger.info(
            "webhook.issue.soft_deleted request_id=%s ticket_id=%s",
            row["id"],
            event.data.id,
        )
        return ReconcileOutcome.DELETED

    async def handle_comment(self, event: LinearWebhookEvent) -> ReconcileOutcome:
        nodes = event.data.comments.nodes if event.data.comments else []
        if not nodes:
            return ReconcileOutcome.NO_COMMENTS
        row = await crud.find_active_by_ticket(self.store, event.data.id)
        if row is None:
            return ReconcileOutcome.UNMATCHED

        current = crud.row_to_read(row)
        latest = nodes[-1]
        metadata = (current.metadata_ or CustomerRequestMetadata()).model_copy(
            update={
                "latest_comment": LatestCommentSnapshot(
                    id=latest.id,
                    body=latest.body,
                    created_at=latest.created_at,
                    user=latest.user,
                ),
            },
        )
        await crud.update_metadata(
            self.store,
            current.id,
            metadata=metadata.to_json(),
            now=isoformat(utcnow()),
        )
        return ReconcileOutcome.COMMENT_RECORDED
