"""Customer request lifecycle: create-and-link saga, reads, updates, soft delete."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from app.core.errors import NotFoundError, TrackerError, ValidationError
from app.core.logging import get_logger
from app.core.time import isoformat, utcnow
from app.db import customer_requests as crud
from app.schemas.customer_requests import (
    CUSTOMER_REQUEST_STATUSES,
    CustomerRequestCreate,
    CustomerRequestMetadata,
    CustomerRequestPage,
    CustomerRequestRead,
    CustomerRequestUpdate,
    IssueSuggestion,
)
from app.services.saga import SagaFailed, SagaStep, run_saga

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.db.store import RecordStore
    from app.services.issue_tracker import CreatedTicket, LinearClient
    from app.services.text_generation import TextGenerationClient

logger = get_logger(__name__)
TITLE_MAX_CHARS = 80
SUMMARY_MAX_CHARS = 280
CREATE_TICKET_STEP = "create_linear_issue"


def _collapse(text: str) -> str:
    return " ".join(text.split())


def build_ticket_title(content: str, request_type: str) -> str:
    """First non-empty line of the request, trimmed, prefixed with its type."""
    first_line = next((line for line in content.splitlines() if line.strip()), content)
    title = _collapse(first_line)
    if len(title) > TITLE_MAX_CHARS:
        title = title[: TITLE_MAX_CHARS - 3].rstrip() + "..."
    return f"[{request_type.capitalize()}] {title}"


def build_ticket_body(
    payload: CustomerRequestCreate,
    *,
    suggestion: IssueSuggestion | None = None,
) -> str:
    sections: list[str] = []
    if suggestion is not None:
        sections.extend([suggestion.description, "", "---", "**Original request**", ""])
    sections.append(payload.content)
    context = [
        "",
        "---",
        "**Customer context**",
        f"- Type: {payload.type}",
        f"- External user id: {payload.external_user_id}",
    ]
    if payload.user_name:
        context.append(f"- User name: {payload.user_name}")
    if payload.reason:
        context.append(f"- Reason: {payload.reason}")
    if payload.source:
        context.append(f"- Source: {payload.source}")
    return "\n".join([*sections, *context])


@dataclass
class _CreateState:
    """Values carried between the steps of one create saga."""

    request_id: str
    ticket: CreatedTicket | None = None
    linked_at: str | None = None


class CustomerRequestService:
    """Owns customer request records and their link to a Linear issue."""

    def __init__(
        self,
        *,
        settings: Settings,
        store: RecordStore,
        tracker: LinearClient,
        text_generator: TextGenerationClient,
    ) -> None:
        self.settings = settings
        self.store = store
        self.tracker = tracker
        self.text_generator = text_generator

    async def create(self, payload: CustomerRequestCreate) -> CustomerRequestRead:
        """Insert a pending record, create its Linear issue, then link the two.

        If the issue cannot be created (or linked) the inserted record is
        deleted again, so a failed create leaves nothing addressable behind.
        """
        metadata = payload.metadata_ or CustomerRequestMetadata()
        suggestion = await self.text_generator.suggest_issue_structure(
            content=payload.content,
            request_type=payload.type,
            metadata=metadata.to_storage(),
        )
        if suggestion is not None:
            metadata = metadata.model_copy(update={"model_issue_suggestion": suggestion})

        now = isoformat(utcnow())
        state = _CreateState(request_id=str(uuid4()))
        values: dict[str, object] = {
            "id": state.request_id,
            "created_at": now,
            "updated_at": now,
            "content": payload.content,
            "type": payload.type,
            "status": "pending",
            "external_user_id": payload.external_user_id,
            "user_name": payload.user_name or None,
            "project_id": payload.project_id,
            "response": None,
            "source": payload.source or None,
            "metadata": metadata.to_json(),
        }
        title = suggestion.title if suggestion else build_ticket_title(payload.content, payload.type)
        body = build_ticket_body(payload, suggestion=suggestion)
        label_ids = [self.tracker.default_label_id] if self.tracker.default_label_id else []

        async def _insert() -> None:
            await crud.insert(self.store, values)

        async def _undo_insert() -> None:
            await crud.hard_delete(self.store, state.request_id)
            logger.warning("customer_requests.create.rollback request_id=%s", state.request_id)

        async def _create_ticket() -> None:
            state.ticket = await self.tracker.create_ticket(
                scope_id=payload.project_id,
                title=title,
                body=body,
                label_ids=label_ids,
            )

        async def _link_ticket() -> None:
            if state.ticket is None:
                raise RuntimeError("cannot link before the Linear issue exists")
            state.linked_at = isoformat(utcnow())
            await crud.link_ticket(
                self.store,
                state.request_id,
                ticket_id=state.ticket.ticket_id,
                now=state.linked_at,
            )

        try:
            await run_saga(
                [
                    SagaStep("insert_record", _insert, compensate=_undo_insert),
                    SagaStep(CREATE_TICKET_STEP, _create_ticket),
                    SagaStep("link_ticket", _link_ticket),
                ],
                saga_name="customer_request_create",
            )
        except SagaFailed as exc:
            if exc.step == "link_ticket" and state.ticket is not None:
                logger.error(
                    "customer_requests.create.orphaned_ticket request_id=%s ticket_id=%s",
                    state.request_id,
                    state.ticket.ticket_id,
                )
            if exc.step != CREATE_TICKET_STEP:
                raise exc.cause from None
            cause = exc.cause
            reason = cause.message if isinstance(cause, TrackerError) else (str(cause) or "Unknown error")
            raise TrackerError(
                f"Failed to create Linear issue: {reason}",
                status_code=cause.status_code if isinstance(cause, TrackerError) else None,
                details=cause.details if isinstance(cause, TrackerError) else None,
            ) from cause

        ticket = state.ticket
        if ticket is None:
            raise RuntimeError("create saga finished without a Linear issue")
        logger.info(
            "customer_requests.create.linked request_id=%s ticket_id=%s identifier=%s",
            state.request_id,
            ticket.ticket_id,
            ticket.identifier,
        )
        await self._store_creation_message(state.request_id, payload, ticket, suggestion)
        return await self.get(state.request_id)

    async def _store_creation_message(
        self,
        request_id: str,
        payload: CustomerRequestCreate,
        ticket: CreatedTicket,
        suggestion: IssueSuggestion | None,
    ) -> None:
        summary = suggestion.title if suggestion else _collapse(payload.content)[:SUMMARY_MAX_CHARS]
        message = await self.text_generator.draft_creation_message(
            user_name=payload.user_name,
            request_type=payload.type,
            summary=summary,
            identifier=ticket.identifier,
        )
        if not message:
            return
        try:
            await crud.update_fields(
                self.store,
                request_id,
                {"response": message},
                now=isoformat(utcnow()),
            )
        except Exception:
            logger.warning(
                "customer_requests.create.response_store_failed request_id=%s",
                request_id,
                exc_info=True,
            )
            return
        logger.info("customer_requests.create.response_drafted request_id=%s", request_id)

    async def get(self, request_id: str) -> CustomerRequestRead:
        row = await crud.get_active(self.store, request_id)
        if row is None:
            raise NotFoundError(f"Customer request with id {request_id} not found")
        return crud.row_to_read(row)

    async def update(self, request_id: str, payload: CustomerRequestUpdate) -> CustomerRequestRead:
        """Apply only the fields present in the payload; always bump `updated_at`."""
        fields: dict[str, object] = {}
        for name in payload.model_fields_set:
            if name == "metadata_":
                metadata = payload.metadata_ or CustomerRequestMetadata()
                fields["metadata"] = metadata.to_json()
            else:
                fields[name] = getattr(payload, name)
        affected = await crud.update_fields(self.store, request_id, fields, now=isoformat(utcnow()))
        if affected == 0:
            raise NotFoundError(f"Customer request with id {request_id} not found")
        return await self.get(request_id)

    async def soft_delete(self, request_id: str) -> None:
        affected = await crud.soft_delete(self.store, request_id, now=isoformat(utcnow()))
        if affected == 0:
            raise NotFoundError(f"Customer request with id {request_id} not found")
        logger.info("customer_requests.soft_deleted request_id=%s", request_id)

    async def list(
        self,
        *,
        status: str | None = None,
        external_user_id: str | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> CustomerRequestPage:
        """Page through active records ordered by id, `cursor` exclusive."""
        page_size = self.settings.list_default_limit if limit is None else limit
        if not 1 <= page_size <= self.settings.list_max_limit:
            raise ValidationError(
                f"limit must be between 1 and {self.settings.list_max_limit}",
                details={"limit": limit},
            )
        if status is not None and status not in CUSTOMER_REQUEST_STATUSES:
            raise ValidationError(f"Unknown status '{status}'", details={"status": status})

        rows = await crud.list_active(
            self.store,
            status=status,
            external_user_id=external_user_id or None,
            cursor=cursor or None,
            fetch=page_size + 1,
        )
        items = [crud.row_to_read(row) for row in rows[:page_size]]
        next_cursor = items[-1].id if len(rows) > page_size else None
        return CustomerRequestPage(items=items, next_cursor=next_cursor)
