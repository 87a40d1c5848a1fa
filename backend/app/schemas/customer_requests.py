"""Schemas for customer request lifecycle APIs and the metadata bag."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel

from app.schemas.common import NonEmptyStr

_RUNTIME_TYPE_REFERENCES = (datetime, NonEmptyStr)

CustomerRequestType = Literal["bug", "feature"]
CustomerRequestStatus = Literal[
    "pending",
    "triaged",
    "in_progress",
    "in_review",
    "resolved",
    "closed",
    "cancelled",
    "error",
]
CUSTOMER_REQUEST_STATUSES: tuple[str, ...] = CustomerRequestStatus.__args__  # type: ignore[attr-defined]


class CommentAuthor(BaseModel):
    id: str
    name: str


class LinearStateSnapshot(BaseModel):
    """Last Linear workflow state seen for the linked issue."""

    id: str
    name: str
    updated_at: str


class LatestCommentSnapshot(BaseModel):
    """Most recent Linear comment recorded from a comment webhook."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    body: str
    created_at: str = PydanticField(alias="createdAt")
    user: CommentAuthor | None = None


class IssueSuggestion(BaseModel):
    """Structured issue proposed by the text generation service."""

    title: str
    description: str
    labels: list[str] = PydanticField(default_factory=list)
    priority: int = 2


class CustomerRequestMetadata(BaseModel):
    """Open metadata bag with typed slots for the enrichment shapes.

    Unknown caller-supplied keys are kept as extra fields, and `env` and
    `app_version` keep whatever JSON value the caller sent. Known sub-objects
    are replaced whole, never deep-merged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    env: Any = None
    app_version: Any = None
    cancel_reason: str | None = None
    linear_state: LinearStateSnapshot | None = None
    latest_comment: LatestCommentSnapshot | None = None
    model_issue_suggestion: IssueSuggestion | None = None

    def to_storage(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str | None:
        """Serialize for the metadata column; an empty bag is stored as NULL."""
        payload = self.to_storage()
        if not payload:
            return None
        return json.dumps(payload, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: object) -> Self | None:
        if raw is None or raw == "":
            return None
        decoded = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if not isinstance(decoded, dict):
            return None
        return cls.model_validate(decoded)


class CustomerRequestCreate(SQLModel):
    """Payload for submitting a customer bug report or feature request."""

    content: NonEmptyStr
    type: CustomerRequestType
    external_user_id: NonEmptyStr
    user_name: str | None = None
    project_id: NonEmptyStr
    source: str | None = None
    reason: str | None = None
    metadata_: CustomerRequestMetadata | None = Field(
        default=None,
        alias="metadata",
        serialization_alias="metadata",
        validation_alias="metadata",
    )


class CustomerRequestUpdate(SQLModel):
    """Partial update payload; only fields present in the body are written."""

    status: CustomerRequestStatus | None = None
    content: NonEmptyStr | None = None
    type: CustomerRequestType | None = None
    response: str | None = None
    metadata_: CustomerRequestMetadata | None = Field(
        default=None,
        alias="metadata",
        serialization_alias="metadata",
        validation_alias="metadata",
    )

    @model_validator(mode="after")
    def _reject_explicit_nulls(self) -> Self:
        for name in ("status", "content", "type", "metadata_"):
            if name in self.model_fields_set and getattr(self, name) is None:
                label = "metadata" if name == "metadata_" else name
                raise ValueError(f"{label} cannot be null")
        return self


class CustomerRequestRead(SQLModel):
    """Read model for customer request records."""

    id: str
    created_at: datetime
    updated_at: datetime
    content: str
    type: CustomerRequestType
    status: CustomerRequestStatus
    external_user_id: str
    user_name: str | None = None
    project_id: str
    linear_issue_id: str | None = None
    response: str | None = None
    source: str | None = None
    metadata_: CustomerRequestMetadata | None = Field(
        default=None,
        alias="metadata",
        serialization_alias="metadata",
        validation_alias="metadata",
    )
    deleted_at: datetime | None = None


class CustomerRequestPage(SQLModel):
    """Cursor-paginated slice of customer requests."""

    items: list[CustomerRequestRead]
    next_cursor: str | None = None
