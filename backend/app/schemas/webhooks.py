"""Schemas for inbound Linear webhook events."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField

from app.schemas.common import NonEmptyStr
from app.schemas.customer_requests import CommentAuthor

_RUNTIME_TYPE_REFERENCES = (NonEmptyStr,)


class LinearStateRef(BaseModel):
    id: str
    name: str


class LinearTeamRef(BaseModel):
    id: str


class LinearCommentNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    body: str
    created_at: str = PydanticField(alias="createdAt")
    user: CommentAuthor | None = None


class LinearCommentConnection(BaseModel):
    nodes: list[LinearCommentNode] = PydanticField(default_factory=list)


class LinearWebhookData(BaseModel):
    """Issue-shaped payload carried by every handled event."""

    id: NonEmptyStr
    identifier: str | None = None
    title: str | None = None
    state: LinearStateRef | None = None
    team: LinearTeamRef | None = None
    comments: LinearCommentConnection | None = None


class LinearWebhookEvent(BaseModel):
    """A `(type, action)` event from Linear; unknown keys are ignored."""

    type: str
    action: str
    data: LinearWebhookData


class WebhookAck(BaseModel):
    """Webhook response envelope; failures are reported in the body, not the status."""

    success: bool
    error: dict[str, object] | None = None
