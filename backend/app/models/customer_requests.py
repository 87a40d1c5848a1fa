"""Customer request records mirrored to Linear issues."""

from __future__ import annotations

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

CUSTOMER_REQUESTS_TABLE = "customer_requests"


class CustomerRequestRow(SQLModel, table=True):
    """Storage shape of a customer request.

    Timestamps are ISO-8601 UTC text and `metadata_json` is JSON text so that
    rows round-trip unchanged through plain parameterized statements.
    """

    __tablename__ = CUSTOMER_REQUESTS_TABLE  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True)
    created_at: str
    updated_at: str
    content: str
    type: str
    status: str = Field(index=True)
    external_user_id: str = Field(index=True)
    user_name: str | None = Field(default=None)
    project_id: str
    linear_issue_id: str | None = Field(default=None, index=True)
    response: str | None = Field(default=None)
    source: str | None = Field(default=None)
    metadata_json: str | None = Field(default=None, sa_column=Column("metadata", Text, nullable=True))
    deleted_at: str | None = Field(default=None, index=True)
