"""SQL statements for the customer_requests table, one statement per call."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from app.models.customer_requests import CUSTOMER_REQUESTS_TABLE
from app.schemas.customer_requests import CustomerRequestMetadata, CustomerRequestRead

if TYPE_CHECKING:
    from app.db.store import RecordStore, Row

_TABLE = CUSTOMER_REQUESTS_TABLE
# Columns a caller may write through `update_fields`.
UPDATABLE_COLUMNS = frozenset({"status", "content", "type", "response", "metadata"})


def row_to_read(row: Mapping[str, object]) -> CustomerRequestRead:
    """Convert a raw row into the read model, decoding the metadata JSON."""
    values = dict(row)
    values["metadata"] = CustomerRequestMetadata.from_json(values.get("metadata"))
    return CustomerRequestRead.model_validate(values)


async def insert(store: RecordStore, values: Mapping[str, object]) -> int:
    return await store.execute(
        f"""
        INSERT INTO {_TABLE} (
            id, created_at, updated_at, content, type, status,
            external_user_id, user_name, project_id, linear_issue_id,
            response, source, metadata, deleted_at
        ) VALUES (
            :id, :created_at, :updated_at, :content, :type, :status,
            :external_user_id, :user_name, :project_id, NULL,
            :response, :source, :metadata, NULL
        )
        """,
        values,
    )


async def hard_delete(store: RecordStore, request_id: str) -> int:
    return await store.execute(f"DELETE FROM {_TABLE} WHERE id = :id", {"id": request_id})


async def get_active(store: RecordStore, request_id: str) -> Row | None:
    rows = await store.query(
        f"SELECT * FROM {_TABLE} WHERE id = :id AND deleted_at IS NULL",
        {"id": request_id},
    )
    return rows[0] if rows else None


async def find_active_by_ticket(store: RecordStore, ticket_id: str) -> Row | None:
    rows = await store.query(
        f"""
        SELECT * FROM {_TABLE}
        WHERE linear_issue_id = :ticket_id AND deleted_at IS NULL
        ORDER BY id ASC
        LIMIT 1
        """,
        {"ticket_id": ticket_id},
    )
    return rows[0] if rows else None


async def link_ticket(store: RecordStore, request_id: str, *, ticket_id: str, now: str) -> int:
    return await store.execute(
        f"UPDATE {_TABLE} SET linear_issue_id = :ticket_id, updated_at = :now WHERE id = :id",
        {"ticket_id": ticket_id, "now": now, "id": request_id},
    )


async def update_fields(
    store: RecordStore,
    request_id: str,
    fields: Mapping[str, object],
    *,
    now: str,
) -> int:
    """Write only the supplied columns plus `updated_at` on an active row."""
    unknown = set(fields) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"not updatable: {sorted(unknown)}")
    assignments = ["updated_at = :updated_at"]
    params: dict[str, object] = {"updated_at": now, "id": request_id}
    for column, value in fields.items():
        assignments.append(f"{column} = :{column}")
        params[column] = value
    return await store.execute(
        f"UPDATE {_TABLE} SET {', '.join(assignments)} WHERE id = :id AND deleted_at IS NULL",
        params,
    )


async def soft_delete(store: RecordStore, request_id: str, *, now: str) -> int:
    return await store.execute(
        f"""
        UPDATE {_TABLE} SET deleted_at = :now, updated_at = :now
        WHERE id = :id AND deleted_at IS NULL
        """,
        {"now": now, "id": request_id},
    )


async def update_reconciled(
    store: RecordStore,
    request_id: str,
    *,
    status: str,
    metadata: str | None,
    response: str | None,
    now: str,
    expected_status: str | None = None,
) -> int:
    """Persist a reconciled status; with `expected_status` it is a compare-and-swap."""
    statement = f"""
        UPDATE {_TABLE}
        SET status = :status, metadata = :metadata, response = :response, updated_at = :now
        WHERE id = :id
    """
    params: dict[str, object] = {
        "status": status,
        "metadata": metadata,
        "response": response,
        "now": now,
        "id": request_id,
    }
    if expected_status is not None:
        statement += " AND status = :expected_status AND deleted_at IS NULL"
        params["expected_status"] = expected_status
    return await store.execute(statement, params)


async def update_metadata(store: RecordStore, request_id: str, *, metadata: str | None, now: str) -> int:
    return await store.execute(
        f"UPDATE {_TABLE} SET metadata = :metadata, updated_at = :now WHERE id = :id",
        {"metadata": metadata, "now": now, "id": request_id},
    )


async def list_active(
    store: RecordStore,
    *,
    status: str | None,
    external_user_id: str | None,
    cursor: str | None,
    fetch: int,
) -> list[Row]:
    conditions = ["deleted_at IS NULL"]
    params: dict[str, object] = {"fetch": fetch}
    if status is not None:
        conditions.append("status = :status")
        params["status"] = status
    if external_user_id is not None:
        conditions.append("external_user_id = :external_user_id")
        params["external_user_id"] = external_user_id
    if cursor is not None:
        conditions.append("id > :cursor")
        params["cursor"] = cursor
    return await store.query(
        f"""
        SELECT * FROM {_TABLE}
        WHERE {' AND '.join(conditions)}
        ORDER BY id ASC
        LIMIT :fetch
        """,
        params,
    )
