"""Parameterized query/execute adapter over an async SQLAlchemy engine."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from app.core.logging import get_logger
from app.core.time import isoformat
from app.models.customer_requests import CustomerRequestRow

if TYPE_CHECKING:
    from app.core.config import Settings

logger = get_logger(__name__)
Row = dict[str, Any]


def bind_value(value: object) -> object:
    """Coerce one parameter into a value every driver binds safely."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def bind_params(params: Mapping[str, object] | None) -> dict[str, object]:
    return {key: bind_value(value) for key, value in (params or {}).items()}


class RecordStore:
    """Minimal store contract: one statement per call, no cross-call transactions.

    Statements use named bind parameters (`:name`). Values are always bound,
    never spliced into SQL text.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def query(self, statement: str, params: Mapping[str, object] | None = None) -> list[Row]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(statement), bind_params(params))
            return [dict(row._mapping) for row in result]

    async def execute(self, statement: str, params: Mapping[str, object] | None = None) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(text(statement), bind_params(params))
            return int(result.rowcount or 0)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if not url.get_backend_name().startswith("sqlite"):
        return
    database = url.database or ""
    if not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def create_store(settings: Settings) -> RecordStore:
    """Build the store for the configured database URL."""
    _ensure_sqlite_directory(settings.database_url)
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    return RecordStore(engine)


async def init_schema(engine: AsyncEngine) -> None:
    """Create the customer request table and its indexes when missing."""
    async with engine.begin() as conn:
        await conn.run_sync(
            SQLModel.metadata.create_all,
            tables=[CustomerRequestRow.__table__],  # type: ignore[attr-defined]
        )
    logger.info("db.schema.ready table=%s", CustomerRequestRow.__tablename__)
