# ruff: noqa: S101
from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import Settings
from app.core.errors import NotFoundError, TrackerError, ValidationError
from app.db import customer_requests as crud
from app.db.store import RecordStore, init_schema
from app.schemas.customer_requests import CustomerRequestCreate, CustomerRequestUpdate
from app.services.customer_requests import (
    CustomerRequestService,
    build_ticket_body,
    build_ticket_title,
)
from app.services.issue_tracker import LinearClient
from app.services.text_generation import TextGenerationClient

Handler = Callable[[httpx.Request], httpx.Response]


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {"linear_api_key": "lin_api_test", "environment": "test"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _linear_ok(calls: list[dict[str, object]]) -> Handler:
    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.read().decode("utf-8")))
        return httpx.Response(
            200,
            json={
                "data": {
                    "issueCreate": {
                        "success": True,
                        "issue": {"id": "issue-42", "identifier": "T-42", "url": "https://linear.app/t/T-42"},
                    },
                },
            },
        )

    return _handler


def _linear_rejects(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"errors": [{"message": "Project not found"}]})


async def _service(
    tmp_path: Path,
    *,
    linear: Handler,
    text: Handler | None = None,
    **overrides: object,
) -> CustomerRequestService:
    settings = _settings(**overrides)
    store = RecordStore(create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'svc.sqlite'}"))
    await init_schema(store.engine)
    return CustomerRequestService(
        settings=settings,
        store=store,
        tracker=LinearClient(settings, transport=httpx.MockTransport(linear)),
        text_generator=TextGenerationClient(
            settings,
            transport=httpx.MockTransport(text) if text is not None else None,
        ),
    )


def _payload(**overrides: object) -> CustomerRequestCreate:
    values: dict[str, object] = {
        "content": "Export button does nothing\nClicked it three times on Safari.",
        "type": "bug",
        "external_user_id": "user-1",
        "user_name": "Ana",
        "project_id": "proj-1",
    }
    values.update(overrides)
    return CustomerRequestCreate.model_validate(values)


def test_ticket_title_uses_first_line_and_type_prefix() -> None:
    assert build_ticket_title("\n  Export   fails \nmore", "bug") == "[Bug] Export fails"
    long_title = build_ticket_title("x" * 200, "feature")
    assert long_title.startswith("[Feature] ")
    assert len(long_title) == len("[Feature] ") + 80


def test_ticket_body_includes_customer_context() -> None:
    body = build_ticket_body(_payload(reason="blocks invoicing", source="widget"))

    assert body.startswith("Export button does nothing")
    assert "- External user id: user-1" in body
    assert "- Reason: blocks invoicing" in body
    assert "- Source: widget" in body


@pytest.mark.asyncio
async def test_create_links_record_to_new_ticket(tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []
    service = await _service(tmp_path, linear=_linear_ok(calls))
    try:
        created = await service.create(_payload())

        assert created.status == "pending"
        assert created.linear_issue_id == "issue-42"
        assert created.deleted_at is None
        assert created.metadata_ is None
        assert created.response is None
        assert created.updated_at >= created.created_at
        assert len(calls) == 1
        issue_input = calls[0]["variables"]["input"]  # type: ignore[index]
        assert issue_input["title"] == "[Bug] Export button does nothing"
        assert issue_input["teamId"] == "proj-1"
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_failed_ticket_creation_leaves_no_record(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_rejects)
    try:
        with pytest.raises(TrackerError) as exc_info:
            await service.create(_payload())

        assert exc_info.value.message == "Failed to create Linear issue: Project not found"
        assert exc_info.value.status_code == 502
        rows = await service.store.query("SELECT id FROM customer_requests")
        assert rows == []
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_missing_linear_key_fails_create_and_rolls_back(tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []
    service = await _service(tmp_path, linear=_linear_ok(calls), linear_api_key="")
    try:
        with pytest.raises(TrackerError, match="LINEAR_API_KEY"):
            await service.create(_payload())

        assert calls == []
        assert await service.store.query("SELECT id FROM customer_requests") == []
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_link_failure_after_ticket_creation_removes_record(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[dict[str, object]] = []
    service = await _service(tmp_path, linear=_linear_ok(calls))

    async def _link_fails(*_args: object, **_kwargs: object) -> int:
        raise RuntimeError("db gone")

    monkeypatch.setattr(crud, "link_ticket", _link_fails)
    try:
        with pytest.raises(RuntimeError, match="db gone"):
            await service.create(_payload())

        assert len(calls) == 1
        assert await service.store.query("SELECT id FROM customer_requests") == []
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_create_keeps_non_string_env_and_app_version(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        created = await service.create(_payload(metadata={"app_version": 2, "env": ["prod", "eu"], "device": "ios"}))
        fetched = await service.get(created.id)

        assert fetched.metadata_ is not None
        assert fetched.metadata_.app_version == 2
        assert fetched.metadata_.env == ["prod", "eu"]
        assert fetched.metadata_.model_dump()["device"] == "ios"
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_create_with_text_generation_stores_suggestion_and_message(tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []
    prompts: list[str] = []

    def _text(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.read().decode("utf-8"))
        prompts.append(payload["messages"][1]["content"])
        if payload.get("response_format"):
            content = json.dumps(
                {
                    "title": "Export button unresponsive on Safari",
                    "description": "Repro: click export.",
                    "labels": ["bug", "frontend"],
                    "priority": 1,
                },
            )
        else:
            content = "Thanks Ana! We opened T-42 and will keep you posted."
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    service = await _service(
        tmp_path,
        linear=_linear_ok(calls),
        text=_text,
        enable_ai=True,
        openai_api_key="sk-test",
    )
    try:
        created = await service.create(_payload(metadata={"env": "prod", "app_version": "2.3.1"}))

        assert created.response == "Thanks Ana! We opened T-42 and will keep you posted."
        assert created.metadata_ is not None
        assert created.metadata_.env == "prod"
        assert created.metadata_.model_issue_suggestion is not None
        assert created.metadata_.model_issue_suggestion.labels == ["bug", "frontend"]
        issue_input = calls[0]["variables"]["input"]  # type: ignore[index]
        assert issue_input["title"] == "Export button unresponsive on Safari"
        assert issue_input["description"].startswith("Repro: click export.")
        assert "T-42" in prompts[1]
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_update_applies_only_present_fields(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        created = await service.create(_payload(metadata={"env": "prod"}))

        updated = await service.update(
            created.id,
            CustomerRequestUpdate.model_validate({"status": "in_progress", "response": "On it"}),
        )

        assert updated.status == "in_progress"
        assert updated.response == "On it"
        assert updated.content == created.content
        assert updated.metadata_ is not None
        assert updated.metadata_.env == "prod"
        assert updated.updated_at >= created.updated_at

        cleared = await service.update(created.id, CustomerRequestUpdate.model_validate({"response": None}))
        assert cleared.response is None
        assert cleared.status == "in_progress"
    finally:
        await service.store.dispose()


def test_update_rejects_explicit_null_status() -> None:
    with pytest.raises(ValueError, match="status cannot be null"):
        CustomerRequestUpdate.model_validate({"status": None})


@pytest.mark.asyncio
async def test_soft_delete_hides_record_and_is_not_repeatable(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        created = await service.create(_payload())

        await service.soft_delete(created.id)

        with pytest.raises(NotFoundError):
            await service.get(created.id)
        with pytest.raises(NotFoundError):
            await service.soft_delete(created.id)
        with pytest.raises(NotFoundError):
            await service.update(created.id, CustomerRequestUpdate.model_validate({"response": "late"}))
        rows = await service.store.query(
            "SELECT deleted_at, updated_at FROM customer_requests WHERE id = :id",
            {"id": created.id},
        )
        assert rows[0]["deleted_at"] is not None
        assert rows[0]["deleted_at"] == rows[0]["updated_at"]
        assert (await service.list()).items == []
    finally:
        await service.store.dispose()


async def _seed(store: RecordStore, request_ids: list[str], **overrides: object) -> None:
    for request_id in request_ids:
        values: dict[str, object] = {
            "id": request_id,
            "created_at": "2026-01-01T00:00:00+00:00",
            "updated_at": "2026-01-01T00:00:00+00:00",
            "content": f"request {request_id}",
            "type": "feature",
            "status": "pending",
            "external_user_id": "user-1",
            "user_name": None,
            "project_id": "proj-1",
            "response": None,
            "source": None,
            "metadata": None,
        }
        values.update(overrides)
        await crud.insert(store, values)


@pytest.mark.asyncio
async def test_list_pages_by_id_with_exclusive_cursor(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        await _seed(service.store, ["r3", "r1", "r5", "r2", "r4"])

        first = await service.list(limit=2)
        assert [item.id for item in first.items] == ["r1", "r2"]
        assert first.next_cursor == "r2"

        second = await service.list(limit=2, cursor=first.next_cursor)
        assert [item.id for item in second.items] == ["r3", "r4"]
        assert second.next_cursor == "r4"

        last = await service.list(limit=2, cursor=second.next_cursor)
        assert [item.id for item in last.items] == ["r5"]
        assert last.next_cursor is None
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_list_has_no_cursor_when_rows_exactly_fill_the_page(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        await _seed(service.store, ["a", "b"])

        page = await service.list(limit=2)

        assert [item.id for item in page.items] == ["a", "b"]
        assert page.next_cursor is None
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
async def test_list_filters_by_status_and_user(tmp_path: Path) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        await _seed(service.store, ["a", "b"])
        await _seed(service.store, ["c"], status="resolved")
        await _seed(service.store, ["d"], external_user_id="user-2")

        resolved = await service.list(status="resolved")
        mine = await service.list(external_user_id="user-2")

        assert [item.id for item in resolved.items] == ["c"]
        assert [item.id for item in mine.items] == ["d"]
    finally:
        await service.store.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{"limit": 0}, {"limit": 101}, {"status": "shipped"}])
async def test_list_rejects_invalid_arguments(tmp_path: Path, kwargs: dict[str, object]) -> None:
    service = await _service(tmp_path, linear=_linear_ok([]))
    try:
        with pytest.raises(ValidationError):
            await service.list(**kwargs)  # type: ignore[arg-type]
    finally:
        await service.store.dispose()
