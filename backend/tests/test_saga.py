# ruff: noqa: S101
from __future__ import annotations

import pytest

from app.services.saga import SagaFailed, SagaStep, run_saga


def _recording_step(
    name: str,
    log: list[str],
    *,
    fail: bool = False,
    compensate: bool = True,
    compensate_fails: bool = False,
) -> SagaStep:
    async def _action() -> str:
        log.append(f"do:{name}")
        if fail:
            raise RuntimeError(f"{name} exploded")
        return name

    async def _undo() -> None:
        log.append(f"undo:{name}")
        if compensate_fails:
            raise RuntimeError(f"{name} undo exploded")

    return SagaStep(name, _action, compensate=_undo if compensate else None)


@pytest.mark.asyncio
async def test_run_saga_runs_steps_in_order_and_returns_results() -> None:
    log: list[str] = []

    results = await run_saga(
        [_recording_step("a", log), _recording_step("b", log)],
        saga_name="test",
    )

    assert results == ["a", "b"]
    assert log == ["do:a", "do:b"]


@pytest.mark.asyncio
async def test_failure_compensates_completed_steps_in_reverse() -> None:
    log: list[str] = []

    with pytest.raises(SagaFailed) as exc_info:
        await run_saga(
            [
                _recording_step("a", log),
                _recording_step("b", log, compensate=False),
                _recording_step("c", log),
                _recording_step("d", log, fail=True),
                _recording_step("e", log),
            ],
            saga_name="test",
        )

    assert exc_info.value.step == "d"
    assert str(exc_info.value.cause) == "d exploded"
    assert log == ["do:a", "do:b", "do:c", "do:d", "undo:c", "undo:a"]


@pytest.mark.asyncio
async def test_failed_compensation_does_not_mask_original_failure(caplog: pytest.LogCaptureFixture) -> None:
    log: list[str] = []

    with pytest.raises(SagaFailed) as exc_info:
        await run_saga(
            [
                _recording_step("a", log),
                _recording_step("b", log, compensate_fails=True),
                _recording_step("c", log, fail=True),
            ],
            saga_name="test",
        )

    assert exc_info.value.step == "c"
    assert log == ["do:a", "do:b", "do:c", "undo:b", "undo:a"]
    assert "saga.step.compensation_failed saga=test step=b" in caplog.text
