"""Sequential multi-step operations with explicit compensating actions."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SagaStep:
    """One forward action and the undo that reverses it once it has succeeded."""

    name: str
    action: Callable[[], Awaitable[object]]
    compensate: Callable[[], Awaitable[object]] | None = None


class SagaFailed(Exception):
    """Raised after a step fails and every completed step was compensated."""

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"saga step '{step}' failed: {cause}")


async def run_saga(steps: Sequence[SagaStep], *, saga_name: str) -> list[object]:
    """Run steps in order; on failure undo completed steps in reverse and raise.

    A compensation that itself fails is logged and skipped so that the
    remaining compensations still run and the original failure is reported.
    """
    results: list[object] = []
    completed: list[SagaStep] = []
    for step in steps:
        try:
            results.append(await step.action())
        except Exception as exc:
            logger.warning(
                "saga.step.failed saga=%s step=%s error=%s",
                saga_name,
                step.name,
                exc,
            )
            for done in reversed(completed):
                if done.compensate is None:
                    continue
                try:
                    await done.compensate()
                    logger.warning(
                        "saga.step.compensated saga=%s step=%s",
                        saga_name,
                        done.name,
                    )
                except Exception:
                    logger.exception(
                        "saga.step.compensation_failed saga=%s step=%s",
                        saga_name,
                        done.name,
                    )
            raise SagaFailed(step.name, exc) from exc
        completed.append(step)
    return results
