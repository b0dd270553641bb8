"""Minimal saga runner for multi-step writes without a shared transaction.

Each step pairs an action with an optional compensating action.  If a
step fails, the compensations of the steps that already completed run in
reverse order and the original error is re-raised.  Steps without a
compensation (the last step of a saga, or side effects accepted as
orphans such as content-store uploads) are simply skipped on unwind.

A compensation is only safe while nothing else can have observed the
earlier step's result.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SagaStep:
    name: str
    action: Callable[[], Awaitable[Any]]
    compensate: Callable[[], Awaitable[None]] | None = None


async def run_saga(steps: Sequence[SagaStep]) -> list[Any]:
    """Run *steps* in order and return their results."""
    completed: list[SagaStep] = []
    results: list[Any] = []

    for step in steps:
        try:
            results.append(await step.action())
        except Exception:
            logger.warning(
                "Saga step %r failed, unwinding %d completed step(s)",
                step.name,
                len(completed),
            )
            await _unwind(completed)
            raise
        completed.append(step)

    return results


async def _unwind(completed: list[SagaStep]) -> None:
    for step in reversed(completed):
        if step.compensate is None:
            continue
        try:
            await step.compensate()
        except Exception:
            # Keep unwinding; the caller still gets the original error.
            logger.exception("Compensation for saga step %r failed", step.name)
        else:
            logger.info("Compensated saga step %r", step.name)
