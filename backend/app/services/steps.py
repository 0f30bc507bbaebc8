"""Ordered persistence steps with per-step error capture.

Completing a match touches several tables without a surrounding transaction.
Each write is described as a named :class:`Step`; :func:`run_steps` executes
them in order, logs every failure with its step name and reports what ran.
Nothing is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from ..exceptions import DependencyWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class StepResult:
    name: str
    ok: bool
    error: Exception | None = None
    skipped: bool = False


async def run_steps(
    steps: Sequence[Step],
    *,
    stop_on_error: bool = True,
    context: str = "",
) -> list[StepResult]:
    """Run ``steps`` in order and return one result per step.

    With ``stop_on_error`` the remaining steps are reported as skipped after
    the first failure; otherwise every step is attempted.
    """

    results: list[StepResult] = []
    failed = False
    for step in steps:
        if failed and stop_on_error:
            results.append(StepResult(step.name, ok=False, skipped=True))
            continue
        try:
            await step.run()
        except Exception as exc:
            logger.error(
                "Persistence step %r failed (%s): %s",
                step.name,
                context or "no context",
                exc,
                exc_info=True,
            )
            results.append(StepResult(step.name, ok=False, error=exc))
            failed = True
        else:
            results.append(StepResult(step.name, ok=True))
    return results


def raise_for_failures(results: Sequence[StepResult], what: str) -> None:
    """Collapse failed steps into a single :class:`DependencyWriteError`."""

    failures = [r for r in results if r.error is not None]
    if not failures:
        return
    names = ", ".join(r.name for r in failures)
    raise DependencyWriteError(
        f"{what} failed at step(s): {names}",
        step=failures[0].name,
        failures=failures,
    )
