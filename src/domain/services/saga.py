from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from src.domain.errors import PartialFailureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: Callable[[], Any]
    # None means the step cannot be undone once it has landed
    compensate: Callable[[], Any] | None = None


@dataclass
class Saga:
    """A fixed list of writes against independent stores.

    Steps run in order. When a step fails, the steps that already landed are
    compensated in reverse order. The outcome is one of:

    - every step succeeded: the step results are returned;
    - nothing had landed, or everything that landed was compensated: the
      original exception is re-raised unchanged;
    - something that landed could not be undone: ``PartialFailureError``
      naming the failed step, the completed steps and the compensations.
    """

    operation: str
    steps: list[SagaStep]
    context: dict[str, Any] = field(default_factory=dict)

    def run(self) -> list[Any]:
        completed: list[SagaStep] = []
        results: list[Any] = []
        for step in self.steps:
            try:
                results.append(step.action())
            except Exception as exc:
                logger.error(
                    "%s: step %r failed after %d completed step(s): %s",
                    self.operation,
                    step.name,
                    len(completed),
                    exc,
                )
                self._unwind(step, completed, exc)
                raise
            completed.append(step)
        return results

    def _unwind(self, failed: SagaStep, completed: list[SagaStep], exc: Exception) -> None:
        if not completed:
            return

        compensated: list[str] = []
        compensation_failed: list[str] = []
        irreversible: list[str] = []
        for step in reversed(completed):
            if step.compensate is None:
                irreversible.append(step.name)
                continue
            try:
                step.compensate()
                compensated.append(step.name)
                logger.warning("%s: compensated step %r", self.operation, step.name)
            except Exception as comp_exc:
                compensation_failed.append(step.name)
                logger.error(
                    "%s: compensation of step %r failed: %s", self.operation, step.name, comp_exc
                )

        if not compensation_failed and not irreversible:
            return

        raise PartialFailureError(
            f"{self.operation} left stores inconsistent: step '{failed.name}' failed",
            operation=self.operation,
            failed_step=failed.name,
            completed_steps=[s.name for s in completed],
            compensated_steps=compensated,
            compensation_failed=compensation_failed,
            context=self.context,
            cause=exc,
        ) from exc
