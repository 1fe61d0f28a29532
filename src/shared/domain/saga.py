"""Saga and best-effort primitives for multi-step, non-transactional writes.

A ``Saga`` is an ordered list of ``SagaStep`` (action + optional
compensation).  Steps run in order; when one fails, the compensations of the
steps that already completed run in reverse order and ``SagaStepError`` is
raised with the failing step name.

``best_effort`` wraps a side effect whose failure must never abort the
primary operation.  It returns a ``BestEffortResult`` the caller may inspect
or ignore.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class SagaStepError(Exception):
    """A saga step failed; compensations have already been applied."""

    def __init__(self, saga: str, step: str, cause: BaseException) -> None:
        self.saga = saga
        self.step = step
        self.cause = cause
        super().__init__(f"{saga}: step '{step}' failed: {cause}")


@dataclass(frozen=True)
class SagaStep:
    name: str
    action: Callable[[], Any]
    compensation: Optional[Callable[[], Any]] = None


class Saga:
    """Ordered steps executed with rollback-on-failure semantics."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._steps: List[SagaStep] = []

    @property
    def steps(self) -> List[SagaStep]:
        return list(self._steps)

    def add_step(
        self,
        name: str,
        action: Callable[[], Any],
        compensation: Optional[Callable[[], Any]] = None,
    ) -> Saga:
        self._steps.append(SagaStep(name, action, compensation))
        return self

    def run(self) -> Dict[str, Any]:
        """Run every step; return each step's result keyed by step name.

        Raises:
            SagaStepError: a step raised.  Completed steps were compensated.
        """
        log = logger.bind(saga=self.name)
        completed: List[SagaStep] = []
        results: Dict[str, Any] = {}

        for step in self._steps:
            try:
                results[step.name] = step.action()
            except Exception as exc:
                log.warning("saga.step_failed", step=step.name, error=str(exc))
                self._compensate(completed)
                raise SagaStepError(self.name, step.name, exc) from exc
            completed.append(step)

        log.debug("saga.completed", steps=[s.name for s in completed])
        return results

    def _compensate(self, completed: List[SagaStep]) -> None:
        log = logger.bind(saga=self.name)
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                step.compensation()
            except Exception as exc:
                # The original failure is what the caller needs to see.
                log.error(
                    "saga.compensation_failed", step=step.name, error=str(exc)
                )
            else:
                log.info("saga.compensated", step=step.name)


@dataclass(frozen=True)
class BestEffortResult:
    """Outcome of a side effect that is allowed to fail silently."""

    step: str
    ok: bool
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, step: str) -> BestEffortResult:
        return cls(step=step, ok=True)

    @classmethod
    def failed(cls, step: str, error: str) -> BestEffortResult:
        return cls(step=step, ok=False, error=error)

    def as_dict(self) -> Dict[str, Any]:
        return {"step": self.step, "ok": self.ok, "error": self.error}


def best_effort(step: str, action: Callable[[], Any]) -> BestEffortResult:
    """Run *action*; report an exception or a ``False`` return as failure."""
    try:
        outcome = action()
    except Exception as exc:
        logger.warning("best_effort.failed", step=step, error=str(exc))
        return BestEffortResult.failed(step, str(exc))

    if outcome is False:
        logger.warning("best_effort.rejected", step=step)
        return BestEffortResult.failed(step, "collaborator reported failure")
    return BestEffortResult.succeeded(step)
