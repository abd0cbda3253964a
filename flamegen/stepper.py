"""Steady-state stepper: burst-and-check state machine.

The stepper owns an integration handle and marches it towards steady state in
bursts of ``steps_between_checks`` steps.  After every burst all registered
criteria are evaluated; the stage is converged when all of them agree.

State machine
-------------
```
UNINITIALIZED -> INITIALIZED -> STEPPING <-> CHECKING_CONVERGENCE
                                                  |-> CONVERGED
                                                  '-> EXHAUSTED
```

:meth:`SteadyStateStepper.advance` performs exactly one burst-and-check
pass; :meth:`SteadyStateStepper.solve` repeats passes until the stage is
converged or a criterion reports exhaustion.  The stepper imposes no step cap
of its own: unbounded stages are prevented by registering a
:class:`~flamegen.criteria.MaxIterationsReached` criterion (the builder adds
one when the configuration has none).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence

import numpy as np

from .criteria import ConvergenceCriterion
from .engine.domain import DomainSnapshot
from .environment import SERIAL, ProcessGroup
from .logs import Log
from .runtime.history import ConvergenceHistory

logger = logging.getLogger(__name__)


class IntegrationHandle(Protocol):
    """Interface the stepper requires from an integration engine."""

    step_number: int
    domain: Any

    @property
    def solution(self) -> np.ndarray: ...

    def initialize(self) -> None: ...

    def set_max_steps(self, max_steps: int) -> None: ...

    def solve(self) -> None: ...

    def snapshot(self) -> DomainSnapshot: ...

    def serializable_components(self) -> List[Any]: ...

    def close(self) -> None: ...


class StepperStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STEPPING = "stepping"
    CHECKING_CONVERGENCE = "checking_convergence"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"

    @property
    def terminal(self) -> bool:
        return self in (StepperStatus.CONVERGED, StepperStatus.EXHAUSTED)


@dataclass
class StepperState:
    """Mutable bookkeeping of a stepper."""

    burst: int
    step: int = 0
    ceiling: int = 0
    converged: bool = False
    exhausted: bool = False
    status: StepperStatus = StepperStatus.UNINITIALIZED


class SteadyStateStepper:
    """March an integration handle to steady state."""

    def __init__(
        self,
        integrator: IntegrationHandle,
        criteria: Sequence[ConvergenceCriterion] = (),
        *,
        steps_between_checks: int = 100,
        log: Optional[Log] = None,
        group: ProcessGroup = SERIAL,
    ) -> None:
        if int(steps_between_checks) <= 0:
            raise ValueError("steps_between_checks must be positive")
        self.integrator = integrator
        self.criteria: List[ConvergenceCriterion] = list(criteria)
        self.log = log
        self.group = group
        self.state = StepperState(burst=int(steps_between_checks))
        self.history = ConvergenceHistory()
        self.transitions: List[StepperStatus] = [StepperStatus.UNINITIALIZED]

    @property
    def status(self) -> StepperStatus:
        return self.state.status

    @property
    def domain(self) -> Any:
        return self.integrator.domain

    @property
    def solution(self) -> np.ndarray:
        return self.integrator.solution

    def _transition(self, status: StepperStatus) -> None:
        self.state.status = status
        self.transitions.append(status)

    def initialize(self) -> None:
        """Set up the integration handle and the first step ceiling."""

        if self.status is not StepperStatus.UNINITIALIZED:
            return
        self.integrator.initialize()
        self.state.step = int(self.integrator.step_number)
        self.state.ceiling = self.state.step + self.state.burst
        self.integrator.set_max_steps(self.state.ceiling)
        self._transition(StepperStatus.INITIALIZED)

    def advance(self) -> StepperStatus:
        """Run one burst of steps followed by one convergence check."""

        self.initialize()
        if self.status.terminal:
            return self.status

        self._transition(StepperStatus.STEPPING)
        self.integrator.solve()

        self._transition(StepperStatus.CHECKING_CONVERGENCE)
        step = int(self.integrator.step_number)
        self.state.step = step
        snapshot = self.integrator.snapshot()
        # Every criterion runs so each one can report to the log.
        results = [criterion.evaluate(snapshot, step, self.log) for criterion in self.criteria]
        converged = self.group.all_agree(all(results))
        exhausted = False
        if not converged:
            exhausted = self.group.all_agree(
                any(criterion.exhausted(snapshot, step) for criterion in self.criteria)
            )
        residual = np.asarray(snapshot.residual)
        residual_rms = float(np.sqrt(np.mean(residual * residual))) if residual.size else 0.0
        self.history.record(
            step=step,
            ceiling=self.state.ceiling,
            residual_rms=residual_rms,
            converged=converged,
            exhausted=exhausted,
        )

        if converged:
            self.state.converged = True
            self._report("Convergence reached after %d steps", step)
            self._transition(StepperStatus.CONVERGED)
        elif exhausted:
            self.state.exhausted = True
            self._report("Solution not converged after %d steps.", step)
            self._transition(StepperStatus.EXHAUSTED)
        else:
            self.state.ceiling += self.state.burst
            self.integrator.set_max_steps(self.state.ceiling)
        return self.status

    def solve(self) -> StepperStatus:
        """Advance until the stage is converged or exhausted."""

        self.initialize()
        while not self.status.terminal:
            self.advance()
        return self.status

    def _report(self, message: str, *args: Any) -> None:
        if self.log is not None:
            self.log.printf(message, *args)
        else:
            logger.debug(message, *args)

    def register_serializable_components(self, serializer: Any) -> None:
        for component in self.integrator.serializable_components():
            serializer.register(component)

    def close(self) -> None:
        """Tear down the integration handle and release the log."""

        self.integrator.close()
        if self.log is not None:
            self.log.close()


__all__ = [
    "IntegrationHandle",
    "StepperStatus",
    "StepperState",
    "SteadyStateStepper",
]
