"""Pluggable convergence criteria for the steady-state stepper.

A criterion is a predicate over a read-only :class:`DomainSnapshot` and the
current step count.  The stepper declares a stage converged only when every
registered criterion returns ``True``; a ``False`` simply means "keep
stepping".  A criterion may additionally report :meth:`exhausted` to end the
stage without convergence (hard iteration caps).
"""
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

import numpy as np

from .engine.domain import DomainSnapshot
from .logs import Log
from .schema import (
    CriterionSpec,
    FieldBoundCheckSpec,
    MaxIterationsReachedSpec,
    ResidualBelowThresholdSpec,
)


class ConvergenceCriterion(ABC):
    """Base class for convergence predicates."""

    description = ""

    @abstractmethod
    def evaluate(self, snapshot: DomainSnapshot, step: int, log: Optional[Log] = None) -> bool:
        """Return ``True`` when this criterion considers the stage converged."""

    def exhausted(self, snapshot: DomainSnapshot, step: int) -> bool:
        """Return ``True`` to stop stepping without convergence."""

        return False

    @property
    def can_exhaust(self) -> bool:
        return False

    def __repr__(self) -> str:
        params = ", ".join(f"{key}={value!r}" for key, value in vars(self).items())
        return f"{type(self).__name__}({params})"


def _norm(values: np.ndarray, kind: str) -> float:
    if values.size == 0:
        return 0.0
    if kind == "linf":
        return float(np.max(np.abs(values)))
    if kind == "l2":
        return float(np.linalg.norm(values))
    if kind == "rms":
        return float(np.sqrt(np.mean(values * values)))
    raise ValueError(f"Unknown norm '{kind}'")


class ResidualBelowThreshold(ConvergenceCriterion):
    description = "converged when the steady-state residual norm drops below a tolerance"

    def __init__(self, tolerance: float, norm: str = "rms") -> None:
        if not tolerance > 0.0:
            raise ValueError("tolerance must be positive")
        _norm(np.zeros(1), norm)
        self.tolerance = float(tolerance)
        self.norm = norm

    def evaluate(self, snapshot: DomainSnapshot, step: int, log: Optional[Log] = None) -> bool:
        value = _norm(np.asarray(snapshot.residual), self.norm)
        converged = math.isfinite(value) and value <= self.tolerance
        if log is not None:
            log.printf("\tresidual (%s) at step %d: %.6e (tolerance %.3e)", self.norm, step, value, self.tolerance)
        return converged


class FieldBoundCheck(ConvergenceCriterion):
    description = "converged when every value of a field lies within [lower, upper]"

    def __init__(self, field: str, lower: Optional[float] = None, upper: Optional[float] = None) -> None:
        self.field = field
        self.lower = lower
        self.upper = upper

    def evaluate(self, snapshot: DomainSnapshot, step: int, log: Optional[Log] = None) -> bool:
        values = snapshot.field(self.field)
        lo = float(np.min(values))
        hi = float(np.max(values))
        ok = bool(np.all(np.isfinite(values)))
        if self.lower is not None and lo < self.lower:
            ok = False
        if self.upper is not None and hi > self.upper:
            ok = False
        if log is not None and not ok:
            log.printf("\t%s out of bounds at step %d: min=%g max=%g", self.field, step, lo, hi)
        return ok


class MaxIterationsReached(ConvergenceCriterion):
    """Hard cap on the number of integration steps of a stage.

    Never vetoes convergence before the cap; once ``step >= max_steps`` it
    evaluates ``False`` and reports the stage as exhausted.  A stage whose
    other criteria are first met exactly on the cap step is therefore recorded
    as exhausted, not converged.
    """

    description = "ends the stage without convergence once a step cap is reached"

    def __init__(self, max_steps: int) -> None:
        if int(max_steps) <= 0:
            raise ValueError("max_steps must be positive")
        self.max_steps = int(max_steps)

    def evaluate(self, snapshot: DomainSnapshot, step: int, log: Optional[Log] = None) -> bool:
        return step < self.max_steps

    def exhausted(self, snapshot: DomainSnapshot, step: int) -> bool:
        return step >= self.max_steps

    @property
    def can_exhaust(self) -> bool:
        return True


CRITERIA: Dict[str, Type[ConvergenceCriterion]] = {
    "ResidualBelowThreshold": ResidualBelowThreshold,
    "FieldBoundCheck": FieldBoundCheck,
    "MaxIterationsReached": MaxIterationsReached,
}


def build_criterion(spec: CriterionSpec) -> ConvergenceCriterion:
    """Instantiate a criterion from its validated configuration block."""

    if isinstance(spec, ResidualBelowThresholdSpec):
        return ResidualBelowThreshold(spec.tolerance, norm=spec.norm)
    if isinstance(spec, FieldBoundCheckSpec):
        return FieldBoundCheck(spec.field, lower=spec.lower, upper=spec.upper)
    if isinstance(spec, MaxIterationsReachedSpec):
        return MaxIterationsReached(spec.max_steps)
    raise TypeError(f"Unsupported criterion specification: {type(spec).__name__}")


__all__ = [
    "ConvergenceCriterion",
    "ResidualBelowThreshold",
    "FieldBoundCheck",
    "MaxIterationsReached",
    "CRITERIA",
    "build_criterion",
]
