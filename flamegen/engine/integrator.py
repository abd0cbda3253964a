"""Semi-implicit time integrator for the box-mesh flame model.

Diffusion is treated implicitly (backward Euler, factorised once per stage)
and the reaction source explicitly, so each step is a single sparse solve.
Dirichlet values enter through mirrored ghost cells.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, List, Optional

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import factorized

from ..errors import NumericalError
from .domain import BoxMeshBoundaryCells, DomainSnapshot
from .model import FlameModel

logger = logging.getLogger(__name__)

Initializer = Callable[[BoxMeshBoundaryCells], np.ndarray]


def initial_profile(
    domain: BoxMeshBoundaryCells,
    profile: str = "linear",
    *,
    value: float = 0.0,
    center: float = 0.5,
    width: float = 0.05,
) -> np.ndarray:
    """Return an initial temperature profile on ``domain``.

    ``center`` and ``width`` are fractions of the domain length so the same
    description remains meaningful on every scaled stage.
    """

    x = domain.cell_centers()
    start = domain.lower * domain.scale
    lo, hi = domain.boundary_lower, domain.boundary_upper
    if profile == "constant":
        return np.full(domain.faces, float(value))
    if profile == "linear":
        return lo + (hi - lo) * (x - start) / domain.length
    if profile == "tanh":
        front = start + center * domain.length
        return lo + (hi - lo) * 0.5 * (1.0 + np.tanh((x - front) / (width * domain.length)))
    raise ValueError(f"Unknown initial profile '{profile}'")


class MeshComponent:
    """Serializable cell-centre coordinates."""

    serialize_id = "mesh"

    def __init__(self, domain: BoxMeshBoundaryCells) -> None:
        self.domain = domain

    def columns(self) -> Dict[str, np.ndarray]:
        return {"x": self.domain.cell_centers()}


class SolutionComponent:
    """Serializable solution fields of an integrator."""

    serialize_id = "solution"

    def __init__(self, integrator: "TimeIntegrator") -> None:
        self.integrator = integrator

    def columns(self) -> Dict[str, np.ndarray]:
        fields = self.integrator.domain.split(self.integrator.solution)
        return {name: values.copy() for name, values in fields.items()}


class TimeIntegrator:
    """Integration handle advancing the flame model towards steady state."""

    def __init__(
        self,
        domain: BoxMeshBoundaryCells,
        model: FlameModel,
        *,
        dt: Optional[float] = None,
        cfl: float = 10.0,
        initializer: Optional[Initializer] = None,
    ) -> None:
        self.domain = domain
        self.model = model
        self.dt = float(dt) if dt is not None else cfl * domain.dx ** 2 / model.diffusivity
        if not (math.isfinite(self.dt) and self.dt > 0.0):
            raise ValueError(f"time step must be positive and finite, got {self.dt}")
        self._initializer = initializer or initial_profile
        self._solution = np.zeros(domain.size)
        self._ghost = np.zeros(domain.faces)
        self._ghost[0] = 2.0 * domain.boundary_lower
        self._ghost[-1] += 2.0 * domain.boundary_upper
        self._laplacian: Optional[sparse.csc_matrix] = None
        self._solve: Optional[Callable[[np.ndarray], np.ndarray]] = None
        self.step_number = 0
        self.max_steps = 0
        self.time = 0.0

    @property
    def initialized(self) -> bool:
        return self._solve is not None

    @property
    def solution(self) -> np.ndarray:
        """Mutable solution vector owned by the integrator."""

        return self._solution

    def initialize(self) -> None:
        n = self.domain.faces
        main = np.full(n, -2.0)
        main[0] = main[-1] = -3.0
        off = np.ones(n - 1)
        self._laplacian = sparse.diags([off, main, off], [-1, 0, 1], format="csc") / self.domain.dx ** 2
        system = sparse.identity(n, format="csc") - self.dt * self.model.diffusivity * self._laplacian
        self._solve = factorized(sparse.csc_matrix(system))
        self._solution[:] = self._initializer(self.domain)
        self.step_number = 0
        self.time = 0.0
        logger.debug("integrator initialised: faces=%d dx=%.3e dt=%.3e", n, self.domain.dx, self.dt)

    def set_max_steps(self, max_steps: int) -> None:
        self.max_steps = int(max_steps)

    def residual(self, solution: Optional[np.ndarray] = None) -> np.ndarray:
        """Return the steady-state residual ``D * theta_xx + w(theta)``."""

        if self._laplacian is None:
            raise RuntimeError("integrator must be initialised before evaluating residuals")
        theta = self._solution if solution is None else solution
        diffusion = self._laplacian @ theta + self._ghost / self.domain.dx ** 2
        return self.model.diffusivity * diffusion + self.model.source(theta)

    def step(self) -> None:
        if self._solve is None:
            raise RuntimeError("integrator must be initialised before stepping")
        theta = self._solution
        rhs = theta + self.dt * (
            self.model.source(theta)
            + self.model.diffusivity * self._ghost / self.domain.dx ** 2
        )
        updated = self._solve(rhs)
        if not np.all(np.isfinite(updated)):
            raise NumericalError(f"non-finite solution after step {self.step_number + 1}")
        self._solution[:] = updated
        self.step_number += 1
        self.time += self.dt

    def solve(self) -> None:
        """Advance until ``step_number`` reaches ``max_steps``."""

        while self.step_number < self.max_steps:
            self.step()

    def snapshot(self) -> DomainSnapshot:
        solution = self._solution.copy()
        residual = self.residual(solution)
        solution.setflags(write=False)
        residual.setflags(write=False)
        return DomainSnapshot(domain=self.domain, solution=solution, residual=residual, time=self.time)

    def serializable_components(self) -> List[object]:
        return [MeshComponent(self.domain), SolutionComponent(self)]

    def close(self) -> None:
        self._solve = None
        self._laplacian = None


__all__ = ["TimeIntegrator", "initial_profile", "MeshComponent", "SolutionComponent"]
