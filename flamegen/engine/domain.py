"""Uniform one-dimensional box meshes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np


@dataclass(frozen=True)
class BoxMesh:
    """Cell-centred mesh on ``[lower, upper] * scale``.

    The solution vector is laid out field-major: ``len(fields) * faces``
    entries, one contiguous block per field.
    """

    faces: int
    lower: float = 0.0
    upper: float = 1.0
    scale: float = 1.0
    fields: Tuple[str, ...] = ("temperature",)

    @property
    def length(self) -> float:
        return (self.upper - self.lower) * self.scale

    @property
    def dx(self) -> float:
        return self.length / self.faces

    @property
    def size(self) -> int:
        return self.faces * len(self.fields)

    def cell_centers(self) -> np.ndarray:
        start = self.lower * self.scale
        return start + (np.arange(self.faces, dtype=float) + 0.5) * self.dx

    def field_slice(self, name: str) -> slice:
        try:
            index = self.fields.index(name)
        except ValueError:
            raise KeyError(f"Unknown field '{name}'; available: {', '.join(self.fields)}") from None
        return slice(index * self.faces, (index + 1) * self.faces)

    def split(self, vector: np.ndarray) -> Dict[str, np.ndarray]:
        """Return per-field views into a solution-shaped vector."""

        return {name: vector[self.field_slice(name)] for name in self.fields}


@dataclass(frozen=True)
class BoxMeshBoundaryCells(BoxMesh):
    """Box mesh with ghost cells enforcing Dirichlet values at both ends."""

    boundary_lower: float = 0.0
    boundary_upper: float = 1.0


@dataclass(frozen=True)
class DomainSnapshot:
    """Read-only view of the integrator state handed to convergence criteria."""

    domain: BoxMesh
    solution: np.ndarray
    residual: np.ndarray
    time: float

    def field(self, name: str) -> np.ndarray:
        return self.solution[self.domain.field_slice(name)]


__all__ = ["BoxMesh", "BoxMeshBoundaryCells", "DomainSnapshot"]
