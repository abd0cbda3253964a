"""Minimal integration engine used by the steady-state stepper.

The continuation logic only relies on the integrator interface
(``initialize``, ``set_max_steps``, ``solve``, ``step_number``, ``solution``,
``snapshot``, ``serializable_components``, ``close``); the classes here are the
default implementation of that interface.
"""
from .domain import BoxMesh, BoxMeshBoundaryCells, DomainSnapshot
from .model import FlameModel
from .integrator import TimeIntegrator, initial_profile

__all__ = [
    "BoxMesh",
    "BoxMeshBoundaryCells",
    "DomainSnapshot",
    "FlameModel",
    "TimeIntegrator",
    "initial_profile",
]
