"""Nondimensional reaction-diffusion flame model.

The progress variable ``theta`` runs from 0 (fresh gas) to 1 (burnt gas) and
obeys ``d(theta)/dt = D * theta_xx + w(theta)`` with

    w(theta) = A * theta * (1 - theta) * exp(Ze * (theta - 1))

so that ``w`` vanishes in both the fresh and the burnt state.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class FlameModel:
    diffusivity: float = 1.0
    pre_exponential: float = 10.0
    zeldovich_number: float = 2.0

    def source(self, theta: np.ndarray) -> np.ndarray:
        return (
            self.pre_exponential
            * theta
            * (1.0 - theta)
            * np.exp(self.zeldovich_number * (theta - 1.0))
        )


__all__ = ["FlameModel"]
