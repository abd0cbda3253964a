"""Custom exceptions for the :mod:`flamegen` package."""
from __future__ import annotations


class FlameGenError(Exception):
    """Base exception for flame generator errors."""


class ConfigurationError(FlameGenError, ValueError):
    """Invalid input file, configuration value or constructed component."""


class WrongTypeError(ConfigurationError):
    """A constructed stepper or domain is not of the required type."""


class SolutionLayoutError(ConfigurationError):
    """Solution vectors of consecutive stages do not share a layout."""


class NumericalError(FlameGenError, RuntimeError):
    """Fault raised by the integration engine (non-finite state, bad step)."""


__all__ = [
    "FlameGenError",
    "ConfigurationError",
    "WrongTypeError",
    "SolutionLayoutError",
    "NumericalError",
]
