"""Core package for flame continuation ladders."""
from . import constants
from .errors import FlameGenError

__version__ = constants.VERSION

__all__ = ["constants", "FlameGenError", "__version__"]
