"""Runtime helpers used by the continuation driver."""

from .progress import ProgressReporter
from .history import ColumnarBuffer, ConvergenceHistory
from .helpers import format_exception_short, log_stage

__all__ = [
    "ProgressReporter",
    "ColumnarBuffer",
    "ConvergenceHistory",
    "format_exception_short",
    "log_stage",
]
