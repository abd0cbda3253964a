"""Shared helper functions for the continuation driver."""
from __future__ import annotations

import logging
from typing import Any, Optional


def format_exception_short(exc: BaseException) -> str:
    """Return ``ClassName: message`` for log lines."""

    return f"{exc.__class__.__name__}: {exc}"


def log_stage(logger_obj: Optional[logging.Logger], label: str, *, stage: Optional[int] = None, **extra: Any) -> None:
    """Emit a coarse ``stage=...`` marker, optionally tagged with a flame index."""

    if logger_obj is None:
        return
    prefix = f"flame={stage} " if stage is not None else ""
    if extra:
        details = " ".join(f"{key}={value}" for key, value in extra.items())
        logger_obj.info("%sstage=%s %s", prefix, label, details)
    else:
        logger_obj.info("%sstage=%s", prefix, label)


__all__ = ["format_exception_short", "log_stage"]
