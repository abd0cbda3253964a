"""Convergence log collaborators used by the stepper and its criteria."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol

logger = logging.getLogger("flamegen.convergence")


class Log(Protocol):
    def printf(self, message: str, *args: Any) -> None: ...

    def close(self) -> None: ...


class StdOutLog:
    """Forward convergence messages to the ``flamegen.convergence`` logger."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def printf(self, message: str, *args: Any) -> None:
        text = message % args if args else message
        logger.info("%s%s", self.prefix, text)

    def close(self) -> None:
        return None


class FileLog:
    """Append convergence messages to a text file, one per line."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._handle = None

    def printf(self, message: str, *args: Any) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        text = message % args if args else message
        self._handle.write(text.rstrip("\n") + "\n")
        self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class MemoryLog:
    """Keep messages in memory; handy for tests and post-processing."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def printf(self, message: str, *args: Any) -> None:
        self.messages.append(message % args if args else message)

    def close(self) -> None:
        return None


def make_log(kind: Optional[str], *, directory: Optional[Path] = None, name: str = "convergence.log", prefix: str = "") -> Optional[Log]:
    """Return a log collaborator for the ``timestepper.log`` setting."""

    if kind is None:
        return None
    if kind == "stdout":
        return StdOutLog(prefix=prefix)
    if kind == "file":
        if directory is None:
            raise ValueError("file logs need an output directory")
        return FileLog(Path(directory) / name)
    raise ValueError(f"Unknown log type '{kind}'")


__all__ = ["Log", "StdOutLog", "FileLog", "MemoryLog", "make_log"]
