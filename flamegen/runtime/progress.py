"""Lightweight terminal progress reporting for the flame ladder."""

from __future__ import annotations

import math
import sys
import time

ETA_EWMA_ALPHA = 0.3


class ProgressReporter:
    """Terminal progress bar over ladder stages with an ETA estimate."""

    def __init__(self, total_stages: int, *, enabled: bool = False, stream=None) -> None:
        self.enabled = bool(enabled and total_stages > 0)
        self.total_stages = max(int(total_stages), 1)
        self.stream = stream if stream is not None else sys.stdout
        self.start = time.monotonic()
        self._last_wall = self.start
        self._stage_ewma_s: float | None = None
        self._finished = False
        self._isatty = bool(getattr(self.stream, "isatty", lambda: False)())

    def update(self, stage_index: int, scale: float, status: str) -> None:
        """Render the bar after ``stage_index`` has been checkpointed."""

        if not self.enabled or self._finished:
            return
        now = time.monotonic()
        elapsed = now - self._last_wall
        self._last_wall = now
        if math.isfinite(elapsed) and elapsed > 0.0:
            if self._stage_ewma_s is None:
                self._stage_ewma_s = elapsed
            else:
                self._stage_ewma_s = ETA_EWMA_ALPHA * elapsed + (1.0 - ETA_EWMA_ALPHA) * self._stage_ewma_s
        done = stage_index + 1
        is_last = done >= self.total_stages
        frac = min(done / self.total_stages, 1.0)
        bar_width = 28
        filled = int(bar_width * frac)
        bar = "#" * filled + "-" * (bar_width - filled)
        remaining = self.total_stages - done
        eta_text = "ETA ?"
        if self._stage_ewma_s is not None:
            eta_text = _format_eta(self._stage_ewma_s * remaining)
        line = f"[{bar}] {frac * 100:5.1f}% flame {done}/{self.total_stages} scale={scale:.4g} {status} {eta_text}"
        if self._isatty:
            self.stream.write(f"\r\033[2K{line}")
            if is_last:
                self.stream.write("\n")
        else:
            self.stream.write(f"{line}\n")
        if is_last:
            self._finished = True
        self.stream.flush()


def _format_eta(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0.0:
        return "ETA ?"
    if seconds >= 3600.0:
        return f"ETA {seconds/3600.0:.1f}h"
    if seconds >= 60.0:
        return f"ETA {seconds/60.0:.1f}m"
    return f"ETA {seconds:.0f}s"


__all__ = ["ProgressReporter"]
