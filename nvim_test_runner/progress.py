"""Phase tracking for a test run (config → resolve → execute ...)."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class Phase:
    name: str
    status: str = "running"  # "running" | "completed" | "failed" | "skipped"
    start_time: float | None = None
    end_time: float | None = None
    detail: str = ""
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time is not None and self.end_time is not None:
            return round(self.end_time - self.start_time, 2)
        return None


class ProgressTracker:
    """Record phase transitions and notify callbacks on each one."""

    def __init__(self) -> None:
        self.phases: list[Phase] = []
        self.callbacks: list[Callable[[Phase], None]] = []

    @contextmanager
    def track(self, name: str) -> Iterator[Phase]:
        """Run a block as phase *name*; an exception marks it failed and propagates.

        The block may set ``phase.detail`` on the yielded phase.
        """
        phase = Phase(name=name, start_time=time.monotonic())
        self.phases.append(phase)
        self._notify(phase)
        try:
            yield phase
        except BaseException as e:
            phase.status = "failed"
            phase.error = str(e) or type(e).__name__
            phase.end_time = time.monotonic()
            self._notify(phase)
            raise
        phase.status = "completed"
        phase.end_time = time.monotonic()
        self._notify(phase)

    def skip(self, name: str, reason: str) -> None:
        phase = Phase(name=name, status="skipped", detail=reason)
        self.phases.append(phase)
        self._notify(phase)

    def get(self, name: str) -> Phase | None:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def get_summary(self) -> dict[str, Any]:
        total_duration = sum(p.duration or 0 for p in self.phases)
        return {
            "phases": [
                {
                    "phase": p.name,
                    "status": p.status,
                    "duration": p.duration,
                    "detail": p.detail,
                    "error": p.error,
                }
                for p in self.phases
            ],
            "total_duration": round(total_duration, 2),
        }

    def _notify(self, phase: Phase) -> None:
        for cb in self.callbacks:
            try:
                cb(phase)
            except Exception:
                logger.debug("Progress callback error for phase %s", phase.name, exc_info=True)
