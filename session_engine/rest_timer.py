"""Rest countdown between sets.

The timer never schedules anything.  Callers poll :meth:`RestTimer.remaining`
from the shared clock tick, so evaluating it twice is harmless.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


class RestTimer:
    """Optional countdown started after a set is saved."""

    def __init__(self, started: float | None = None, duration: float = 0) -> None:
        self.started = started
        self.duration = duration

    @property
    def running(self) -> bool:
        return self.started is not None

    def start(self, seconds: float, now: float | None = None) -> None:
        self.started = time.time() if now is None else now
        self.duration = max(0, seconds)

    def stop(self) -> None:
        self.started = None
        self.duration = 0

    def set_duration(self, seconds: float) -> None:
        """Change the countdown length without restarting it."""

        self.duration = max(0, seconds)

    def remaining(self, now: float | None = None) -> float:
        """Return seconds left, or ``0`` when no rest is running."""

        if self.started is None:
            return 0.0
        now = time.time() if now is None else now
        return max(self.duration - (now - self.started), 0.0)

    def expired(self, now: float | None = None) -> bool:
        return self.running and self.remaining(now) <= 0

    def to_dict(self) -> dict:
        return {
            "started": (
                datetime.fromtimestamp(self.started, timezone.utc).isoformat()
                if self.started is not None
                else None
            ),
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RestTimer":
        data = data or {}
        started = data.get("started")
        return cls(
            started=datetime.fromisoformat(started).timestamp() if started else None,
            duration=data.get("duration", 0),
        )
