"""Shared periodic tick for the active workout session.

Rest expiry and idle auto-stop are both evaluated from this one clock
instead of separate timers, so they never drift apart or fire twice.
"""

from __future__ import annotations

from kivy.clock import Clock

from session_engine.workout_session import WorkoutSession


class SessionClock:
    """Drive :meth:`WorkoutSession.tick` from the Kivy clock."""

    def __init__(self, session: WorkoutSession, interval: float = 1.0) -> None:
        self.session = session
        self.interval = interval
        self._event = None

    @property
    def running(self) -> bool:
        return self._event is not None

    def start(self) -> None:
        if self._event is None:
            self._event = Clock.schedule_interval(self._on_tick, self.interval)

    def stop(self) -> None:
        if self._event is not None:
            self._event.cancel()
            self._event = None

    def _on_tick(self, _dt: float) -> None:
        self.session.tick()
