import os
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")

from session_engine import settings
from session_engine.recovery import SessionRecovery
from session_engine.store import EntityStore
from session_engine.workout_session import WorkoutSession
from tests.utils import FakeClock


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the settings file at a temporary location."""
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "settings.json")
    settings.clear_cache()
    yield
    settings.clear_cache()


@pytest.fixture
def store(tmp_path: Path) -> EntityStore:
    return EntityStore(tmp_path / "workout.db")


@pytest.fixture
def recovery(tmp_path: Path) -> SessionRecovery:
    return SessionRecovery(tmp_path / "recovery", "Tester")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session(store, recovery, clock) -> WorkoutSession:
    """An initialized session with no recovery snapshot."""
    s = WorkoutSession(store, recovery, user_name="Tester", clock=clock)
    s.initialize()
    return s
