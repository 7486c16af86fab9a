"""Shared constants and defaults for the workout session engine."""

from __future__ import annotations

from pathlib import Path

# Default values used throughout the engine
DEFAULT_REST_DURATION = 120
DEFAULT_SUPERSET_SIZE = 2
DEFAULT_AUTOSTOP_SECONDS = 3600
DEFAULT_USER_NAME = "Default User"
FREE_TRAINING_NAME = "Free training"

# Location of the local data files, relative to the repository root
DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_DB_PATH = DATA_DIR / "workout.db"
RECOVERY_DIR = DATA_DIR / "recovery"

__all__ = [
    "DEFAULT_REST_DURATION",
    "DEFAULT_SUPERSET_SIZE",
    "DEFAULT_AUTOSTOP_SECONDS",
    "DEFAULT_USER_NAME",
    "FREE_TRAINING_NAME",
    "DATA_DIR",
    "DEFAULT_DB_PATH",
    "RECOVERY_DIR",
]
