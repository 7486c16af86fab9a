"""Durable snapshots of an in-progress workout session.

Each snapshot is written twice, to a primary and a backup file, so an
interrupted write of one copy never loses the session.  Files are keyed by
user name so switching users does not resume someone else's workout.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from session_engine import DEFAULT_USER_NAME, RECOVERY_DIR


def _safe_name(user_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", user_name) or "user"


class SessionRecovery:
    """Read and write the recovery snapshot for one user."""

    def __init__(
        self, base_dir: Path = RECOVERY_DIR, user_name: str = DEFAULT_USER_NAME
    ) -> None:
        self.base_dir = Path(base_dir)
        self.user_name = user_name
        stem = f"session_{_safe_name(user_name)}"
        self.paths = (
            self.base_dir / f"{stem}_1.json",
            self.base_dir / f"{stem}_2.json",
        )

    def save(self, state: dict) -> bool:
        """Write ``state`` to both recovery files.

        Returns ``False`` if the files could not be written.  A failed write
        is logged but never interrupts the workout.
        """

        payload = json.dumps(state)
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for path in self.paths:
                tmp = path.with_suffix(".tmp")
                tmp.write_text(payload, encoding="utf-8")
                os.replace(tmp, path)
        except OSError:
            logging.exception("Could not write session recovery to %s", self.base_dir)
            return False
        return True

    def load(self) -> dict | None:
        """Return the saved snapshot, or ``None`` if there is none usable.

        The primary file is tried first and the backup second.  Unreadable
        snapshots are removed so the next start begins cleanly.
        """

        found_any = False
        for path in self.paths:
            if not path.exists():
                continue
            found_any = True
            try:
                text = path.read_text(encoding="utf-8").strip()
                if not text:
                    continue
                data = json.loads(text)
            except (OSError, ValueError):
                logging.exception("Discarding unreadable session recovery %s", path)
                continue
            if isinstance(data, dict):
                return data
            logging.warning("Discarding malformed session recovery %s", path)
        if found_any:
            self.clear()
        return None

    def clear(self) -> None:
        """Remove any existing recovery files."""

        for path in self.paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
