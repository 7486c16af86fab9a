"""SQLite backed record store used by the workout session engine.

Records are stored as JSON documents keyed by their integer ``id``.  A few
fields per table are mirrored into real columns so they can be used with
:meth:`EntityStore.query`.  Every call opens its own connection, mirroring
the rest of the code base; :meth:`EntityStore.transaction` keeps a single
connection open so several writes commit or roll back together.
"""

from __future__ import annotations

import json
import logging
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from session_engine import DEFAULT_DB_PATH
from session_engine.models import RECORD_TYPES

# Columns mirrored from the JSON document for each table.
INDEXED_FIELDS: dict[str, tuple[str, ...]] = {
    "exercises": ("name",),
    "workouts": ("name",),
    "workout_exercises": ("exercise_id",),
    "exercise_sets": ("exercise_id", "type"),
    "workout_history": ("user_name", "date"),
}

TABLES = tuple(INDEXED_FIELDS)

_last_id = 0


class StoreError(Exception):
    """Raised when the underlying database rejects an operation."""


def new_id() -> int:
    """Return a new record id, increasing within the running process."""

    global _last_id
    candidate = int(time.time() * 1000) * 100 + random.randrange(100)
    if candidate <= _last_id:
        candidate = _last_id + 1
    _last_id = candidate
    return candidate


def _check_table(table: str) -> None:
    if table not in INDEXED_FIELDS:
        raise StoreError(f"Unknown table '{table}'")


def _to_record(table: str, payload: str):
    return RECORD_TYPES[table].from_dict(json.loads(payload))


def _get_record(conn: sqlite3.Connection, table: str, record_id: int):
    row = conn.execute(
        f"SELECT data FROM {table} WHERE id = ?", (record_id,)
    ).fetchone()
    return _to_record(table, row[0]) if row else None


def _bulk_get_records(
    conn: sqlite3.Connection, table: str, record_ids: Sequence[int]
) -> list:
    if not record_ids:
        return []
    placeholders = ",".join("?" for _ in record_ids)
    rows = conn.execute(
        f"SELECT id, data FROM {table} WHERE id IN ({placeholders})",
        tuple(record_ids),
    ).fetchall()
    found = {row_id: data for row_id, data in rows}
    return [
        _to_record(table, found[rid]) if rid in found else None
        for rid in record_ids
    ]


def _put_record(conn: sqlite3.Connection, table: str, record) -> int:
    data = record.to_dict()
    columns = INDEXED_FIELDS[table]
    values = [data.get(col) for col in columns]
    conn.execute(
        f"INSERT OR REPLACE INTO {table} (id, {', '.join(columns)}, data)"
        f" VALUES (?, {', '.join('?' for _ in columns)}, ?)",
        (data["id"], *values, json.dumps(data)),
    )
    return data["id"]


def _query_records(
    conn: sqlite3.Connection, table: str, field_name: str, value: Any
) -> list:
    if field_name not in INDEXED_FIELDS[table]:
        raise StoreError(f"Field '{field_name}' is not indexed on '{table}'")
    rows = conn.execute(
        f"SELECT data FROM {table} WHERE {field_name} = ? ORDER BY id",
        (value,),
    ).fetchall()
    return [_to_record(table, row[0]) for row in rows]


class Transaction:
    """Read/write view bound to one open connection.

    Only the tables named when the transaction was opened may be written.
    """

    def __init__(self, conn: sqlite3.Connection, tables: Iterable[str]) -> None:
        self._conn = conn
        self.tables = frozenset(tables)

    def _check_writable(self, table: str) -> None:
        if table not in self.tables:
            raise StoreError(f"Table '{table}' is not part of this transaction")

    def get(self, table: str, record_id: int):
        _check_table(table)
        return _get_record(self._conn, table, record_id)

    def bulk_get(self, table: str, record_ids: Sequence[int]) -> list:
        _check_table(table)
        return _bulk_get_records(self._conn, table, list(record_ids))

    def put(self, table: str, record) -> int:
        _check_table(table)
        self._check_writable(table)
        return _put_record(self._conn, table, record)

    def query(self, table: str, field_name: str, value: Any) -> list:
        _check_table(table)
        return _query_records(self._conn, table, field_name, value)


class EntityStore:
    """Local transactional store for exercises, workouts and sets."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.create_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def create_schema(self) -> None:
        """Create the record tables if they do not exist yet."""

        with self._session() as conn:
            for table, columns in INDEXED_FIELDS.items():
                column_sql = ", ".join(f"{col}" for col in columns)
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    f"id INTEGER PRIMARY KEY, {column_sql}, data TEXT NOT NULL)"
                )
                for col in columns:
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{table}_{col}"
                        f" ON {table} ({col})"
                    )

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logging.exception("Could not open database %s", self.db_path)
            raise StoreError(str(exc)) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logging.exception("Database operation failed on %s", self.db_path)
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def get(self, table: str, record_id: Optional[int]):
        _check_table(table)
        if record_id is None:
            return None
        with self._session() as conn:
            return _get_record(conn, table, record_id)

    def bulk_get(self, table: str, record_ids: Sequence[int]) -> List[Any]:
        """Return records for ``record_ids`` in order, ``None`` where missing."""

        _check_table(table)
        with self._session() as conn:
            return _bulk_get_records(conn, table, list(record_ids))

    def put(self, table: str, record) -> int:
        _check_table(table)
        with self._session() as conn:
            return _put_record(conn, table, record)

    def query(self, table: str, field_name: str, value: Any) -> list:
        _check_table(table)
        with self._session() as conn:
            return _query_records(conn, table, field_name, value)

    @contextmanager
    def transaction(self, tables: Iterable[str]) -> Iterator[Transaction]:
        """Run several reads and writes atomically.

        Usage::

            with store.transaction(["exercise_sets", "workout_exercises"]) as tx:
                tx.put("exercise_sets", saved)
                tx.put("workout_exercises", updated)

        Everything written inside the block becomes visible at once when the
        block exits normally.  Any exception rolls the writes back and is
        re-raised, with database errors wrapped in :class:`StoreError`.
        """

        tables = list(tables)
        for table in tables:
            _check_table(table)
        with self._session() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield Transaction(conn, tables)
