"""SQLiteRatingStore — shared rating table in a SQLite file.

Why SQLite as a shared store:
- Batteries included: ships with Python, no extra dependencies.
- Real upserts: the composite primary key plus ON CONFLICT DO UPDATE gives
  overwrite-on-duplicate semantics without a read-modify-write cycle.
- Good for a team sharing a network drive, or a single reviewer who wants
  ratings outside the browser-style slot cache.

Schema:
  call_ratings — one row per (call_id, turn_index, user_id), one INTEGER
                 column per metric plus one TEXT column. Metric columns that
                 are missing from an existing table are added on open, so new
                 metrics never need a migration step.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from typing import Sequence

from callrate_store.base import BaseRatingStore
from callrate_store.models import RatingRow

logger = logging.getLogger(__name__)

_TABLE = "call_ratings"
_RESERVED = {"call_id", "turn_index", "user_id", "updated_at"}
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    call_id     TEXT NOT NULL,
    turn_index  INTEGER NOT NULL,
    user_id     TEXT NOT NULL,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (call_id, turn_index, user_id)
);
CREATE INDEX IF NOT EXISTS idx_call_ratings_user ON {_TABLE} (user_id);
"""


def _column(name: str) -> str:
    if not _IDENTIFIER.match(name) or name in _RESERVED:
        raise ValueError(f"Invalid rating column name: {name!r}")
    return name


class SQLiteRatingStore(BaseRatingStore):
    """Stores rating rows in a SQLite database file.

    The database path defaults to `.callrate.db` in the current working
    directory. Configure via .callrate.yml: `remote_path: /path/to/file.db`.

    Upserts run on a background worker while fetches may come from another
    thread, so the connection is shared behind a lock.
    """

    def __init__(
        self,
        db_path: str = ".callrate.db",
        metric_keys: Sequence[str] = ("stars",),
        text_column: str = "comment",
    ):
        self._metric_keys = [_column(k) for k in metric_keys]
        self._text_column = _column(text_column)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        for key in self._metric_keys:
            self._ensure_column(key, "INTEGER DEFAULT 0")
        self._ensure_column(self._text_column, "TEXT DEFAULT ''")
        self._conn.commit()

    def _ensure_column(self, column: str, col_type: str) -> None:
        cols = [r[1] for r in self._conn.execute(f"PRAGMA table_info({_TABLE})")]
        if column not in cols:
            self._conn.execute(f"ALTER TABLE {_TABLE} ADD COLUMN {column} {col_type}")

    def fetch_rows(self, user_id: str) -> list[RatingRow]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM {_TABLE} WHERE user_id=? ORDER BY call_id, turn_index",
                (user_id,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def upsert_row(self, row: RatingRow) -> None:
        columns = ["call_id", "turn_index", "user_id", *self._metric_keys, self._text_column]
        values = [
            row.call_id,
            row.turn_index,
            row.user_id,
            *(row.scores.get(k, 0) for k in self._metric_keys),
            row.text,
        ]
        updates = ", ".join(f"{c}=excluded.{c}" for c in columns[3:])
        sql = (
            f"INSERT INTO {_TABLE} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT (call_id, turn_index, user_id) DO UPDATE SET {updates}, updated_at=CURRENT_TIMESTAMP"
        )
        with self._lock:
            self._conn.execute(sql, values)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _row_to_record(self, row: sqlite3.Row) -> RatingRow:
        return RatingRow(
            call_id=row["call_id"],
            turn_index=row["turn_index"],
            user_id=row["user_id"],
            scores={k: row[k] for k in self._metric_keys},
            text=row[self._text_column],
        )
