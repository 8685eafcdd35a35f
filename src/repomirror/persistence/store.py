"""
Mirror State Store - SQLite-backed record of mirrored repositories.

One row per repository name. Each put() is a single committed transaction,
so a crash leaves either the previous row or the new one, never a mix.
The database file is created on first use and never deleted.

## Usage

    from repomirror.persistence.store import MirrorStore

    with MirrorStore.open(path) as store:
        record = store.get("dotfiles")
        store.put(new_record)
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import StoreError
from ..models.repository import MirrorRecord

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS mirrors (
    name            TEXT PRIMARY KEY,
    last_updated_at TEXT NOT NULL,
    last_pushed_at  TEXT,
    local_path      TEXT NOT NULL
)
"""


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _from_row(row) -> MirrorRecord:
    return MirrorRecord(
        name=row[0],
        last_updated_at=_from_text(row[1]),
        last_pushed_at=_from_text(row[2]),
        local_path=row[3],
    )


class MirrorStore:
    """Durable key-value record of MirrorRecord rows."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    @classmethod
    def open(cls, path: Path) -> "MirrorStore":
        """Open (creating if absent) the database at `path`."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path))
            with conn:
                conn.execute(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"unable to open database {path}", cause=e)

        logger.debug(f"[store] Opened {path}")
        return cls(conn)

    def get(self, name: str) -> Optional[MirrorRecord]:
        try:
            row = self._conn.execute(
                "SELECT name, last_updated_at, last_pushed_at, local_path "
                "FROM mirrors WHERE name = ?",
                (name,),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError("unable to read record", repo=name, cause=e)

        if row is None:
            return None
        return _from_row(row)

    def put(self, record: MirrorRecord) -> None:
        """Insert or replace the record with the same name."""
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO mirrors (name, last_updated_at, last_pushed_at, local_path)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT (name) DO UPDATE SET
                        last_updated_at = excluded.last_updated_at,
                        last_pushed_at  = excluded.last_pushed_at,
                        local_path      = excluded.local_path
                    """,
                    (
                        record.name,
                        _to_text(record.last_updated_at),
                        _to_text(record.last_pushed_at),
                        record.local_path,
                    ),
                )
        except sqlite3.Error as e:
            raise StoreError("unable to write record", repo=record.name, cause=e)

        logger.debug(f"[store] Saved {record.name}")

    def all(self) -> List[MirrorRecord]:
        try:
            rows = self._conn.execute(
                "SELECT name, last_updated_at, last_pushed_at, local_path "
                "FROM mirrors ORDER BY name"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError("unable to list records", cause=e)
        return [_from_row(row) for row in rows]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "MirrorStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
