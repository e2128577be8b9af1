"""SQLite storage adapter.

Implements the core OffsetStorePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Dict, Optional


class SQLiteOffsetStore:
    """Thin SQLite wrapper that satisfies the OffsetStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - polling_state: last committed long-poll offset per offset key
        """

        with self._connect() as conn:
            # Fields:
            # - offset_key: PollingConfig.offset_key (PRIMARY KEY)
            # - last_offset: offset of the last fully dispatched batch
            # - updated_at: commit timestamp, for debugging
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS polling_state (
                    offset_key TEXT PRIMARY KEY,
                    last_offset INTEGER NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )

    def get_offset(self, key: str) -> Optional[int]:
        """Return the last committed offset for a key, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT last_offset FROM polling_state WHERE offset_key = ?",
                (key,),
            ).fetchone()
        return int(row["last_offset"]) if row else None

    def set_offset(self, key: str, offset: int) -> None:
        """Upsert the committed offset for a key."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO polling_state (offset_key, last_offset, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(offset_key) DO UPDATE SET
                    last_offset = excluded.last_offset,
                    updated_at = excluded.updated_at
                """,
                (key, offset, now.isoformat()),
            )

    def list_offsets(self) -> Dict[str, int]:
        """Return every tracked key with its offset."""

        with self._connect() as conn:
            rows = conn.execute("SELECT offset_key, last_offset FROM polling_state").fetchall()
        return {row["offset_key"]: int(row["last_offset"]) for row in rows}
