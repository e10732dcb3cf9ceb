"""Purge state: SQLite-backed daily tag purge counter + credential flag.

Whatever sends purge requests to CloudFlare records them here; the
diagnostic checks only read. The counter belongs to the current UTC day and
reads as 0 once the day rolls over.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent / "data" / "purge_state.db"

_KEY_TAG_COUNT = "tag_daily_count"
_KEY_TAG_DAY = "tag_daily_count_day"
_KEY_VALID_CREDENTIALS = "valid_credentials"
_KEY_CREDENTIALS_CHECKED_AT = "credentials_checked_at"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PurgeState:
    """Persistent counter and credential state for the CloudFlare purger."""

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._db_path = db_path or DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.execute(
            "CREATE TABLE IF NOT EXISTS purge_state ("
            "  key TEXT PRIMARY KEY,"
            "  value TEXT NOT NULL"
            ")"
        )
        conn.commit()

    def _get(self, key: str) -> str | None:
        row = self._get_conn().execute(
            "SELECT value FROM purge_state WHERE key = ?", (key,),
        ).fetchone()
        return row["value"] if row else None

    def _set(self, conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            "INSERT INTO purge_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    # -- tag purge counter -----------------------------------------------------

    def get_tag_daily_count(self) -> int:
        """Tag purges recorded today (0 if the last recorded day is not today)."""
        if self._get(_KEY_TAG_DAY) != self._today().isoformat():
            return 0
        return int(self._get(_KEY_TAG_COUNT) or 0)

    def get_current_period_count(self) -> int:
        return self.get_tag_daily_count()

    def increment_tag_purge_daily_count(self, count: int = 1) -> int:
        """Record ``count`` tag purges for today and return the new total."""
        if count < 0:
            raise ValueError(f"Cannot record a negative number of purges: {count}")

        with self._lock:
            today = self._today().isoformat()
            last_day = self._get(_KEY_TAG_DAY)
            if last_day == today:
                current = int(self._get(_KEY_TAG_COUNT) or 0)
            else:
                current = 0
                if last_day is not None:
                    logger.info("New purge day %s, daily tag count reset", today)

            conn = self._get_conn()
            total = current + count
            self._set(conn, _KEY_TAG_DAY, today)
            self._set(conn, _KEY_TAG_COUNT, str(total))
            conn.commit()

        logger.debug("Recorded %d tag purges (today: %d)", count, total)
        return total

    # -- credentials -----------------------------------------------------------

    def set_credentials_valid(self, valid: bool) -> None:
        """Record the outcome of the latest credential verification."""
        with self._lock:
            conn = self._get_conn()
            self._set(conn, _KEY_VALID_CREDENTIALS, "1" if valid else "0")
            self._set(conn, _KEY_CREDENTIALS_CHECKED_AT, self._clock().isoformat())
            conn.commit()
        logger.info("CloudFlare credentials recorded as %s", "valid" if valid else "invalid")

    def is_credential_valid(self) -> bool:
        """False until a successful verification has been recorded."""
        return self._get(_KEY_VALID_CREDENTIALS) == "1"

    def credentials_checked_at(self) -> str | None:
        return self._get(_KEY_CREDENTIALS_CHECKED_AT)

    # -- housekeeping ------------------------------------------------------------

    def reset(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.execute("DELETE FROM purge_state")
            conn.commit()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
