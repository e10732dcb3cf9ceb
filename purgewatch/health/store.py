"""SQLite storage for diagnostic check results + incidents.

Every check run is kept as a time series. A check moving away from OK opens
an incident, returning to OK closes it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .engine import CheckResult, Severity

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent.parent / "data" / "health.db"


class HealthStore:
    """SQLite-backed storage for check results + incidents."""

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()  # guards store_result across scheduler threads
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS check_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                check_id TEXT NOT NULL,
                title TEXT,
                severity TEXT NOT NULL,
                value NUMERIC,
                message TEXT NOT NULL,
                params TEXT,
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_results_check
                ON check_results (check_id, timestamp DESC);

            CREATE TABLE IF NOT EXISTS incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                check_id TEXT NOT NULL,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                from_severity TEXT NOT NULL,
                to_severity TEXT NOT NULL,
                message TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_incidents_check
                ON incidents (check_id, started_at DESC);
        """)
        conn.commit()

    def store_result(self, result: CheckResult) -> None:
        """Insert a check result and detect severity transitions (incidents)."""
        if not result.check_id:
            raise ValueError("Cannot store a result without a check_id")
        timestamp = result.timestamp or datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._insert(result, timestamp)

    def _insert(self, result: CheckResult, timestamp: str) -> None:
        conn = self._get_conn()

        prev_row = conn.execute(
            "SELECT severity FROM check_results "
            "WHERE check_id = ? ORDER BY timestamp DESC, id DESC LIMIT 1",
            (result.check_id,),
        ).fetchone()
        prev_severity = prev_row["severity"] if prev_row else None

        conn.execute(
            "INSERT INTO check_results "
            "(check_id, title, severity, value, message, params, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                result.check_id, result.title, result.severity.value, result.value,
                result.message, json.dumps(result.params) if result.params else None,
                timestamp,
            ),
        )

        if prev_severity and prev_severity != result.severity.value:
            if prev_severity == Severity.OK.value:
                conn.execute(
                    "INSERT INTO incidents "
                    "(check_id, started_at, from_severity, to_severity, message) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (result.check_id, timestamp, prev_severity,
                     result.severity.value, result.recommendation),
                )
                logger.warning(
                    "Incident opened for %s: %s -> %s",
                    result.check_id, prev_severity, result.severity.value,
                )
            elif result.severity is Severity.OK:
                conn.execute(
                    "UPDATE incidents SET ended_at = ? "
                    "WHERE check_id = ? AND ended_at IS NULL",
                    (timestamp, result.check_id),
                )
                logger.info("Incident resolved for %s", result.check_id)

        conn.commit()

    def get_latest(self, check_id: str) -> dict[str, Any] | None:
        """Get the most recent result for a specific check."""
        row = self._get_conn().execute(
            "SELECT * FROM check_results WHERE check_id = ? "
            "ORDER BY timestamp DESC, id DESC LIMIT 1",
            (check_id,),
        ).fetchone()
        return _row_to_dict(row) if row else None

    def get_all_latest(self) -> dict[str, dict[str, Any]]:
        """Get the latest result for every check, keyed by check_id."""
        rows = self._get_conn().execute(
            "SELECT cr.* FROM check_results cr "
            "WHERE cr.id = ("
            "  SELECT c2.id FROM check_results c2 WHERE c2.check_id = cr.check_id "
            "  ORDER BY c2.timestamp DESC, c2.id DESC LIMIT 1"
            ") ORDER BY cr.check_id",
        ).fetchall()
        return {r["check_id"]: _row_to_dict(r) for r in rows}

    def get_history(self, check_id: str, limit: int = 100) -> list[dict[str, Any]]:
        """Get time series of results for a check, newest first."""
        rows = self._get_conn().execute(
            "SELECT * FROM check_results WHERE check_id = ? "
            "ORDER BY timestamp DESC, id DESC LIMIT ?",
            (check_id, limit),
        ).fetchall()
        return [_row_to_dict(r) for r in rows]

    def get_open_incidents(self) -> list[dict[str, Any]]:
        """Get all incidents that haven't been resolved."""
        rows = self._get_conn().execute(
            "SELECT * FROM incidents WHERE ended_at IS NULL ORDER BY started_at DESC",
        ).fetchall()
        return [dict(r) for r in rows]

    def get_incidents(self, check_id: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Get recent incidents, optionally filtered by check."""
        if check_id:
            rows = self._get_conn().execute(
                "SELECT * FROM incidents WHERE check_id = ? ORDER BY started_at DESC LIMIT ?",
                (check_id, limit),
            ).fetchall()
        else:
            rows = self._get_conn().execute(
                "SELECT * FROM incidents ORDER BY started_at DESC LIMIT ?", (limit,),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_ok_ratio_24h(self, check_id: str) -> float:
        """Percentage of OK results over the last 24 hours."""
        cutoff = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat()
        rows = self._get_conn().execute(
            "SELECT severity FROM check_results WHERE check_id = ? AND timestamp >= ?",
            (check_id, cutoff),
        ).fetchall()

        if not rows:
            return 100.0  # No data = assume OK

        ok_count = sum(1 for r in rows if r["severity"] == Severity.OK.value)
        return round(ok_count / len(rows) * 100, 1)

    def cleanup_old(self, days: int = 30) -> int:
        """Remove check results older than N days."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM check_results WHERE timestamp < ?", (cutoff,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Removed %d check results older than %d days", cursor.rowcount, days)
        return cursor.rowcount

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None


def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    d = dict(row)
    d["params"] = json.loads(d["params"]) if d.get("params") else {}
    return d
