"""Durable user cache: a local SQLite file holding the processed set and run log."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Iterable, Optional

from identity_console.config import CacheConfig
from identity_console.models import ProcessedUser

logger = logging.getLogger("console.cache")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS processed_users (
    id   TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS sync_runs (
    id               TEXT PRIMARY KEY,
    status           TEXT NOT NULL,
    started_at       TEXT NOT NULL,
    finished_at      TEXT,
    records_upserted INTEGER NOT NULL DEFAULT 0,
    error_message    TEXT
);
CREATE INDEX IF NOT EXISTS idx_sync_runs_finished ON sync_runs (status, finished_at);
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserCache:
    """Explicitly constructed cache client.

    The connection is opened on construction and closed by ``close()``; every
    operation runs in its own transaction. Calls may come from worker threads
    (the orchestrator uses ``asyncio.to_thread``), so access is serialised.
    """

    def __init__(self, config: CacheConfig) -> None:
        path = config.path
        if path != ":memory:":
            db_path = Path(path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            path = str(db_path)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(_SCHEMA)
        logger.debug("Cache opened at %s", path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "UserCache":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Yield a cursor inside a commit/rollback transaction."""
        with self._lock:
            cur = self._conn.cursor()
            try:
                yield cur
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    # ------------------------------------------------------------------
    # Processed users
    # ------------------------------------------------------------------

    def replace_all(self, records: Iterable[ProcessedUser]) -> int:
        """Atomically swap the stored set for ``records``. Returns rows written."""
        rows = [(r.id, json.dumps(r.to_dict())) for r in records]
        with self.transaction() as cur:
            cur.execute("DELETE FROM processed_users")
            # Later duplicates of an id win, same as a keyed put
            cur.executemany(
                "INSERT OR REPLACE INTO processed_users (id, data) VALUES (?, ?)",
                rows,
            )
        logger.info("Cache replaced", extra={"records": len(rows)})
        return len(rows)

    def load_all(self) -> list[ProcessedUser]:
        with self.transaction() as cur:
            cur.execute("SELECT data FROM processed_users")
            return [ProcessedUser.from_dict(json.loads(row["data"])) for row in cur.fetchall()]

    def count(self) -> int:
        with self.transaction() as cur:
            cur.execute("SELECT COUNT(*) FROM processed_users")
            return cur.fetchone()[0]

    def clear(self) -> None:
        with self.transaction() as cur:
            cur.execute("DELETE FROM processed_users")

    # ------------------------------------------------------------------
    # Sync run tracking
    # ------------------------------------------------------------------

    def record_run_start(self) -> str:
        """Insert a RUNNING sync_runs row. Returns the run id."""
        run_id = str(uuid.uuid4())
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sync_runs (id, status, started_at)
                   VALUES (?, 'RUNNING', ?)""",
                (run_id, _now().isoformat()),
            )
        return run_id

    def record_run_end(
        self,
        run_id: str,
        status: str,
        records_upserted: int = 0,
        error_message: Optional[str] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        """Finalise a sync_runs row."""
        finished = (finished_at or _now()).astimezone(timezone.utc)
        with self.transaction() as cur:
            cur.execute(
                """UPDATE sync_runs
                   SET status = ?,
                       finished_at = ?,
                       records_upserted = ?,
                       error_message = ?
                   WHERE id = ?""",
                (status, finished.isoformat(), records_upserted, error_message, run_id),
            )

    def set_last_sync_time(self, when: datetime, records_upserted: int = 0) -> None:
        """Record a successful sync finishing at ``when``."""
        when = when.astimezone(timezone.utc)
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sync_runs
                   (id, status, started_at, finished_at, records_upserted)
                   VALUES (?, 'SUCCESS', ?, ?, ?)""",
                (str(uuid.uuid4()), when.isoformat(), when.isoformat(), records_upserted),
            )

    def get_last_sync_time(self) -> Optional[datetime]:
        with self.transaction() as cur:
            cur.execute(
                """SELECT MAX(finished_at) FROM sync_runs
                   WHERE status = 'SUCCESS' AND finished_at IS NOT NULL"""
            )
            value = cur.fetchone()[0]
        return datetime.fromisoformat(value) if value else None

    def get_recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        """Fetch recent sync runs for status display, newest first."""
        with self.transaction() as cur:
            cur.execute(
                """SELECT id, status, started_at, finished_at,
                          records_upserted, error_message
                   FROM sync_runs
                   ORDER BY started_at DESC LIMIT ?""",
                (limit,),
            )
            return [dict(row) for row in cur.fetchall()]
