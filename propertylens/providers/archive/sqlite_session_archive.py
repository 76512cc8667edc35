"""SQLite-backed archive of finished session snapshots.

The SessionCache writes every terminal snapshot it fetches through to this
archive.  It is read only as the last step of the fallback chain: when the
Analysis Engine is unreachable *and* the in-memory entry is gone (never
cached, or already swept).

Archived rows older than ``max_age_hours`` are pruned on
:meth:`initialize`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from propertylens.interfaces.session_archive import ISessionArchive
from propertylens.utils.logging import get_logger

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS {table} (
    session_id    TEXT PRIMARY KEY,
    status        TEXT NOT NULL,
    snapshot_json TEXT NOT NULL,
    created_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_INDEX_SQL = (
    "CREATE INDEX IF NOT EXISTS idx_{table}_updated ON {table}(updated_at);"
)

_UPSERT_SQL = """\
INSERT INTO {table} (session_id, status, snapshot_json)
VALUES (?, ?, ?)
ON CONFLICT(session_id)
DO UPDATE SET status        = excluded.status,
              snapshot_json = excluded.snapshot_json,
              updated_at    = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_SELECT_SQL = "SELECT snapshot_json FROM {table} WHERE session_id = ?;"

_COUNT_SQL = "SELECT COUNT(*) FROM {table};"

_PRUNE_SQL = """\
DELETE FROM {table}
WHERE updated_at < strftime('%Y-%m-%dT%H:%M:%fZ', 'now', '-{hours} hours');
"""


class SQLiteSessionArchive(ISessionArchive):
    """Durable last-resort store for finished session snapshots.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    table_name:
        Table name to use.
    max_age_hours:
        Archived snapshots older than this are pruned on :meth:`initialize`.
        Set to ``0`` to disable pruning.
    """

    def __init__(
        self,
        db_path: str | Path,
        table_name: str = "session_archive",
        max_age_hours: int = 24 * 30,
    ) -> None:
        self._db_path = Path(db_path)
        self._table = table_name
        self._max_age_hours = max_age_hours
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the table, index, and prune stale rows."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL.format(table=self._table))
            await db.execute(_CREATE_INDEX_SQL.format(table=self._table))
            if self._max_age_hours > 0:
                cursor = await db.execute(
                    _PRUNE_SQL.format(table=self._table, hours=self._max_age_hours)
                )
                if cursor.rowcount:
                    self._logger.info(
                        "archived_sessions_pruned",
                        table=self._table,
                        pruned=cursor.rowcount,
                        max_age_hours=self._max_age_hours,
                    )
            await db.commit()
            cursor = await db.execute(_COUNT_SQL.format(table=self._table))
            row = await cursor.fetchone()

        self._logger.info(
            "session_archive_initialized",
            db_path=str(self._db_path),
            table=self._table,
            archived_sessions=row[0] if row else 0,
        )

    # ------------------------------------------------------------------
    # ISessionArchive implementation
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> dict[str, Any] | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SELECT_SQL.format(table=self._table), (session_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            snapshot = json.loads(row[0])
        except json.JSONDecodeError:
            self._logger.warning("archived_snapshot_corrupt", session_id=session_id)
            return None
        return snapshot if isinstance(snapshot, dict) else None

    async def put(self, session_id: str, snapshot: dict[str, Any]) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_SQL.format(table=self._table),
                (session_id, str(snapshot.get("status", "")), json.dumps(snapshot)),
            )
            await db.commit()
        self._logger.debug("session_archived", session_id=session_id)

    def get_provider_name(self) -> str:
        return "sqlite_session_archive"
