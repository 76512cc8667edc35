"""SQLite-backed feedback provider.

Appends section thumbs, star ratings and trigger records to a local SQLite
database at ``data/feedback.db``.  Uses ``aiosqlite`` for async I/O.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.models.feedback import (
    Polarity,
    SectionFeedbackEvent,
    StarRatingEvent,
    TriggerReason,
    TriggerRecord,
    TriggerStatus,
)
from propertylens.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_DEFAULT_DB_PATH = Path("data/feedback.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS section_feedback (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id   TEXT NOT NULL,
    section_id   TEXT NOT NULL,
    polarity     TEXT NOT NULL CHECK (polarity IN ('positive', 'negative')),
    user_id      TEXT,
    timestamp    TEXT NOT NULL,
    recorded_at  TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS star_ratings (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id   TEXT    NOT NULL,
    rating       INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    user_id      TEXT,
    timestamp    TEXT    NOT NULL,
    recorded_at  TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS trigger_records (
    trigger_id    TEXT PRIMARY KEY,
    session_id    TEXT NOT NULL,
    reason        TEXT NOT NULL,
    details_json  TEXT NOT NULL,
    status        TEXT NOT NULL,
    triggered_at  TEXT NOT NULL,
    resolved_at   TEXT
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_section_session ON section_feedback(session_id, section_id);",
    "CREATE INDEX IF NOT EXISTS idx_section_recorded ON section_feedback(recorded_at);",
    "CREATE INDEX IF NOT EXISTS idx_ratings_session ON star_ratings(session_id);",
    "CREATE INDEX IF NOT EXISTS idx_triggers_session ON trigger_records(session_id);",
]

_SECTION_COLUMNS = "session_id, section_id, polarity, user_id, timestamp, recorded_at"
_RATING_COLUMNS = "session_id, rating, user_id, timestamp, recorded_at"
_TRIGGER_COLUMNS = "trigger_id, session_id, reason, details_json, status, triggered_at, resolved_at"


def _to_iso(value: datetime) -> str:
    """Fixed-width UTC ISO format so string comparison orders correctly."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")  # noqa: UP017


def _from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SQLiteFeedbackProvider(IFeedbackProvider):
    """SQLite-backed feedback and trigger persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("feedback_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def add_section_feedback(self, event: SectionFeedbackEvent) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                f"INSERT INTO section_feedback ({_SECTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    event.session_id,
                    event.section_id,
                    event.polarity.value,
                    event.user_id,
                    _to_iso(event.timestamp),
                    _to_iso(event.recorded_at),
                ),
            )
            await db.commit()
        logger.info(
            "section_feedback_stored",
            session_id=event.session_id,
            section_id=event.section_id,
            polarity=event.polarity.value,
        )

    async def add_star_rating(self, event: StarRatingEvent) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                f"INSERT INTO star_ratings ({_RATING_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (
                    event.session_id,
                    event.rating,
                    event.user_id,
                    _to_iso(event.timestamp),
                    _to_iso(event.recorded_at),
                ),
            )
            await db.commit()
        logger.info("star_rating_stored", session_id=event.session_id, rating=event.rating)

    async def list_section_feedback(
        self,
        session_id: str | None = None,
        section_id: str | None = None,
        since: datetime | None = None,
    ) -> list[SectionFeedbackEvent]:
        clauses: list[str] = []
        params: list[Any] = []
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        if section_id is not None:
            clauses.append("section_id = ?")
            params.append(section_id)
        if since is not None:
            clauses.append("recorded_at >= ?")
            params.append(_to_iso(since))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SECTION_COLUMNS} FROM section_feedback{where} ORDER BY id ASC",
                params,
            )
            rows = await cursor.fetchall()

        return [
            SectionFeedbackEvent(
                session_id=r["session_id"],
                section_id=r["section_id"],
                polarity=Polarity(r["polarity"]),
                user_id=r["user_id"],
                timestamp=_from_iso(r["timestamp"]),
                recorded_at=_from_iso(r["recorded_at"]),
            )
            for r in rows
        ]

    async def list_star_ratings(
        self,
        session_id: str | None = None,
        since: datetime | None = None,
    ) -> list[StarRatingEvent]:
        clauses: list[str] = []
        params: list[Any] = []
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        if since is not None:
            clauses.append("recorded_at >= ?")
            params.append(_to_iso(since))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_RATING_COLUMNS} FROM star_ratings{where} ORDER BY id ASC",
                params,
            )
            rows = await cursor.fetchall()

        return [
            StarRatingEvent(
                session_id=r["session_id"],
                rating=r["rating"],
                user_id=r["user_id"],
                timestamp=_from_iso(r["timestamp"]),
                recorded_at=_from_iso(r["recorded_at"]),
            )
            for r in rows
        ]

    async def get_section_summary(self) -> dict[str, Any]:
        """Return global section-feedback totals and a per-section breakdown."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT section_id, "
                "COUNT(*) AS total, "
                "SUM(CASE WHEN polarity = 'positive' THEN 1 ELSE 0 END) AS positive, "
                "SUM(CASE WHEN polarity = 'negative' THEN 1 ELSE 0 END) AS negative "
                "FROM section_feedback GROUP BY section_id ORDER BY section_id",
            )
            rows = await cursor.fetchall()

        by_section: dict[str, dict[str, int]] = {}
        total = positive = negative = 0
        for row in rows:
            r = dict(row)
            by_section[r["section_id"]] = {
                "positive": r["positive"],
                "negative": r["negative"],
                "total": r["total"],
            }
            total += r["total"]
            positive += r["positive"]
            negative += r["negative"]

        return {
            "total": total,
            "positive": positive,
            "negative": negative,
            "by_section": by_section,
        }

    # ------------------------------------------------------------------
    # Trigger records
    # ------------------------------------------------------------------

    async def add_trigger(self, record: TriggerRecord) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                f"INSERT INTO trigger_records ({_TRIGGER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    record.trigger_id,
                    record.session_id,
                    record.reason.value,
                    json.dumps(record.details, default=str),
                    record.status.value,
                    _to_iso(record.triggered_at),
                    _to_iso(record.resolved_at) if record.resolved_at else None,
                ),
            )
            await db.commit()
        logger.info(
            "trigger_record_stored",
            trigger_id=record.trigger_id,
            session_id=record.session_id,
            reason=record.reason.value,
        )

    async def resolve_trigger(
        self,
        trigger_id: str,
        status: TriggerStatus,
        resolved_at: datetime,
    ) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "UPDATE trigger_records SET status = ?, resolved_at = ? WHERE trigger_id = ?",
                (status.value, _to_iso(resolved_at), trigger_id),
            )
            await db.commit()
        logger.info("trigger_record_resolved", trigger_id=trigger_id, status=status.value)

    async def list_triggers(self, session_id: str | None = None) -> list[TriggerRecord]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            if session_id is not None:
                cursor = await db.execute(
                    f"SELECT {_TRIGGER_COLUMNS} FROM trigger_records "
                    "WHERE session_id = ? ORDER BY triggered_at ASC",
                    (session_id,),
                )
            else:
                cursor = await db.execute(
                    f"SELECT {_TRIGGER_COLUMNS} FROM trigger_records ORDER BY triggered_at ASC",
                )
            rows = await cursor.fetchall()

        return [
            TriggerRecord(
                trigger_id=r["trigger_id"],
                session_id=r["session_id"],
                reason=TriggerReason(r["reason"]),
                details=json.loads(r["details_json"]),
                status=TriggerStatus(r["status"]),
                triggered_at=_from_iso(r["triggered_at"]),
                resolved_at=_from_iso(r["resolved_at"]),
            )
            for r in rows
        ]

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return "sqlite_feedback"
