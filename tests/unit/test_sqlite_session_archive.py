"""Unit tests for SQLiteSessionArchive."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest

from propertylens.providers.archive.sqlite_session_archive import SQLiteSessionArchive
from tests.conftest import make_snapshot


@pytest.mark.asyncio
async def test_get_missing_returns_none(session_archive: SQLiteSessionArchive) -> None:
    assert await session_archive.get("missing") is None


@pytest.mark.asyncio
async def test_put_then_get(session_archive: SQLiteSessionArchive) -> None:
    snapshot = make_snapshot()
    await session_archive.put("abc", snapshot)

    assert await session_archive.get("abc") == snapshot


@pytest.mark.asyncio
async def test_put_overwrites(session_archive: SQLiteSessionArchive) -> None:
    await session_archive.put("abc", make_snapshot(status="error"))
    await session_archive.put("abc", make_snapshot(status="completed"))

    assert (await session_archive.get("abc"))["status"] == "completed"


@pytest.mark.asyncio
async def test_corrupt_row_returns_none(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    archive = SQLiteSessionArchive(db_path=db_path)
    await archive.initialize()
    async with aiosqlite.connect(str(db_path)) as db:
        await db.execute(
            "INSERT INTO session_archive (session_id, status, snapshot_json) VALUES (?, ?, ?)",
            ("abc", "completed", "{not json"),
        )
        await db.commit()

    assert await archive.get("abc") is None


@pytest.mark.asyncio
async def test_initialize_prunes_old_rows(tmp_path: Path) -> None:
    db_path = tmp_path / "archive.db"
    archive = SQLiteSessionArchive(db_path=db_path, max_age_hours=1)
    await archive.initialize()
    await archive.put("abc", make_snapshot())
    async with aiosqlite.connect(str(db_path)) as db:
        await db.execute(
            "UPDATE session_archive SET updated_at = '2000-01-01T00:00:00.000Z'"
        )
        await db.commit()

    await archive.initialize()

    assert await archive.get("abc") is None


@pytest.mark.asyncio
async def test_provider_name(session_archive: SQLiteSessionArchive) -> None:
    assert session_archive.get_provider_name() == "sqlite_session_archive"
