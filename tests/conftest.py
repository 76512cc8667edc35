"""Shared pytest fixtures for the PropertyLens test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.providers.archive.sqlite_session_archive import SQLiteSessionArchive
from propertylens.providers.cache.memory_cache import MemoryCacheProvider
from propertylens.providers.feedback.sqlite_feedback_provider import SQLiteFeedbackProvider
from propertylens.services.feedback_aggregator import FeedbackAggregator
from propertylens.services.session_cache import SessionCache
from propertylens.services.trigger_evaluator import TriggerEvaluator, TriggerPolicy

# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class FakeMonotonic:
    """Controllable stand-in for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """Controllable stand-in for ``utc_now``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)  # noqa: UP017

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Snapshot + engine helpers
# ---------------------------------------------------------------------------


def make_snapshot(
    session_id: str = "abc",
    status: str = "completed",
    completed_steps: int | None = 8,
    total_steps: int | None = 8,
    **overrides: Any,
) -> dict[str, Any]:
    """Build an engine-shaped session snapshot."""
    snapshot: dict[str, Any] = {
        "sessionId": session_id,
        "status": status,
        "completedSteps": completed_steps,
        "totalSteps": total_steps,
        "createdAt": "2025-03-01T10:00:00Z",
        "property": {
            "address": "Calle Mayor 1",
            "city": "Madrid",
            "province": "Madrid",
            "price": 425000,
            "propertyType": "apartment",
            "description": "Piso luminoso con balcón",
            "bedrooms": 3,
        },
        "report": {"valuation": {"estimate": 431000}} if status == "completed" else None,
    }
    snapshot.update(overrides)
    return snapshot


def make_engine(
    snapshot: dict[str, Any] | None = None,
    *,
    fetch_side_effect: Any = None,
    start_side_effect: Any = None,
) -> MagicMock:
    """Create a mock IAnalysisEngine with AsyncMock methods."""
    engine = MagicMock(spec=IAnalysisEngine)
    engine.fetch_session = AsyncMock(
        return_value=snapshot if snapshot is not None else make_snapshot(),
        side_effect=fetch_side_effect,
    )
    engine.start_analysis = AsyncMock(
        return_value={"success": True}, side_effect=start_side_effect
    )
    engine.get_provider_name.return_value = "mock_engine"
    return engine


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def clock() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def cache_store(clock: FakeMonotonic) -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=100, max_age=300.0, clock=clock)


@pytest.fixture
async def feedback_provider(tmp_path: Path) -> SQLiteFeedbackProvider:
    """SQLiteFeedbackProvider on a temporary database."""
    provider = SQLiteFeedbackProvider(db_path=tmp_path / "feedback.db")
    await provider.initialize()
    return provider


@pytest.fixture
async def session_archive(tmp_path: Path) -> SQLiteSessionArchive:
    archive = SQLiteSessionArchive(db_path=tmp_path / "archive.db")
    await archive.initialize()
    return archive


@pytest.fixture
def engine() -> MagicMock:
    return make_engine()


@pytest.fixture
def session_cache(
    cache_store: MemoryCacheProvider, engine: MagicMock, clock: FakeMonotonic
) -> SessionCache:
    return SessionCache(store=cache_store, engine=engine, clock=clock)


@pytest.fixture
def aggregator(
    feedback_provider: SQLiteFeedbackProvider, wall_clock: FakeWallClock
) -> FeedbackAggregator:
    return FeedbackAggregator(store=feedback_provider, clock=wall_clock)


@pytest.fixture
def trigger_evaluator(
    aggregator: FeedbackAggregator,
    session_cache: SessionCache,
    engine: MagicMock,
    feedback_provider: SQLiteFeedbackProvider,
    wall_clock: FakeWallClock,
) -> TriggerEvaluator:
    evaluator = TriggerEvaluator(
        aggregator=aggregator,
        session_cache=session_cache,
        engine=engine,
        store=feedback_provider,
        policy=TriggerPolicy(),
        clock=wall_clock,
    )
    session_cache.register_listener(evaluator.on_snapshot)
    return evaluator
