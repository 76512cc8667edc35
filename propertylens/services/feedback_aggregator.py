"""Rolling per-session feedback aggregates and the trigger cooldown marker.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Services.
# Depends on: IFeedbackProvider (durable event log + trigger records).
#
# Every accepted feedback event is appended to the provider first and
# only then counted in memory, so a failed write never leaves a phantom
# increment behind.  Aggregates are updated incrementally on the hot
# path; the provider is read once per session (on first touch) to
# rebuild the current accumulation window after a restart.
#
# The aggregator also owns the trigger cooldown marker.  All mutation of
# one session's state happens under that session's KeyedLock, which is
# what makes claim_cooldown() a real test-and-set.
#
# Window lifecycle:
#   open ──claim_cooldown──→ cooling down ──run seen running──→ run started
#     ↑                                                             │
#     └────────── close (aggregates reset) ←── run seen terminal ───┘
#
# A marker older than cooldown_max_age is expired on the next touch and
# the window closes the same way.
#
# Sessions with an open cooldown are pinned in memory so status
# observations can close their window.  All other sessions live in a
# bounded LRU and are rebuilt from the provider after eviction.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog
from cachetools import LRUCache

from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.models.feedback import (
    ANONYMOUS_USER,
    LOW_RATING_MAX,
    FeedbackAggregate,
    Polarity,
    SectionFeedbackEvent,
    SectionTally,
    StarRatingEvent,
    TriggerStatus,
    utc_now,
)
from propertylens.models.session import RUNNING_STATUSES, TERMINAL_STATUSES
from propertylens.utils.concurrency import KeyedLock
from propertylens.utils.logging import get_logger

_DEFAULT_WINDOW_HOURS = 336
_DEFAULT_COOLDOWN_MAX_HOURS = 24
_DEFAULT_MAX_TRACKED_SESSIONS = 10_000
# Trigger outcomes that end an accumulation window.
_WINDOW_CLOSING = frozenset({TriggerStatus.COMPLETED, TriggerStatus.EXPIRED})


@dataclass
class _SectionCounts:
    positive: int = 0
    negative: int = 0
    negative_users: set[str] = field(default_factory=set)


@dataclass
class _SessionState:
    """Mutable per-session state; only ever touched under the session lock."""

    sections: dict[str, _SectionCounts] = field(default_factory=dict)
    ratings: list[int] = field(default_factory=list)
    rating_sum: int = 0
    low_rating_users: set[str] = field(default_factory=set)
    window_started_at: datetime | None = None
    trigger_id: str | None = None
    cooldown_since: datetime | None = None
    run_started: bool = False

    def add_section(self, event: SectionFeedbackEvent) -> None:
        counts = self.sections.setdefault(event.section_id, _SectionCounts())
        if event.polarity is Polarity.POSITIVE:
            counts.positive += 1
        else:
            counts.negative += 1
            counts.negative_users.add(event.user_id or ANONYMOUS_USER)

    def add_rating(self, event: StarRatingEvent) -> None:
        self.ratings.append(event.rating)
        self.rating_sum += event.rating
        if event.rating <= LOW_RATING_MAX:
            self.low_rating_users.add(event.user_id or ANONYMOUS_USER)

    def reset_window(self, started_at: datetime) -> None:
        self.sections.clear()
        self.ratings.clear()
        self.rating_sum = 0
        self.low_rating_users.clear()
        self.window_started_at = started_at
        self.trigger_id = None
        self.cooldown_since = None
        self.run_started = False


class FeedbackAggregator:
    """Ingests feedback events and maintains per-session aggregates.

    Parameters
    ----------
    store:
        Durable feedback log.  Events are written here before they are
        counted.
    window_hours:
        Only events this recent are counted when rebuilding a session's
        aggregate from the store.
    cooldown_max_hours:
        Safety expiry for a cooldown marker whose re-run never becomes
        visible.  ``0`` disables expiry.
    max_tracked_sessions:
        Upper bound on sessions held in memory without an open cooldown;
        the least recently used are dropped first.
    clock:
        Wall-clock source returning aware UTC datetimes.
    """

    def __init__(
        self,
        store: IFeedbackProvider,
        window_hours: float = _DEFAULT_WINDOW_HOURS,
        cooldown_max_hours: float = _DEFAULT_COOLDOWN_MAX_HOURS,
        max_tracked_sessions: int = _DEFAULT_MAX_TRACKED_SESSIONS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._window = timedelta(hours=window_hours)
        self._cooldown_max_age = (
            timedelta(hours=cooldown_max_hours) if cooldown_max_hours > 0 else None
        )
        self._clock = clock
        self._idle: LRUCache[str, _SessionState] = LRUCache(maxsize=max_tracked_sessions)
        self._cooling: dict[str, _SessionState] = {}
        self._locks = KeyedLock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def tracked_sessions(self) -> int:
        return len(self._idle) + len(self._cooling)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record(self, event: SectionFeedbackEvent | StarRatingEvent) -> FeedbackAggregate:
        """Persist *event* and fold it into its session's aggregate."""
        if isinstance(event, SectionFeedbackEvent):
            return await self.record_section_feedback(event)
        return await self.record_star_rating(event)

    async def record_section_feedback(self, event: SectionFeedbackEvent) -> FeedbackAggregate:
        async with self._locks.hold(event.session_id):
            state = await self._state_for(event.session_id)
            event = event.model_copy(update={"recorded_at": self._clock()})
            await self._store.add_section_feedback(event)
            state.add_section(event)
            self._keep(event.session_id, state)
            self._logger.info(
                "section_feedback_recorded",
                session_id=event.session_id,
                section_id=event.section_id,
                polarity=event.polarity.value,
            )
            return self._snapshot(event.session_id, state)

    async def record_star_rating(self, event: StarRatingEvent) -> FeedbackAggregate:
        async with self._locks.hold(event.session_id):
            state = await self._state_for(event.session_id)
            event = event.model_copy(update={"recorded_at": self._clock()})
            await self._store.add_star_rating(event)
            state.add_rating(event)
            self._keep(event.session_id, state)
            self._logger.info(
                "star_rating_recorded",
                session_id=event.session_id,
                rating=event.rating,
                ratings_in_window=len(state.ratings),
            )
            return self._snapshot(event.session_id, state)

    async def aggregate_for(self, session_id: str) -> FeedbackAggregate:
        """Return a point-in-time copy of *session_id*'s aggregate.

        Reading a session that is not in memory does not start tracking it
        unless its cooldown is still open.
        """
        async with self._locks.hold(session_id):
            state = await self._state_for(session_id, track=False)
            return self._snapshot(session_id, state)

    # ------------------------------------------------------------------
    # Cooldown marker
    # ------------------------------------------------------------------

    async def claim_cooldown(self, session_id: str, trigger_id: str) -> bool:
        """Atomically set the cooldown marker; ``False`` if it was already set."""
        async with self._locks.hold(session_id):
            state = await self._state_for(session_id)
            if state.trigger_id is not None:
                return False
            state.trigger_id = trigger_id
            state.cooldown_since = self._clock()
            state.run_started = False
            self._keep(session_id, state)
            self._logger.info("cooldown_claimed", session_id=session_id, trigger_id=trigger_id)
            return True

    async def release_cooldown(self, session_id: str, trigger_id: str) -> None:
        """Roll back a claim made by *trigger_id*; aggregates are kept."""
        async with self._locks.hold(session_id):
            state = self._cooling.get(session_id)
            if state is None or state.trigger_id != trigger_id:
                return
            state.trigger_id = None
            state.cooldown_since = None
            state.run_started = False
            self._keep(session_id, state)
            self._logger.info("cooldown_released", session_id=session_id, trigger_id=trigger_id)

    async def note_session_status(self, session_id: str, status: str) -> str | None:
        """Advance the cooldown lifecycle from an observed session status.

        Returns the trigger ID whose window was closed, if any.  Sessions
        without an open cooldown in memory are ignored.
        """
        if session_id not in self._cooling:
            return None
        async with self._locks.hold(session_id):
            state = self._cooling.get(session_id)
            if state is None or state.trigger_id is None:
                return None
            if status in RUNNING_STATUSES:
                if not state.run_started:
                    state.run_started = True
                    self._logger.info(
                        "triggered_run_started", session_id=session_id, status=status
                    )
                return None
            if status in TERMINAL_STATUSES and state.run_started:
                trigger_id = state.trigger_id
                await self._close_window(session_id, state, TriggerStatus.COMPLETED)
                self._keep(session_id, state)
                return trigger_id
            return None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _state_for(self, session_id: str, *, track: bool = True) -> _SessionState:
        """Return the loaded state, rehydrating from the store when absent.

        Must be called with the session lock held.  With ``track=False`` a
        rehydrated state is only kept if its cooldown is still open.
        """
        state = self._tracked(session_id)
        keep = state is not None or track
        if state is None:
            state = await self._rehydrate(session_id)
        if (
            state.trigger_id is not None
            and state.cooldown_since is not None
            and self._cooldown_max_age is not None
            and self._clock() - state.cooldown_since > self._cooldown_max_age
        ):
            await self._close_window(session_id, state, TriggerStatus.EXPIRED)
        if keep or state.trigger_id is not None:
            self._keep(session_id, state)
        return state

    def _tracked(self, session_id: str) -> _SessionState | None:
        state = self._cooling.get(session_id)
        if state is None:
            state = self._idle.get(session_id)
        return state

    def _keep(self, session_id: str, state: _SessionState) -> None:
        """File *state* as pinned (open cooldown) or in the bounded LRU."""
        if state.trigger_id is not None:
            self._idle.pop(session_id, None)
            self._cooling[session_id] = state
        else:
            self._cooling.pop(session_id, None)
            self._idle[session_id] = state

    async def _close_window(
        self,
        session_id: str,
        state: _SessionState,
        outcome: TriggerStatus,
    ) -> None:
        trigger_id = state.trigger_id
        now = self._clock()
        if trigger_id is not None:
            await self._store.resolve_trigger(trigger_id, outcome, now)
        state.reset_window(now)
        self._logger.info(
            "feedback_window_closed",
            session_id=session_id,
            trigger_id=trigger_id,
            outcome=outcome.value,
        )

    async def _rehydrate(self, session_id: str) -> _SessionState:
        state = _SessionState()
        since = self._clock() - self._window

        triggers = await self._store.list_triggers(session_id)
        for record in triggers:
            if record.status is TriggerStatus.TRIGGERED:
                state.trigger_id = record.trigger_id
                state.cooldown_since = record.triggered_at
            elif (
                record.status in _WINDOW_CLOSING
                and record.resolved_at is not None
                and (
                    state.window_started_at is None
                    or record.resolved_at > state.window_started_at
                )
            ):
                state.window_started_at = record.resolved_at
        if state.window_started_at is not None:
            since = max(since, state.window_started_at)

        for section_event in await self._store.list_section_feedback(
            session_id=session_id, since=since
        ):
            state.add_section(section_event)
        for rating_event in await self._store.list_star_ratings(
            session_id=session_id, since=since
        ):
            state.add_rating(rating_event)

        self._logger.debug(
            "feedback_aggregate_rehydrated",
            session_id=session_id,
            sections=len(state.sections),
            ratings=len(state.ratings),
            cooldown_active=state.trigger_id is not None,
        )
        return state

    @staticmethod
    def _snapshot(session_id: str, state: _SessionState) -> FeedbackAggregate:
        return FeedbackAggregate(
            session_id=session_id,
            sections={
                section_id: SectionTally(
                    section_id=section_id,
                    positive=counts.positive,
                    negative=counts.negative,
                    negative_users=len(counts.negative_users),
                )
                for section_id, counts in state.sections.items()
            },
            ratings=list(state.ratings),
            average_rating=(state.rating_sum / len(state.ratings)) if state.ratings else None,
            low_rating_users=len(state.low_rating_users),
            window_started_at=state.window_started_at,
            cooldown_active=state.trigger_id is not None,
            active_trigger_id=state.trigger_id,
            cooldown_since=state.cooldown_since,
        )
