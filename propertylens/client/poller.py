"""Adaptive-interval session poller.

Client-side counterpart of the SessionCache: polls
``GET /session/{id}?basic=true`` on a schedule that tightens as the run
progresses, fetches the full snapshot once the report should be ready,
and publishes immutable :class:`PollerState` values on a
:class:`StateChannel`.

# ─── VIEW MODES (Junior Developer Guide) ──────────────────────────────
#
#   status                         view mode
#   ─────────────────────────────────────────────
#   pending                        preview   (unless analysis was started)
#   analyzing / finalizing         dashboard
#   completed / degraded + report  report
#
# Once the user has started the analysis, a stale ``pending`` response
# (out-of-order poll) no longer flips the view back to preview.
#
# Polling stops when the terminal condition is seen (terminal status,
# report present, completedSteps ≥ totalSteps), when the session errors,
# after max_consecutive_errors failed polls, or on stop().
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from propertylens.client.state_channel import StateChannel
from propertylens.models.session import REPORT_STATUSES, SessionStatus
from propertylens.utils.concurrency import RequestDeduplicator
from propertylens.utils.errors import PropertyLensError, SessionNotFoundError
from propertylens.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

PENDING_INTERVAL_MS = 3000
# (progress fraction upper bound, interval ms); the last interval also
# applies at and above the last bound.
DEFAULT_SCHEDULE: tuple[tuple[float, int], ...] = (
    (0.3, 3000),
    (0.7, 2000),
    (0.9, 1000),
    (1.0, 500),
)
DEFAULT_MAX_CONSECUTIVE_ERRORS = 5


class ViewMode(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    PREVIEW = "preview"
    DASHBOARD = "dashboard"
    REPORT = "report"


@dataclass(frozen=True)
class PollerState:
    """One published observation of a session."""

    session_id: str
    view_mode: ViewMode = ViewMode.PREVIEW
    status: str | None = None
    completed_steps: int | None = None
    total_steps: int | None = None
    snapshot: dict[str, Any] | None = None
    report_ready: bool = False
    analysis_started: bool = False
    finished: bool = False
    error: str | None = None
    consecutive_errors: int = 0
    polls: int = 0

    @property
    def progress(self) -> float:
        return progress_fraction(self.completed_steps, self.total_steps)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def progress_fraction(completed: int | None, total: int | None) -> float:
    if not completed or not total:
        return 0.0
    return min(completed / total, 1.0)


def polling_interval_ms(
    status: str | None,
    completed: int | None,
    total: int | None,
    schedule: Sequence[tuple[float, int]] = DEFAULT_SCHEDULE,
    pending_interval_ms: int = PENDING_INTERVAL_MS,
) -> int:
    """Return the delay before the next poll.

    ``pending`` uses a flat interval; otherwise the interval is a step
    function of ``completed / total``.
    """
    if status == SessionStatus.PENDING.value:
        return pending_interval_ms
    fraction = progress_fraction(completed, total)
    for upper_bound, interval in schedule:
        if fraction < upper_bound:
            return interval
    return schedule[-1][1]


def steps_done(completed: int | None, total: int | None) -> bool:
    """``completed ≥ total``; unknown step counts do not hold polling open."""
    if completed is None or total is None:
        return True
    return completed >= total


def resolve_view_mode(
    status: str | None,
    has_report: bool,
    analysis_started: bool,
    current: ViewMode,
) -> ViewMode:
    if status in REPORT_STATUSES and has_report:
        return ViewMode.REPORT
    if status == SessionStatus.PENDING.value:
        return current if analysis_started else ViewMode.PREVIEW
    if status in (
        SessionStatus.ANALYZING.value,
        SessionStatus.FINALIZING.value,
        *REPORT_STATUSES,
    ):
        return ViewMode.DASHBOARD
    return current


def is_terminal(
    status: str | None,
    has_report: bool,
    completed: int | None,
    total: int | None,
) -> bool:
    if status == SessionStatus.ERROR.value:
        return True
    return status in REPORT_STATUSES and has_report and steps_done(completed, total)


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------


class SessionPoller:
    """Owns the polling loop for one session and publishes its state.

    Parameters
    ----------
    session_id:
        Session to watch.
    http_client:
        Shared ``httpx.AsyncClient``; its ``base_url`` may be set instead
        of passing *base_url*.
    base_url:
        Root of the coordinator API, e.g. ``http://localhost:8000``.
    deduplicator:
        Shared client-side deduplicator, so overlapping polls for the same
        session (timer plus manual refresh) collapse into one request.
    sleep:
        Awaitable sleep used between polls; injectable for tests.
    """

    def __init__(
        self,
        session_id: str,
        http_client: httpx.AsyncClient,
        base_url: str = "",
        deduplicator: RequestDeduplicator | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        schedule: Sequence[tuple[float, int]] = DEFAULT_SCHEDULE,
        pending_interval_ms: int = PENDING_INTERVAL_MS,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
    ) -> None:
        self._session_id = session_id
        self._http = http_client
        segment = quote(session_id, safe="")
        self._session_url = f"{base_url.rstrip('/')}/session/{segment}"
        self._dedup = deduplicator or RequestDeduplicator(name="poller")
        self._sleep = sleep
        self._schedule = tuple(schedule)
        self._pending_interval_ms = pending_interval_ms
        self._max_errors = max_consecutive_errors
        self._task: asyncio.Task[PollerState] | None = None
        self.channel: StateChannel[PollerState] = StateChannel(PollerState(session_id=session_id))

    @property
    def state(self) -> PollerState:
        return self.channel.current or PollerState(session_id=self._session_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task[PollerState]:
        """Start the owner task; calling again while it runs is a no-op."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"poller-{self._session_id}")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self) -> PollerState:
        """Poll until finished; closes the channel on every exit path."""
        try:
            state = self.state
            while not state.finished:
                state = await self.poll_once()
                if state.finished:
                    break
                await self._sleep(self.next_interval_ms(state) / 1000)
            _logger.info(
                "polling_stopped",
                session_id=self._session_id,
                status=state.status,
                view_mode=state.view_mode.value,
                polls=state.polls,
            )
            return state
        finally:
            self.channel.close()

    def next_interval_ms(self, state: PollerState | None = None) -> int:
        state = state or self.state
        return polling_interval_ms(
            state.status,
            state.completed_steps,
            state.total_steps,
            schedule=self._schedule,
            pending_interval_ms=self._pending_interval_ms,
        )

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> PollerState:
        """Fetch once, publish the resulting state, and return it."""
        previous = self.state
        try:
            basic = await self._fetch(basic=True)
            status = basic.get("status")
            completed = basic.get("completedSteps")
            total = basic.get("totalSteps")
            snapshot = basic
            has_report = False
            if status in REPORT_STATUSES and steps_done(completed, total):
                snapshot = await self._fetch(basic=False)
                has_report = snapshot.get("report") is not None
        except (httpx.HTTPError, PropertyLensError, ValueError) as exc:
            current = self.state
            errors = current.consecutive_errors + 1
            gave_up = errors >= self._max_errors
            _logger.warning(
                "poll_failed",
                session_id=self._session_id,
                error=str(exc),
                consecutive_errors=errors,
                giving_up=gave_up,
            )
            state = replace(
                current,
                error=str(exc),
                consecutive_errors=errors,
                polls=current.polls + 1,
                finished=gave_up,
            )
            self.channel.publish(state)
            return state

        # start_analysis may have run while the fetch was in flight.
        current = self.state
        analysis_started = previous.analysis_started or current.analysis_started
        state = replace(
            current,
            analysis_started=analysis_started,
            view_mode=resolve_view_mode(
                status, has_report, analysis_started, current.view_mode
            ),
            status=status,
            completed_steps=completed,
            total_steps=total,
            snapshot=snapshot,
            report_ready=has_report,
            finished=is_terminal(status, has_report, completed, total),
            error=None,
            consecutive_errors=0,
            polls=current.polls + 1,
        )
        if state.view_mode is not current.view_mode:
            _logger.info(
                "view_mode_changed",
                session_id=self._session_id,
                previous=current.view_mode.value,
                current=state.view_mode.value,
                status=status,
            )
        self.channel.publish(state)
        return state

    async def start_analysis(self, user_context: str | None = None) -> dict[str, Any]:
        """Ask the coordinator to start the run, then switch to the dashboard."""
        body = {"userContext": user_context} if user_context else {}
        response = await self._http.post(
            f"{self._session_url}/start-analysis", json=body
        )
        response.raise_for_status()
        self.mark_analysis_started()
        return response.json()

    def mark_analysis_started(self) -> None:
        if self.channel.closed:
            return
        state = replace(self.state, analysis_started=True, view_mode=ViewMode.DASHBOARD)
        self.channel.publish(state)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _fetch(self, *, basic: bool) -> dict[str, Any]:
        key = f"{self._session_id}:{'basic' if basic else 'full'}"
        return await self._dedup.fetch_once(key, lambda: self._get(basic=basic))

    async def _get(self, *, basic: bool) -> dict[str, Any]:
        params = {"basic": "true"} if basic else None
        response = await self._http.get(
            self._session_url,
            params=params,
            headers={"Cache-Control": "no-cache"},
        )
        if response.status_code == 404:
            raise SessionNotFoundError(message=f"Session not found: {self._session_id}")
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data
