"""Decides when accumulated negative feedback forces a fresh analysis run.

# ─── HOW A TRIGGER FIRES (Junior Developer Guide) ─────────────────────
#
#   feedback recorded
#        │
#        ▼
#   cooldown already set? ──yes──→ activated=False ("cooldown")
#        │ no
#        ▼
#   section ratio / rating floor crossed? ──no──→ "below_threshold"
#        │ yes
#        ▼
#   session resolvable and finished? ──no──→ "session_unavailable" /
#        │ yes                               "session_not_stable"
#        ▼
#   claim_cooldown()  ← atomic test-and-set; only ONE concurrent caller wins
#        │ won                    └─ lost → activated=False ("cooldown")
#        ▼
#   persist TriggerRecord → POST start-analysis → invalidate cache entry
#        │ engine failed
#        ▼
#   record marked "failed", cooldown released so later feedback can retry
#
# Feedback capture never depends on the outcome here: the route has
# already stored the event before this code runs.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import structlog

from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.models.feedback import (
    FeedbackAggregate,
    TriggerOutcome,
    TriggerReason,
    TriggerRecord,
    TriggerStatus,
    utc_now,
)
from propertylens.models.session import TERMINAL_STATUSES
from propertylens.services.feedback_aggregator import FeedbackAggregator
from propertylens.services.session_cache import SessionCache
from propertylens.utils.errors import PropertyLensError, TriggerEngineError
from propertylens.utils.logging import get_logger

_RECENT_TRIGGER_DAYS = 30
_TOP_SECTIONS = 5


@dataclass(frozen=True)
class TriggerPolicy:
    """Thresholds for feedback-triggered re-analysis.

    A section qualifies once it has at least ``min_section_samples`` votes
    and its negative share is strictly above ``negative_ratio``.  Ratings
    qualify once there are at least ``min_rating_samples`` and their
    average is strictly below ``rating_floor``.
    """

    negative_ratio: float = 0.6
    min_section_samples: int = 3
    rating_floor: float = 2.5
    min_rating_samples: int = 2
    require_distinct_users: bool = False
    eligible_statuses: frozenset[str] = TERMINAL_STATUSES


class TriggerEvaluator:
    """Evaluates aggregates after each feedback event and fires at most one re-run.

    Parameters
    ----------
    aggregator:
        Owner of the aggregates and the cooldown marker.
    session_cache:
        Used to read the session's current status (basic projection) and
        to invalidate its entry after a re-run starts.
    engine:
        Analysis Engine adapter used to start the re-run.
    store:
        Durable trigger record log.
    policy:
        Thresholds; defaults match the production configuration.
    clock:
        Wall-clock source returning aware UTC datetimes.
    """

    def __init__(
        self,
        aggregator: FeedbackAggregator,
        session_cache: SessionCache,
        engine: IAnalysisEngine,
        store: IFeedbackProvider,
        policy: TriggerPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._aggregator = aggregator
        self._cache = session_cache
        self._engine = engine
        self._store = store
        self._policy = policy or TriggerPolicy()
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def policy(self) -> TriggerPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def on_feedback_recorded(self, session_id: str) -> TriggerOutcome:
        """Evaluate *session_id* after a feedback event has been stored."""
        aggregate = await self._aggregator.aggregate_for(session_id)
        if aggregate.cooldown_active:
            return TriggerOutcome(activated=False, skipped_reason="cooldown")

        crossing = self.evaluate(aggregate)
        if crossing is None:
            return TriggerOutcome(activated=False, skipped_reason="below_threshold")
        reason, details = crossing

        basic = await self._cache.get(session_id, basic_only=True)
        if basic is None:
            self._logger.info("trigger_skipped_session_unavailable", session_id=session_id)
            return TriggerOutcome(activated=False, skipped_reason="session_unavailable")
        status = basic.get("status")
        if status not in self._policy.eligible_statuses:
            self._logger.info(
                "trigger_skipped_session_not_stable", session_id=session_id, status=status
            )
            return TriggerOutcome(activated=False, skipped_reason="session_not_stable")

        trigger_id = uuid4().hex
        if not await self._aggregator.claim_cooldown(session_id, trigger_id):
            self._logger.debug("trigger_race_lost", session_id=session_id)
            return TriggerOutcome(activated=False, skipped_reason="cooldown")

        record = TriggerRecord(
            trigger_id=trigger_id,
            session_id=session_id,
            triggered_at=self._clock(),
            reason=reason,
            details=details,
        )
        persisted = False
        try:
            await self._store.add_trigger(record)
            persisted = True
            await self._request_rerun(session_id, self._user_context(reason, details))
        except TriggerEngineError as exc:
            await self._roll_back(session_id, trigger_id, persisted=persisted)
            self._logger.warning(
                "trigger_rolled_back",
                session_id=session_id,
                trigger_id=trigger_id,
                error=str(exc),
            )
            return TriggerOutcome(activated=False, skipped_reason="engine_failure")
        except Exception:
            await self._roll_back(session_id, trigger_id, persisted=persisted)
            raise

        await self._cache.invalidate(session_id)
        self._logger.info(
            "trigger_activated",
            session_id=session_id,
            trigger_id=trigger_id,
            reason=reason.value,
        )
        return TriggerOutcome(activated=True, details=record)

    def evaluate(
        self, aggregate: FeedbackAggregate
    ) -> tuple[TriggerReason, dict[str, Any]] | None:
        """Return the first threshold *aggregate* crosses, or ``None``.

        The section rule is checked before the rating rule; among several
        qualifying sections the one with the highest negative share wins.
        """
        policy = self._policy
        candidates = []
        for tally in aggregate.sections.values():
            if tally.total < policy.min_section_samples:
                continue
            if tally.negative_ratio <= policy.negative_ratio:
                continue
            if policy.require_distinct_users and tally.negative_users < policy.min_section_samples:
                continue
            candidates.append(tally)

        if candidates:
            worst = max(candidates, key=lambda t: (t.negative_ratio, t.negative))
            return TriggerReason.NEGATIVE_SECTION_RATIO, {
                "sectionId": worst.section_id,
                "negativeCount": worst.negative,
                "totalCount": worst.total,
                "negativeRatio": round(worst.negative_ratio, 3),
                "threshold": policy.negative_ratio,
                "negativeFeedbackCount": aggregate.total_negative,
            }

        if (
            aggregate.average_rating is not None
            and len(aggregate.ratings) >= policy.min_rating_samples
            and aggregate.average_rating < policy.rating_floor
            and (
                not policy.require_distinct_users
                or aggregate.low_rating_users >= policy.min_rating_samples
            )
        ):
            return TriggerReason.LOW_AVERAGE_RATING, {
                "averageRating": round(aggregate.average_rating, 2),
                "ratingCount": len(aggregate.ratings),
                "floor": policy.rating_floor,
                "negativeFeedbackCount": aggregate.low_rating_count,
            }
        return None

    async def on_snapshot(self, session_id: str, snapshot: dict[str, Any]) -> None:
        """SessionCache listener: closes the window once a triggered re-run finishes."""
        status = snapshot.get("status")
        if not isinstance(status, str):
            return
        closed = await self._aggregator.note_session_status(session_id, status)
        if closed is not None:
            self._logger.info(
                "triggered_run_finished",
                session_id=session_id,
                trigger_id=closed,
                status=status,
            )

    async def get_trigger_stats(self) -> dict[str, Any]:
        """Summarise trigger history for the ``action=stats`` endpoint."""
        records = [
            r for r in await self._store.list_triggers() if r.status is not TriggerStatus.FAILED
        ]
        cutoff = self._clock() - timedelta(days=_RECENT_TRIGGER_DAYS)
        recent = sum(1 for r in records if r.triggered_at >= cutoff)

        negative_counts = [int(r.details.get("negativeFeedbackCount", 0)) for r in records]
        average_negative = (
            round(sum(negative_counts) / len(negative_counts), 2) if negative_counts else 0
        )

        sections = Counter(
            r.details["sectionId"] for r in records if r.details.get("sectionId")
        )
        return {
            "totalTriggers": len(records),
            "recentTriggers": recent,
            "averageNegativeFeedback": average_negative,
            "mostTriggeredSections": [
                {"sectionId": section_id, "count": count}
                for section_id, count in sections.most_common(_TOP_SECTIONS)
            ],
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _roll_back(self, session_id: str, trigger_id: str, *, persisted: bool) -> None:
        """Release the cooldown, then mark the persisted record FAILED.

        The cooldown is released even when the store write fails; that
        failure is logged and the record stays TRIGGERED.
        """
        await self._aggregator.release_cooldown(session_id, trigger_id)
        if not persisted:
            return
        try:
            await self._store.resolve_trigger(trigger_id, TriggerStatus.FAILED, self._clock())
        except Exception as exc:
            self._logger.error(
                "trigger_record_not_resolved",
                session_id=session_id,
                trigger_id=trigger_id,
                error=str(exc),
            )

    async def _request_rerun(self, session_id: str, user_context: str) -> None:
        try:
            await self._engine.start_analysis(session_id, user_context=user_context)
        except PropertyLensError as exc:
            raise TriggerEngineError(
                message=f"Re-run of {session_id} rejected: {exc.message}",
                provider_name=self._engine.get_provider_name(),
            ) from exc

    @staticmethod
    def _user_context(reason: TriggerReason, details: dict[str, Any]) -> str:
        if reason is TriggerReason.NEGATIVE_SECTION_RATIO:
            return (
                f"Fresh analysis triggered by negative feedback on the "
                f"'{details['sectionId']}' section ({details['negativeCount']} of "
                f"{details['totalCount']} votes negative)"
            )
        return (
            f"Fresh analysis triggered by low star ratings (average "
            f"{details['averageRating']} over {details['ratingCount']} ratings)"
        )
