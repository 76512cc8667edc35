"""FastAPI routes for session reads, feedback capture and trigger statistics.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP (Junior Developer Guide) ───────────────────────────
#
# Endpoint                              Method  Description
# ─────────────────────────────────────────────────────────────────────
# /session/{sid}?basic=&debug=          GET     Cached/fresh session snapshot
# /session/{sid}/start-analysis         POST    (Re)start a run on the engine
# /feedback/simple                      POST    Section thumbs up/down
# /feedback/simple?sessionId=&sectionId= GET    Filtered list or global stats
# /feedback/stars                       POST    Overall 1–5 star rating
# /feedback/stars?sessionId=|action=stats GET   Session ratings / trigger stats
# /feedback/aggregate/{sid}             GET     Live aggregate + cooldown state
# /health                               GET     Health check
#
# Feedback POSTs always report success once the event is stored; the
# trigger outcome rides along in ``data.triggerActivated``.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from propertylens.api.schemas import (
    ErrorResponse,
    FeedbackQueryResponse,
    HealthResponse,
    SectionFeedbackData,
    SectionFeedbackRequest,
    SectionFeedbackResponse,
    StartAnalysisRequest,
    StarRatingData,
    StarRatingRequest,
    StarRatingResponse,
)
from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.interfaces.feedback_provider import IFeedbackProvider
from propertylens.models.feedback import (
    SectionFeedbackEvent,
    StarRatingEvent,
    TriggerOutcome,
    utc_now,
)
from propertylens.services.feedback_aggregator import FeedbackAggregator
from propertylens.services.session_cache import SessionCache
from propertylens.services.trigger_evaluator import TriggerEvaluator
from propertylens.utils.logging import bind_request_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter()

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency helpers - read services from app.state (set in main.py)
# ---------------------------------------------------------------------------


def _get_session_cache(request: Request) -> SessionCache:
    return request.app.state.session_cache


def _get_aggregator(request: Request) -> FeedbackAggregator:
    return request.app.state.feedback_aggregator


def _get_trigger_evaluator(request: Request) -> TriggerEvaluator:
    return request.app.state.trigger_evaluator


def _get_feedback_provider(request: Request) -> IFeedbackProvider:
    return request.app.state.feedback_provider


def _get_engine(request: Request) -> IAnalysisEngine:
    return request.app.state.analysis_engine


SessionCacheDep = Annotated[SessionCache, Depends(_get_session_cache)]
AggregatorDep = Annotated[FeedbackAggregator, Depends(_get_aggregator)]
TriggerDep = Annotated[TriggerEvaluator, Depends(_get_trigger_evaluator)]
FeedbackDep = Annotated[IFeedbackProvider, Depends(_get_feedback_provider)]
EngineDep = Annotated[IAnalysisEngine, Depends(_get_engine)]


def _error(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error}
    if detail is not None:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content)


async def _evaluate_trigger(evaluator: TriggerEvaluator, session_id: str) -> TriggerOutcome:
    """Run the trigger evaluation without letting it fail the feedback request."""
    try:
        return await evaluator.on_feedback_recorded(session_id)
    except Exception as exc:
        _logger.error("trigger_evaluation_failed", session_id=session_id, error=str(exc))
        return TriggerOutcome(activated=False, skipped_reason="evaluation_error")


def _trigger_details(outcome: TriggerOutcome) -> dict[str, Any] | None:
    if outcome.details is None:
        return None
    return outcome.details.model_dump(by_alias=True, mode="json")


def _section_event_json(event: SectionFeedbackEvent) -> dict[str, Any]:
    return {
        "sessionId": event.session_id,
        "sectionId": event.section_id,
        "feedback": event.polarity.value,
        "timestamp": event.timestamp.isoformat(),
        "userId": event.user_id,
    }


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return utc_now()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/session/{session_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Get a session snapshot (cached, revalidated, or fallback)",
)
async def get_session(
    session_id: str,
    cache: SessionCacheDep,
    basic: bool = False,
    debug: bool = False,
) -> JSONResponse:
    """Return the full snapshot, or the ``basic`` projection.

    ``debug=true`` skips the freshness check and always asks the engine.
    """
    bind_request_context(session_id=session_id)
    lookup = await cache.lookup(session_id, skip_cache=debug, basic_only=basic)
    if lookup is None:
        return _error(404, "Session not found")
    return JSONResponse(
        content=lookup.snapshot,
        headers={"Cache-Control": "no-store", "X-Session-Source": lookup.source.value},
    )


@router.post(
    "/session/{session_id}/start-analysis",
    responses={502: {"model": ErrorResponse}},
    summary="Start or restart the analysis run for a session",
)
async def start_analysis(
    session_id: str,
    engine: EngineDep,
    cache: SessionCacheDep,
    body: StartAnalysisRequest | None = None,
) -> JSONResponse:
    """Forward a start request to the engine and drop the cached snapshot."""
    bind_request_context(session_id=session_id)
    user_context = body.user_context if body is not None else None
    result = await engine.start_analysis(session_id, user_context=user_context)
    await cache.invalidate(session_id)
    _logger.info("analysis_start_forwarded", session_id=session_id)
    return JSONResponse(content=result)


# ---------------------------------------------------------------------------
# Section feedback
# ---------------------------------------------------------------------------


@router.post(
    "/feedback/simple",
    response_model=SectionFeedbackResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Submit thumbs up/down feedback for a report section",
)
async def submit_section_feedback(
    body: SectionFeedbackRequest,
    aggregator: AggregatorDep,
    evaluator: TriggerDep,
) -> SectionFeedbackResponse | JSONResponse:
    bind_request_context(session_id=body.session_id)
    event = SectionFeedbackEvent(
        session_id=body.session_id,
        section_id=body.section_id,
        polarity=body.feedback,
        timestamp=_as_utc(body.timestamp),
        user_id=body.user_id,
    )
    try:
        await aggregator.record(event)
    except Exception as exc:
        _logger.error("section_feedback_failed", session_id=event.session_id, error=str(exc))
        return _error(500, "Failed to submit feedback", str(exc))

    outcome = await _evaluate_trigger(evaluator, event.session_id)
    return SectionFeedbackResponse(
        message=(
            "Feedback added and trigger activated"
            if outcome.activated
            else "Feedback added successfully"
        ),
        data=SectionFeedbackData(
            session_id=event.session_id,
            section_id=event.section_id,
            feedback=event.polarity,
            timestamp=event.timestamp,
            trigger_activated=outcome.activated,
            trigger_details=_trigger_details(outcome),
        ),
    )


@router.get(
    "/feedback/simple",
    response_model=FeedbackQueryResponse,
    summary="List section feedback, or global section statistics",
)
async def get_section_feedback(
    feedback: FeedbackDep,
    session_id: Annotated[str | None, Query(alias="sessionId")] = None,
    section_id: Annotated[str | None, Query(alias="sectionId")] = None,
) -> FeedbackQueryResponse:
    """Filtered list when ``sessionId``/``sectionId`` are given, otherwise totals."""
    if session_id or section_id:
        events = await feedback.list_section_feedback(
            session_id=session_id, section_id=section_id
        )
        data: dict[str, Any] = {}
        if session_id:
            data["sessionId"] = session_id
        if section_id:
            data["sectionId"] = section_id
        data["feedback"] = [_section_event_json(e) for e in events]
        data["total"] = len(events)
        return FeedbackQueryResponse(data=data)

    summary = await feedback.get_section_summary()
    total = summary["total"]
    return FeedbackQueryResponse(
        data={
            "totalFeedback": total,
            "positiveFeedback": summary["positive"],
            "negativeFeedback": summary["negative"],
            "positivePercentage": round(summary["positive"] / total * 100) if total else 0,
            "sectionStats": summary["by_section"],
            "generatedAt": utc_now().isoformat(),
        }
    )


# ---------------------------------------------------------------------------
# Star ratings
# ---------------------------------------------------------------------------


@router.post(
    "/feedback/stars",
    response_model=StarRatingResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Submit an overall star rating for a session",
)
async def submit_star_rating(
    body: StarRatingRequest,
    aggregator: AggregatorDep,
    evaluator: TriggerDep,
) -> StarRatingResponse | JSONResponse:
    bind_request_context(session_id=body.session_id)
    event = StarRatingEvent(
        session_id=body.session_id,
        rating=body.overall_rating,
        timestamp=_as_utc(body.timestamp),
        user_id=body.user_id,
    )
    try:
        await aggregator.record(event)
    except Exception as exc:
        _logger.error("star_rating_failed", session_id=event.session_id, error=str(exc))
        return _error(500, "Failed to submit star rating feedback", str(exc))

    outcome = await _evaluate_trigger(evaluator, event.session_id)
    return StarRatingResponse(
        message=(
            "Star rating feedback added and trigger activated"
            if outcome.activated
            else "Star rating feedback added successfully"
        ),
        data=StarRatingData(
            session_id=event.session_id,
            overall_rating=event.rating,
            timestamp=event.timestamp,
            trigger_activated=outcome.activated,
            trigger_details=_trigger_details(outcome),
        ),
    )


@router.get(
    "/feedback/stars",
    response_model=FeedbackQueryResponse,
    summary="Session star ratings, or trigger statistics with action=stats",
)
async def get_star_ratings(
    feedback: FeedbackDep,
    evaluator: TriggerDep,
    session_id: Annotated[str | None, Query(alias="sessionId")] = None,
    action: str | None = None,
) -> FeedbackQueryResponse:
    if action == "stats":
        return FeedbackQueryResponse(data=await evaluator.get_trigger_stats())

    if session_id:
        ratings = await feedback.list_star_ratings(session_id=session_id)
        values = [r.rating for r in ratings]
        return FeedbackQueryResponse(
            data={
                "sessionId": session_id,
                "ratings": [
                    {
                        "overallRating": r.rating,
                        "timestamp": r.timestamp.isoformat(),
                        "userId": r.user_id,
                    }
                    for r in ratings
                ],
                "total": len(values),
                "averageRating": round(sum(values) / len(values), 2) if values else None,
            }
        )

    return FeedbackQueryResponse(message="Star rating feedback API is active")


@router.get(
    "/feedback/aggregate/{session_id}",
    summary="Current feedback aggregate and cooldown state for a session",
)
async def get_feedback_aggregate(session_id: str, aggregator: AggregatorDep) -> JSONResponse:
    aggregate = await aggregator.aggregate_for(session_id)
    content = aggregate.model_dump(by_alias=True, mode="json")
    content["totalPositive"] = aggregate.total_positive
    content["totalNegative"] = aggregate.total_negative
    return JSONResponse(content=content)


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(
    cache: SessionCacheDep,
    aggregator: AggregatorDep,
) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=_VERSION,
        cache_entries=cache.size(),
        in_flight_fetches=cache.deduplicator.in_flight,
        tracked_feedback_sessions=aggregator.tracked_sessions,
    )
