"""PropertyLens coordinator FastAPI application entry point.

Wires together providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and
configures structured logging.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from propertylens.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
    install_exception_handlers,
)
from propertylens.api.routes import router as api_router
from propertylens.config.loader import load_config
from propertylens.config.settings import Settings
from propertylens.providers.archive.sqlite_session_archive import SQLiteSessionArchive
from propertylens.providers.cache.memory_cache import MemoryCacheProvider
from propertylens.providers.engine.http_engine_provider import HTTPAnalysisEngine
from propertylens.providers.feedback.sqlite_feedback_provider import SQLiteFeedbackProvider
from propertylens.services.feedback_aggregator import FeedbackAggregator
from propertylens.services.session_cache import SessionCache
from propertylens.services.trigger_evaluator import TriggerEvaluator, TriggerPolicy
from propertylens.utils.concurrency import RequestDeduplicator
from propertylens.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    engine_cfg = app_config.get("engine", {})
    cache_cfg = app_config.get("cache", {})
    storage_cfg = app_config.get("storage", {})
    trigger_cfg = app_config.get("trigger", {})

    # -- Shared resources --
    timeout = float(engine_cfg.get("timeout_seconds", 10.0))
    http_client = httpx.AsyncClient(timeout=timeout)

    # -- Providers --
    engine = HTTPAnalysisEngine(
        base_url=engine_cfg.get("base_url", "http://localhost:3004"),
        http_client=http_client,
        timeout=timeout,
    )
    cache_store = MemoryCacheProvider(
        max_size=int(cache_cfg.get("max_entries", 10_000)),
        max_age=float(cache_cfg.get("max_age_seconds", 300.0)),
    )
    feedback_provider = SQLiteFeedbackProvider(
        db_path=storage_cfg.get("feedback_db_path", "data/feedback.db")
    )
    session_archive = SQLiteSessionArchive(
        db_path=storage_cfg.get("session_archive_db_path", "data/session_archive.db"),
        max_age_hours=int(storage_cfg.get("archive_max_age_hours", 24 * 30)),
    )

    # -- Services --
    deduplicator = RequestDeduplicator(name="session_cache")
    session_cache = SessionCache(
        store=cache_store,
        engine=engine,
        archive=session_archive,
        deduplicator=deduplicator,
        ttl_overrides=cache_cfg.get("ttl_seconds"),
        sweep_interval=float(cache_cfg.get("sweep_interval_seconds", 30.0)),
    )
    aggregator = FeedbackAggregator(
        store=feedback_provider,
        window_hours=float(trigger_cfg.get("window_hours", 336)),
        cooldown_max_hours=float(trigger_cfg.get("cooldown_max_hours", 24)),
        max_tracked_sessions=int(trigger_cfg.get("max_tracked_sessions", 10_000)),
    )
    policy = TriggerPolicy(
        negative_ratio=float(trigger_cfg.get("negative_ratio", 0.6)),
        min_section_samples=int(trigger_cfg.get("min_section_samples", 3)),
        rating_floor=float(trigger_cfg.get("rating_floor", 2.5)),
        min_rating_samples=int(trigger_cfg.get("min_rating_samples", 2)),
        require_distinct_users=bool(trigger_cfg.get("require_distinct_users", False)),
    )
    trigger_evaluator = TriggerEvaluator(
        aggregator=aggregator,
        session_cache=session_cache,
        engine=engine,
        store=feedback_provider,
        policy=policy,
    )
    session_cache.register_listener(trigger_evaluator.on_snapshot)

    return {
        "http_client": http_client,
        "analysis_engine": engine,
        "cache_store": cache_store,
        "feedback_provider": feedback_provider,
        "session_archive": session_archive,
        "session_cache": session_cache,
        "feedback_aggregator": aggregator,
        "trigger_evaluator": trigger_evaluator,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise providers and start the cache sweeper; clean up on shutdown."""
    components = _build_all(config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["feedback_provider"].initialize()
    await components["session_archive"].initialize()
    session_cache: SessionCache = components["session_cache"]
    session_cache.start_sweeper()

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        engine=components["analysis_engine"].get_provider_name(),
    )

    yield

    await session_cache.stop_sweeper()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="PropertyLens Coordinator API",
        version=_VERSION,
        description=(
            "Serves analysis-session snapshots with status-dependent caching, "
            "captures section and star-rating feedback, and requests a fresh "
            "analysis run once negative feedback crosses the configured thresholds."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("cors", {}).get("allow_origins"))
    install_exception_handlers(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    uvicorn.run(
        "propertylens.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
