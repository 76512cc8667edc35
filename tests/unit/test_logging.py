"""Unit tests for logging configuration and request-scoped context."""

from __future__ import annotations

import logging

import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from propertylens.api.middleware import RequestLoggingMiddleware
from propertylens.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    def test_noisy_client_loggers_pinned_to_warning(self) -> None:
        configure_logging(log_level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG

    def test_custom_quiet_loggers(self) -> None:
        logging.getLogger("propertylens.test.chatty").setLevel(logging.NOTSET)

        configure_logging(quiet_loggers=("propertylens.test.chatty",))

        assert logging.getLogger("propertylens.test.chatty").level == logging.WARNING

    def test_get_logger_returns_usable_logger(self) -> None:
        logger = get_logger("propertylens.test")
        logger.info("logger_smoke_test", value=1)


class TestRequestContext:
    def test_bind_and_clear(self) -> None:
        clear_request_context()
        bind_request_context(request_id="r1", session_id="abc")
        assert structlog.contextvars.get_contextvars() == {
            "request_id": "r1",
            "session_id": "abc",
        }

        clear_request_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_middleware_echoes_request_id(self) -> None:
        app = FastAPI()
        app.add_middleware(RequestLoggingMiddleware)
        seen: dict[str, object] = {}

        @app.get("/ping")
        async def ping() -> dict[str, str]:
            seen.update(structlog.contextvars.get_contextvars())
            return {"ok": "yes"}

        client = TestClient(app)
        generated = client.get("/ping")
        forwarded = client.get("/ping", headers={"X-Request-ID": "abc123"})

        assert len(generated.headers["X-Request-ID"]) == 12
        assert forwarded.headers["X-Request-ID"] == "abc123"
        assert seen["request_id"] == "abc123"
