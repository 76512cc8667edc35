"""Unit tests for HTTPAnalysisEngine using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from propertylens.providers.engine.http_engine_provider import HTTPAnalysisEngine
from propertylens.utils.errors import AnalysisEngineError, UpstreamUnavailableError
from tests.conftest import make_snapshot


def _engine(handler) -> HTTPAnalysisEngine:  # noqa: ANN001
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPAnalysisEngine(base_url="http://engine:3004/", http_client=client, timeout=2.0)


class TestFetchSession:
    @pytest.mark.asyncio
    async def test_returns_snapshot(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=make_snapshot())

        snapshot = await _engine(handler).fetch_session("abc")

        assert snapshot["sessionId"] == "abc"
        assert str(seen[0].url) == "http://engine:3004/session/abc"
        assert seen[0].headers["Cache-Control"] == "no-store"

    @pytest.mark.asyncio
    async def test_error_status_raises_engine_error(self) -> None:
        engine = _engine(lambda request: httpx.Response(404, json={"error": "nope"}))

        with pytest.raises(AnalysisEngineError) as exc_info:
            await engine.fetch_session("abc")

        assert exc_info.value.status_code == 404
        assert exc_info.value.provider_name == "analysis_engine"

    @pytest.mark.asyncio
    async def test_connection_error_raises_upstream_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailableError):
            await _engine(handler).fetch_session("abc")

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(UpstreamUnavailableError, match="timed out"):
            await _engine(handler).fetch_session("abc")

    @pytest.mark.asyncio
    async def test_non_object_body_rejected(self) -> None:
        engine = _engine(lambda request: httpx.Response(200, json=["not", "an", "object"]))

        with pytest.raises(UpstreamUnavailableError):
            await engine.fetch_session("abc")

    @pytest.mark.asyncio
    async def test_non_json_body_rejected(self) -> None:
        engine = _engine(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(UpstreamUnavailableError):
            await engine.fetch_session("abc")

    @pytest.mark.asyncio
    async def test_session_id_encoded_as_one_path_segment(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=make_snapshot())

        await _engine(handler).fetch_session("a?x=1/b#c")

        assert seen[0].url.raw_path == b"/session/a%3Fx%3D1%2Fb%23c"
        assert seen[0].url.query == b""


class TestStartAnalysis:
    @pytest.mark.asyncio
    async def test_posts_user_context(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        result = await _engine(handler).start_analysis("abc", user_context="re-check valuation")

        assert result == {"success": True}
        assert seen[0].method == "POST"
        assert str(seen[0].url) == "http://engine:3004/start-analysis/abc"
        assert json.loads(seen[0].content) == {"userContext": "re-check valuation"}

    @pytest.mark.asyncio
    async def test_rejection_raises_engine_error(self) -> None:
        engine = _engine(lambda request: httpx.Response(500))

        with pytest.raises(AnalysisEngineError):
            await engine.start_analysis("abc")

    @pytest.mark.asyncio
    async def test_session_id_encoded_in_start_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        await _engine(handler).start_analysis("a/b?c")

        assert seen[0].url.raw_path == b"/start-analysis/a%2Fb%3Fc"
