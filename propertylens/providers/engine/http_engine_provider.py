"""Analysis Engine adapter over plain JSON-over-HTTP.

The engine (historically the "listener" process on port 3004) exposes:

    GET  {base_url}/session/{session_id}          → session snapshot JSON
    POST {base_url}/start-analysis/{session_id}   → start / restart a run

Every call carries the shared client's bounded timeout; timeouts, network
errors, non-2xx statuses and non-object bodies are all reported as
``UpstreamUnavailableError`` so callers have one failure type to handle.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from propertylens.interfaces.analysis_engine import IAnalysisEngine
from propertylens.utils.errors import AnalysisEngineError, UpstreamUnavailableError
from propertylens.utils.logging import get_logger

logger: structlog.BoundLogger = get_logger(__name__)

_DEFAULT_TIMEOUT = 10.0


def _path_segment(session_id: str) -> str:
    """Percent-encode *session_id* as a single URL path segment."""
    return quote(session_id, safe="")


class HTTPAnalysisEngine(IAnalysisEngine):
    """Talks to the Analysis Engine with a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    base_url:
        Engine root, e.g. ``http://localhost:3004``.
    http_client:
        Shared async client owned by the application lifespan.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_client
        self._timeout = timeout

    # ------------------------------------------------------------------
    # IAnalysisEngine implementation
    # ------------------------------------------------------------------

    async def fetch_session(self, session_id: str) -> dict[str, Any]:
        url = f"{self._base_url}/session/{_path_segment(session_id)}"
        response = await self._send("GET", url, session_id=session_id)
        return self._json_object(response, session_id=session_id)

    async def start_analysis(
        self,
        session_id: str,
        user_context: str | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/start-analysis/{_path_segment(session_id)}"
        body: dict[str, Any] = {}
        if user_context:
            body["userContext"] = user_context
        response = await self._send("POST", url, session_id=session_id, json=body)
        logger.info("engine_analysis_started", session_id=session_id)
        return self._json_object(response, session_id=session_id)

    def get_provider_name(self) -> str:
        return "analysis_engine"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        *,
        session_id: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                headers={"Cache-Control": "no-store"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(
                message=f"{method} {url} timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(
                message=f"{method} {url} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.is_error:
            logger.warning(
                "engine_error_status",
                method=method,
                session_id=session_id,
                status=response.status_code,
            )
            raise AnalysisEngineError(
                message=f"{method} {url} returned HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )
        return response

    def _json_object(self, response: httpx.Response, *, session_id: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError(
                message=f"Engine returned a non-JSON body for session {session_id}",
                provider_name=self.get_provider_name(),
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(
                message=f"Engine returned {type(data).__name__} instead of an object",
                provider_name=self.get_provider_name(),
            )
        return data
