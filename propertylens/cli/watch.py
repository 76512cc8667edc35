# =============================================================================
# propertylens/cli/watch.py - Watch a session from the command line
# =============================================================================
#
# Runs the same SessionPoller the web client uses against a running
# coordinator and prints every state transition until the session is
# finished (report ready or error) or polling gives up.
#
# Typical usage:
#   python -m propertylens.cli.watch abc123
#   python -m propertylens.cli.watch abc123 --base-url http://coordinator:8000
#   python -m propertylens.cli.watch abc123 --json      # one JSON line per state
#
# Exit codes: 0 report ready, 1 session errored or polling gave up,
# 130 interrupted.
# =============================================================================

"""Watch an analysis session's progress from the command line.

Usage::

    python -m propertylens.cli.watch SESSION_ID [--base-url URL] [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import httpx

_DEFAULT_BASE_URL = "http://localhost:8000"


def _suppress_logs() -> None:
    """Route structlog and stdlib logging to stderr at WARNING+.

    Called before the poller is imported so its cached logger picks up
    this configuration and stdout carries only state lines.
    """
    import logging

    import structlog

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _format_text(state) -> str:  # noqa: ANN001
    steps = ""
    if state.total_steps:
        steps = f"  {state.completed_steps or 0}/{state.total_steps} ({state.progress:.0%})"
    line = f"[{state.view_mode.value:9}] {state.status or '-':11}{steps}"
    if state.error:
        line += f"  error: {state.error} (x{state.consecutive_errors})"
    if state.report_ready:
        line += "  report ready"
    return line


def _format_json(state) -> str:  # noqa: ANN001
    return json.dumps(
        {
            "sessionId": state.session_id,
            "viewMode": state.view_mode.value,
            "status": state.status,
            "completedSteps": state.completed_steps,
            "totalSteps": state.total_steps,
            "reportReady": state.report_ready,
            "finished": state.finished,
            "error": state.error,
        }
    )


def _poller_options(poller_cfg: dict[str, Any]) -> dict[str, Any]:
    """Translate the ``poller`` config section into SessionPoller kwargs."""
    options: dict[str, Any] = {}
    if "schedule" in poller_cfg:
        options["schedule"] = tuple(
            (float(bound), int(interval)) for bound, interval in poller_cfg["schedule"]
        )
    if "pending_interval_ms" in poller_cfg:
        options["pending_interval_ms"] = int(poller_cfg["pending_interval_ms"])
    if "max_consecutive_errors" in poller_cfg:
        options["max_consecutive_errors"] = int(poller_cfg["max_consecutive_errors"])
    return options


async def _run(
    session_id: str,
    base_url: str,
    json_output: bool,
    poller_cfg: dict[str, Any] | None = None,
) -> int:
    from propertylens.client.poller import SessionPoller

    async with httpx.AsyncClient(timeout=10.0) as client:
        poller = SessionPoller(
            session_id,
            http_client=client,
            base_url=base_url,
            **_poller_options(poller_cfg or {}),
        )
        last_line = None
        async with poller.channel.subscribe() as updates:
            task = poller.start()
            async for state in updates:
                line = _format_json(state) if json_output else _format_text(state)
                if line != last_line:
                    print(line, flush=True)
                    last_line = line
            final = await task

    if final.report_ready:
        return 0
    if not json_output:
        print(f"Session {session_id} did not produce a report.", file=sys.stderr)
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m propertylens.cli.watch",
        description="Poll an analysis session and print each state transition.",
    )
    parser.add_argument("session_id", type=str, help="Session identifier to watch.")
    parser.add_argument(
        "--base-url",
        type=str,
        default=_DEFAULT_BASE_URL,
        help=f"Coordinator API root (default: {_DEFAULT_BASE_URL}).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print one JSON object per state instead of text.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/config.yaml",
        help="YAML config whose `poller` section sets the polling schedule.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    args = _build_parser().parse_args(argv)
    _suppress_logs()

    from propertylens.config.loader import load_config

    poller_cfg = load_config(args.config).get("poller", {})
    try:
        return asyncio.run(
            _run(args.session_id, args.base_url, args.json_output, poller_cfg)
        )
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
