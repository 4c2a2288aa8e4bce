"""
Access Logging Middleware - one line per request.

Formats:
- text: human-readable line (method, path, status, bytes, latency, ip)
- json: structured record for log aggregation services

Lines go to the ``hxforge.access`` logger; handlers and levels are the
application's logging configuration. Logging is local and synchronous.

Follows the hxforge async middleware signature:
    async def __call__(self, request, ctx, next) -> Response
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from hxforge.middleware import Handler
from hxforge.request import Request, RequestCtx
from hxforge.response import Response


# ─── Log Format Builders ─────────────────────────────────────────────────────

class _LogFormatter:
    """Pluggable formatter for access log lines."""

    def format_request(self, record: Dict[str, Any]) -> str:
        raise NotImplementedError


class TextLogFormatter(_LogFormatter):
    """``"GET /path" from 1.2.3.4 - 200 512B in 1.2ms``"""

    def format_request(self, record: Dict[str, Any]) -> str:
        return (
            f'[{record["request_id"]}] "{record["method"]} {record["path"]}" '
            f'from {record["ip"]} - {record["status"]} {record["bytes"]}B '
            f'in {record["latency"]}'
        )


class JSONLogFormatter(_LogFormatter):
    """JSON-structured log output."""

    def format_request(self, record: Dict[str, Any]) -> str:
        return json.dumps(record, default=str, separators=(",", ":"))


FORMATTERS = {
    "text": TextLogFormatter,
    "json": JSONLogFormatter,
}


def _format_latency(seconds: float) -> str:
    if seconds >= 1:
        return f"{seconds:.3f}s"
    if seconds >= 0.001:
        return f"{seconds * 1000:.3f}ms"
    return f"{seconds * 1_000_000:.1f}µs"


# ─── Logging Middleware ──────────────────────────────────────────────────────

class LoggingMiddleware:
    """
    HTTP access logging middleware.

    Args:
        format: "text" or "json".
        logger_name: Logger name (default "hxforge.access").
        level: Log level for non-5xx responses.
        error_level: Log level for 5xx responses.
    """

    def __init__(
        self,
        format: str = "text",
        logger_name: str = "hxforge.access",
        level: int = logging.INFO,
        error_level: int = logging.ERROR,
    ):
        if format not in FORMATTERS:
            raise ValueError(f"Unknown access log format: {format!r}")
        self.format = format
        self.logger = logging.getLogger(logger_name)
        self._formatter = FORMATTERS[format]()
        self._level = level
        self._error_level = error_level

    async def __call__(self, request: Request, ctx: RequestCtx, next_handler: Handler) -> Response:
        start = time.perf_counter()

        try:
            response = await next_handler(request, ctx)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            # traceback is logged once, by the recovery stage
            self.logger.error(
                "request_id=%s %s %s - EXCEPTION %s (%.1fms)",
                ctx.request_id or "-", request.method, request.path, type(exc).__name__, duration_ms,
            )
            raise

        elapsed = time.perf_counter() - start
        record = {
            "time": datetime.now(timezone.utc).isoformat(),
            "request_id": ctx.request_id or "-",
            "ip": request.client_ip,
            "method": request.method,
            "path": request.path,
            "status": response.status,
            "bytes": response.content_length,
            "latency": _format_latency(elapsed),
            "latency_ms": round(elapsed * 1000, 3),
            "ua": request.header("user-agent") or "",
        }

        level = self._error_level if response.status >= 500 else self._level
        self.logger.log(level, self._formatter.format_request(record))
        return response


__all__ = [
    "LoggingMiddleware",
    "TextLogFormatter",
    "JSONLogFormatter",
    "FORMATTERS",
]
