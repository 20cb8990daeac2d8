"""
ASGI middleware that logs every trigger request and its outcome.

Uses pure ASGI middleware (not BaseHTTPMiddleware) so the response is passed
through untouched. Only method, path, status and duration are logged; an
ingestion run can take minutes, so the duration is the useful part.
"""

import json
import logging
import time
from typing import Optional

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import truncate_large_data

logger = logging.getLogger(__name__)


def _error_reason(body: bytes) -> Optional[str]:
    """Pull the error message out of a JSON error response."""
    text = body.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return truncate_large_data(text, max_length=500) or None
    if isinstance(payload, dict):
        for key in ("error", "detail", "message"):
            if payload.get(key):
                return truncate_large_data(str(payload[key]), max_length=500)
    return None


class RequestLoggingMiddleware:
    """Logs request start and completion with status code and duration."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Args:
            app: The ASGI application
            exclude_paths: Paths that are passed through without logging (e.g. ["/"])
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        start_time = time.time()
        status_code = 0
        error_chunks = []

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            elif message["type"] == "http.response.body" and status_code >= 400:
                error_chunks.append(message.get("body", b""))
            await send(message)

        logger.info(f"Request started: {method} {path}")

        try:
            await self.app(scope, receive, logging_send)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {method} {path} - {e}",
                exc_info=True,
                extra={"extra_fields": {"method": method, "path": path, "duration_ms": duration_ms}},
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        if status_code < 400:
            level = logging.INFO
        elif status_code < 500:
            level = logging.WARNING
        else:
            level = logging.ERROR

        message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        reason = _error_reason(b"".join(error_chunks)) if error_chunks else None
        if reason:
            message += f" | error_reason={reason}"

        logger.log(
            level,
            message,
            extra={"extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "error_reason": reason,
            }},
        )
