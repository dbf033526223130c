from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware

from narthex.shared.gate import GateLogger

_log = GateLogger.get("HTTP")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    # Probes that would drown the log at INFO
    QUIET_PATHS = {"/ping", "/health"}

    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        path = request.url.path
        line = f"{request.method} {path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
        if path in self.QUIET_PATHS:
            _log.debug(line)
        elif response.status_code >= 500:
            _log.error(line)
        elif response.status_code >= 400:
            _log.warning(line)
        else:
            _log.info(line)
        return response


__all__ = ["RequestLoggingMiddleware"]
