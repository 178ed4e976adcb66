"""Request logging and metrics middleware.

Provides a canonical log line per driver request plus duration metrics.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from rbd_volume_plugin.config import get_plugin_config
from rbd_volume_plugin.logging_schema import LogEvent
from rbd_volume_plugin.metrics import DRIVER_OPERATIONS, PLUGIN_DRIVER_DURATION

logger = logging.getLogger(__name__)

DRIVER_PREFIX = "/VolumeDriver."


def driver_operation(path: str) -> str | None:
    """Map /VolumeDriver.Mount -> "mount"; None for other or unknown paths."""
    if not path.startswith(DRIVER_PREFIX):
        return None
    operation = path[len(DRIVER_PREFIX) :].lower()
    # Whitelist keeps metric label cardinality bounded
    return operation if operation in DRIVER_OPERATIONS else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs and times VolumeDriver requests.

    Capabilities, Activate, health and metrics requests pass through
    untouched.

    Usage:
        app.add_middleware(RequestLoggingMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        operation = driver_operation(request.url.path)
        if operation is None:
            return await call_next(request)

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "Request failed",
                extra={
                    "event": LogEvent.REQUEST_FAILED,
                    "operation": operation,
                    "duration_ms": (time.monotonic() - start) * 1000,
                },
            )
            raise

        duration_seconds = time.monotonic() - start
        duration_ms = duration_seconds * 1000
        PLUGIN_DRIVER_DURATION.labels(operation=operation).observe(duration_seconds)

        # get/list/path are polled constantly by Docker
        level = logging.DEBUG if operation in ("get", "list", "path") else logging.INFO
        logger.log(
            level,
            "Request completed",
            extra={
                "event": LogEvent.REQUEST_COMPLETE,
                "operation": operation,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        threshold_ms = get_plugin_config().logging.slow_threshold_ms
        if duration_ms > threshold_ms:
            logger.warning(
                "Slow request detected",
                extra={
                    "event": LogEvent.REQUEST_SLOW,
                    "operation": operation,
                    "duration_ms": duration_ms,
                    "threshold_ms": threshold_ms,
                },
            )

        return response
