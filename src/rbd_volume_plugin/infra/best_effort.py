"""Best-effort execution of cleanup and pre-check steps."""

import logging
from collections.abc import Awaitable
from typing import TypeVar

from rbd_volume_plugin.logging_schema import LogEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(
    operation: Awaitable[T],
    expected: tuple[type[Exception], ...],
    description: str,
    log_level: int = logging.WARNING,
) -> T | None:
    """Await operation, discarding only the expected error kinds.

    Args:
        operation: Awaitable to run.
        expected: Exception types that are logged and discarded.
        description: What was attempted, for the log line.
        log_level: Level for discarded errors (DEBUG for routine misses).

    Returns:
        The operation result, or None if an expected error was discarded.

    Raises:
        Exception: Anything not listed in expected.
    """
    try:
        return await operation
    except expected as e:
        logger.log(
            log_level,
            "%s failed (ignored): %s",
            description,
            e,
            extra={"event": LogEvent.BEST_EFFORT_FAILED, "error_type": type(e).__name__},
        )
        return None
