from __future__ import annotations

import logging
from typing import Any, Optional

# Request attributes an event may carry, in the order they are rendered.
EVENT_FIELDS = (
    "method",
    "uri",
    "resource",
    "status",
    "error_code",
    "duration_ms",
    "attempt",
    "wait_seconds",
)

AUTH_AUTHORIZE = "auth.authorize"
AUTH_CACHED = "auth.cached"
REQUEST_AUDIT = "request.audit"
REQUEST_COMPLETE = "request.complete"
REQUEST_FAILED = "request.failed"
REQUEST_RETRY = "request.retry"


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    message: Optional[str] = None,
    **fields: Any,
) -> None:
    """
    Log one client event with its request attributes on the record.
    - ``message`` defaults to the event name
    - Only names in EVENT_FIELDS are accepted; None values are left off
    """
    unknown = sorted(set(fields) - set(EVENT_FIELDS))
    if unknown:
        raise TypeError(f"Unknown fields for {event!r}: {', '.join(unknown)}")
    extra = {key: val for key, val in fields.items() if val is not None}
    extra["event"] = event
    logger.log(level, message or event, extra=extra)


__all__ = [
    "AUTH_AUTHORIZE",
    "AUTH_CACHED",
    "EVENT_FIELDS",
    "REQUEST_AUDIT",
    "REQUEST_COMPLETE",
    "REQUEST_FAILED",
    "REQUEST_RETRY",
    "log_event",
]
