import json
import logging
from typing import Any, List, Optional, TextIO, Tuple

from .observability import EVENT_FIELDS

PACKAGE_LOGGER = "controlplane_client"


def _logfmt_value(val: Any) -> str:
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (int, float)):
        return str(val)
    text = str(val)
    if not text or any(ch in text for ch in ' ="\\\n'):
        return json.dumps(text, ensure_ascii=False)
    return text


class LogfmtFormatter(logging.Formatter):
    """
    Render client log records as logfmt.
    - ``event`` and the request fields set by log_event come first, in order
    - A message other than the event name (an audit record) goes under ``msg``
    """

    def format(self, record: logging.LogRecord) -> str:
        pairs: List[Tuple[str, Any]] = [
            ("level", record.levelname.lower()),
            ("logger", record.name),
        ]
        event = getattr(record, "event", None)
        if event:
            pairs.append(("event", event))
        for key in EVENT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                pairs.append((key, val))

        message = record.getMessage()
        if message and message != event:
            pairs.append(("msg", message))
        if record.exc_info and record.exc_info[0] is not None:
            pairs.append(("exc_type", record.exc_info[0].__name__))

        return " ".join(f"{key}={_logfmt_value(val)}" for key, val in pairs)


def setup_logging(
    level: str = "INFO", stream: Optional[TextIO] = None
) -> logging.Logger:
    """Write ``controlplane_client.*`` logs to ``stream`` (stderr) as logfmt."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    # Calling twice replaces the handler instead of duplicating lines.
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, LogfmtFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(LogfmtFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


__all__ = ["LogfmtFormatter", "PACKAGE_LOGGER", "setup_logging"]
