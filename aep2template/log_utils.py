"""
Logging helpers: correlation ids, structured events and timing.

Library modules only ever call logging.getLogger(__name__); handlers are
installed by the CLIs through configure_logging().
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

# Attributes every LogRecord has; anything else came in through `extra=`
_STANDARD_ATTRS = set(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class CorrelationAdapter(logging.LoggerAdapter):
    """Stamps correlation_id on every record logged for one conversion."""

    def process(self, msg, kwargs):
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, correlation_id: Optional[str] = None) -> CorrelationAdapter:
    return CorrelationAdapter(logging.getLogger(name), {"correlation_id": correlation_id})


def log_event(logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a structured event; the fields travel as record attributes."""
    summary = " ".join(f"{k}={v}" for k, v in fields.items())
    logger.log(level, f"{event} {summary}".strip(), extra={"event": event, **fields})


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including any `extra=` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    if json_logs:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler], force=True)
    else:
        logging.basicConfig(level=level)


@contextmanager
def time_operation(logger, name: str) -> Iterator[Dict[str, float]]:
    """Log how long the wrapped block took; the yielded dict receives `duration_ms`."""
    timing: Dict[str, float] = {}
    started = time.perf_counter()
    try:
        yield timing
    finally:
        timing["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 3)
        logger.debug(f"{name} took {timing['duration_ms']}ms")
