"""JSON line logging for the cold storage service."""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord('', 0, '', 0, '', (), None)).keys()
) | {'message', 'taskName'}

_LOGGER_PREFIX = 'coldstore'

_configured = False
_lock = threading.Lock()


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload['exc_type'] = type(exc).__name__
            payload['exc_message'] = str(exc)
            if hasattr(exc, 'code'):
                payload['exc_code'] = exc.code
            payload['traceback'] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(*, level: str | int = logging.INFO, handler: logging.Handler | None = None) -> None:
    """Attach the JSON handler to the ``coldstore`` logger tree (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler or logging.StreamHandler(sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True
