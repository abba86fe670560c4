"""Logging setup for callers embedding the schema engine.

The engine itself only ever calls ``logging.getLogger(__name__)`` and installs
no handlers on import.  :func:`configure_logging` is the public entry point for
processes embedding the engine: call it once at startup with the loaded
:class:`~schema_engine.config.Settings` to get text or JSON output at the
configured level.  Processes that already configure logging can skip it.

When ``structured_logging`` is enabled every record is emitted as a single
JSON line::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "schema_engine.store.file_store",
        "message": "Saved snapshot 3f2a9c1d",
        "context": { ... },        // present when passed via extra={"context": ...}
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from schema_engine.config import Settings

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context is not None:
            payload["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> logging.Handler:
    """Install a single root handler according to *settings*.

    Existing root handlers are replaced so repeated calls do not duplicate
    output.  Returns the installed handler.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)
    return handler
