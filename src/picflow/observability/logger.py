"""Structured JSON logger for picflow.

Each record is one JSON object per line so that the editor host (or a
developer tailing its console) can filter picflow's diagnostics by field.

Typical output::

    {"ts": "2026-10-19T12:00:00.123456+00:00", "level": "INFO",
     "logger": "picflow.orchestrator", "message": "upload run complete",
     "op": "upload_run", "document": "notes/a.md", "succeeded": 2, "failed": 0}

Usage::

    from picflow.observability import get_logger

    log = get_logger("picflow.download")
    log.info("download complete", extra={"extra_fields": {"url": url}})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys are ``ts``, ``level``, ``logger`` and ``message``.
    Fields passed as ``extra={"extra_fields": {...}}`` are merged into the
    top-level object; exception and stack info are serialised when
    present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(
            record, "extra_fields", None
        )
        if extra_fields is not None:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


# One handler per logger name, so repeated ``get_logger`` calls from
# different modules never stack handlers.
_configured_loggers: set[str] = set()


def get_logger(
    name: str = "picflow",
    *,
    level: int | str = logging.DEBUG,
    stream: Any | None = None,
) -> logging.Logger:
    """Get or create a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Defaults to ``"picflow"``.
    level:
        Minimum level, as an ``int`` or a case-insensitive name.
    stream:
        Output stream for the handler.  Defaults to ``sys.stderr``.

    Returns
    -------
    logging.Logger
        The logger, with a :class:`StructuredFormatter` handler attached
        exactly once.
    """
    logger = logging.getLogger(name)

    if name not in _configured_loggers:
        resolved_level = (
            logging.getLevelName(level.upper())
            if isinstance(level, str)
            else level
        )
        logger.setLevel(resolved_level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

        _configured_loggers.add(name)

    return logger
