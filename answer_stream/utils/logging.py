"""Logging utilities with optional structured output.

Every module logs through `get_logger(__name__)` and passes structured fields
as `extra={"context": {...}}`. The package never touches handlers on import;
host applications call `configure_logging()` once.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from answer_stream.config import settings

_PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            line["context"] = context

        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, ensure_ascii=True, default=str)


def _formatter(json_lines: bool) -> logging.Formatter:
    return JsonFormatter() if json_lines else logging.Formatter(_PLAIN_FORMAT)


def configure_logging(debug: bool | None = None, json_lines: bool | None = None) -> None:
    """Install a single stream handler on the root logger.

    Parameters
    ----------
    debug:
        Optional explicit override. If `None`, use `settings.debug`.
    json_lines:
        Optional explicit override. If `None`, use `settings.log_json`.

    Calling this again replaces the handler instead of adding a second one.
    """

    use_debug = settings.debug if debug is None else debug
    use_json = settings.log_json if json_lines is None else json_lines
    level = logging.DEBUG if use_debug else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(_formatter(use_json))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Return a module-specific logger."""

    return logging.getLogger(name)
