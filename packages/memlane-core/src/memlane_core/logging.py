from __future__ import annotations

import json
import logging
import os
import sys
from typing import IO

# Extra attributes lifecycle code passes via ``extra=`` and which the JSON
# formatter lifts into the output record.
_CONTEXT_FIELDS = ("namespace", "memory_id", "action", "actor_id")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    level: str | None = None,
    json_output: bool = False,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Configure and return the root memlane logger.

    ``level`` falls back to ``$MEMLANE_LOG_LEVEL`` and then INFO.
    """
    logger = logging.getLogger("memlane")

    if logger.handlers:
        return logger

    level = level or os.environ.get("MEMLANE_LOG_LEVEL", "INFO")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))

    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the memlane namespace."""
    return logging.getLogger(f"memlane.{name}")
