"""
Centralized Logging

Architectural Intent:
- One stderr handler on the "nixmorph" logger; every module logs through
  logging.getLogger(__name__) beneath it
- Human-readable by default, JSON lines for log shippers
- Level comes from CLI flags (--verbose, --debug) or the config's log_level
"""

import json
import logging
import re
import sys
from datetime import datetime, UTC
from typing import Union

ROOT_LOGGER = "nixmorph"

# Per-host log lines start with "[<host>] "
_HOST_PREFIX = re.compile(r"^\[(?P<host>[^\]]+)\] ")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter; lifts the host prefix into its own field."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        match = _HOST_PREFIX.match(message)
        if match:
            log_entry["host"] = match.group("host")
            log_entry["message"] = message[match.end():]
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def level_for(
    verbose: bool = False,
    debug: bool = False,
    default: Union[int, str] = logging.WARNING,
) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if isinstance(default, str):
        return logging.getLevelNamesMapping().get(default.upper(), logging.WARNING)
    return default


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure logging for nixmorph.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.)
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        )

    root.addHandler(handler)
