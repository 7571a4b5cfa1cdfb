"""Logging setup for the prover and its CLI.

Every handler writes to stderr (or a rotating file). Stdout is reserved for
the verifier output echoed line by line and for the CLI's JSON results, so
log records never interleave with either.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

LOGGER_NAME = "pil_stark_prover"

_TEXT_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LoggingOptions:
    level: str = "INFO"
    format: str = "text"  # text | json
    file: Optional[str] = None


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _normalize_level(level: str) -> int:
    name = level.strip().upper()
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Invalid log level: {level}")
    return value


def _normalize_format(fmt: str) -> str:
    lowered = fmt.strip().lower()
    if lowered in {"text", "json"}:
        return lowered
    raise ValueError(f"Invalid log format: {fmt}")


def load_logging_options_from_env() -> LoggingOptions:
    """Load logging options from environment.

    Env vars:
        - PIL_STARK_PROVER_LOG_LEVEL
        - PIL_STARK_PROVER_LOG_FORMAT
        - PIL_STARK_PROVER_LOG_FILE
    """
    return LoggingOptions(
        level=os.getenv("PIL_STARK_PROVER_LOG_LEVEL", "INFO"),
        format=os.getenv("PIL_STARK_PROVER_LOG_FORMAT", "text"),
        file=os.getenv("PIL_STARK_PROVER_LOG_FILE"),
    )


def configure_logging(options: LoggingOptions) -> None:
    """Configure logging for the prover.

    Preconditions:
        - options.level is a valid logging level name
        - options.format in {"text", "json"}

    Postconditions:
        - Logger hierarchy under "pil_stark_prover" is configured
        - Logs emit to stderr (and optional rotating file), keeping stdout
          free for the echoed verifier output
    """
    fmt = _normalize_format(options.format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_normalize_level(options.level))

    logger.handlers.clear()
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    logger.addHandler(handler)

    if options.file:
        file_handler = RotatingFileHandler(
            options.file,
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        if fmt == "json":
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(_FILE_TEXT_FORMAT))
        logger.addHandler(file_handler)
