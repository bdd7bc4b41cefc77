"""Logging setup for SupportBot.

Module code logs through ``logging.getLogger(__name__)``. The crawl loop uses
``StructuredLogger``, whose keyword context travels on the record as
``ctx_<name>`` attributes; both formatters below render that context.
"""

from __future__ import annotations
import logging
import sys
import json
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from pathlib import Path

CONTEXT_PREFIX = "ctx_"

NOISY_LOGGERS = ("uvicorn.access", "httpx", "openai", "aiohttp", "sqlalchemy.engine")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Structured context attached to a record by ``StructuredLogger``."""
    return {
        key[len(CONTEXT_PREFIX):]: value
        for key, value in record.__dict__.items()
        if key.startswith(CONTEXT_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with structured context under ``context``."""

    def __init__(self, service_name: str = "supportbot"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": self.service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = record_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Single-line console format: time | level | logger | message | key=value ..."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        parts = [timestamp, f"{record.levelname:8}", record.name, record.getMessage()]
        context = record_context(record)
        if context:
            parts.append(" ".join(f"{key}={value}" for key, value in context.items()))
        line = " | ".join(parts)

        color = self.COLORS.get(record.levelname) if self.use_colors else None
        if color:
            line = f"{color}{line}{self.RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    service_name: str = "supportbot",
    log_file: Optional[str] = None,
    use_json: bool = False,
    use_colors: bool = True
) -> None:
    """Configure the root logger for the API server or the CLI.

    Args:
        level: Log level name; unknown names fall back to INFO
        service_name: Service name stamped on JSON records
        log_file: Optional path; the file always receives JSON lines
        use_json: JSON on the console instead of the colored format
        use_colors: ANSI colors for the console format
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        JSONFormatter(service_name) if use_json else ColoredFormatter(use_colors and sys.stdout.isatty())
    )
    root_logger.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter(service_name))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class StructuredLogger:
    """Logger wrapper that attaches keyword context to every record."""

    def __init__(self, name: str, **default_context):
        self.logger = logging.getLogger(name)
        self.default_context = default_context

    def bind(self, **context) -> 'StructuredLogger':
        """Return a logger that also carries ``context`` on every record."""
        return StructuredLogger(self.logger.name, **{**self.default_context, **context})

    def _extra(self, context: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**self.default_context, **context}
        return {f"{CONTEXT_PREFIX}{key}": value for key, value in merged.items()}

    def debug(self, message: str, **context) -> None:
        self.logger.debug(message, extra=self._extra(context))

    def info(self, message: str, **context) -> None:
        self.logger.info(message, extra=self._extra(context))

    def warning(self, message: str, **context) -> None:
        self.logger.warning(message, extra=self._extra(context))

    def error(self, message: str, **context) -> None:
        self.logger.error(message, extra=self._extra(context))

    def exception(self, message: str, **context) -> None:
        self.logger.exception(message, extra=self._extra(context))


def get_structured_logger(name: str, **default_context) -> StructuredLogger:
    return StructuredLogger(name, **default_context)
