from __future__ import annotations
import logging
import sys
import json
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from datetime import datetime, timezone
from pathlib import Path

CONTEXT_PREFIX = "ctx_"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = (
    "uvicorn",
    "fastapi",
    "httpx",
    "aiohttp.access",
    "openai",
    "asyncpg",
    "trafilatura",
    "sentence_transformers",
)


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """The ``ctx_*`` fields of a record, without the prefix."""
    return {
        key[len(CONTEXT_PREFIX):]: value
        for key, value in vars(record).items()
        if key.startswith(CONTEXT_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; bound context is kept both flat and under ``context``."""

    def __init__(self, service_name: str = "sitegenie"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = record_context(record)
        if context:
            entry["context"] = context

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Single-line console output: time, level, logger, message, then ``key=value`` context."""

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
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        line = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        context = record_context(record)
        if context:
            line += "  " + " ".join(f"{k}={v}" for k, v in context.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    service_name: str = "sitegenie",
    log_file: Optional[str] = None,
    use_json: bool = False,
    use_colors: bool = True
) -> logging.Logger:
    """Install console (and optional JSON file) handlers on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Value of the ``service`` field in JSON output
        log_file: Optional path; the file always receives JSON lines
        use_json: Emit JSON on the console instead of colored text
        use_colors: Colorize the level on the console

    Returns:
        The configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter(service_name) if use_json else ColoredFormatter(use_colors))
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter(service_name))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return root_logger


class StructuredLogger:
    """Logger that attaches bound context (chatbot id, url, ...) to every record."""

    def __init__(self, name: str, **default_context):
        self.logger = logging.getLogger(name)
        self.default_context = default_context

    def bind(self, **context) -> 'StructuredLogger':
        """Return a logger carrying extra default context."""
        return StructuredLogger(self.logger.name, **{**self.default_context, **context})

    def _extra(self, context: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**self.default_context, **context}
        return {f"{CONTEXT_PREFIX}{k}": v for k, v in merged.items()}

    def log(self, level: int, message: str, exc_info: bool = False, **context) -> None:
        self.logger.log(level, message, exc_info=exc_info, extra=self._extra(context))

    def debug(self, message: str, **context) -> None:
        self.log(logging.DEBUG, message, **context)

    def info(self, message: str, **context) -> None:
        self.log(logging.INFO, message, **context)

    def warning(self, message: str, **context) -> None:
        self.log(logging.WARNING, message, **context)

    def error(self, message: str, **context) -> None:
        self.log(logging.ERROR, message, **context)

    def exception(self, message: str, **context) -> None:
        self.log(logging.ERROR, message, exc_info=True, **context)


def get_structured_logger(name: str, **default_context) -> StructuredLogger:
    return StructuredLogger(name, **default_context)


@contextmanager
def log_duration(log: StructuredLogger, operation: str, slow_after: float = 30.0) -> Iterator[None]:
    """Log how long ``operation`` took; a warning when it exceeds ``slow_after`` seconds."""
    start = time.perf_counter()
    try:
        yield
    except Exception:
        log.debug(f"{operation} failed", operation=operation,
                  duration_s=round(time.perf_counter() - start, 3))
        raise
    duration = round(time.perf_counter() - start, 3)
    if duration > slow_after:
        log.warning(f"{operation} was slow", operation=operation, duration_s=duration)
    else:
        log.debug(f"{operation} finished", operation=operation, duration_s=duration)
