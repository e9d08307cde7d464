"""
Structured logging for sheetstore.

structlog renders every event; stdlib records from uvicorn, fastapi and
openpyxl go through the same renderer via ProcessorFormatter, so one stream
carries both.
"""

import logging
import logging.handlers
import re
import sys
import time
from pathlib import Path
from typing import List, Optional

import structlog

from .settings import Settings, get_settings

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(B|KB|MB|GB)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}
DEFAULT_MAX_LOG_SIZE = 10 * 1024 * 1024

# Levels for third-party loggers, keyed by (logger, debug mode)
_QUIET_LOGGERS = {
    "uvicorn.access": (logging.INFO, logging.WARNING),
    "uvicorn.error": (logging.INFO, logging.INFO),
    "fastapi": (logging.INFO, logging.INFO),
    "multipart": (logging.WARNING, logging.WARNING),
    # openpyxl warns about every workbook extension it does not support
    "openpyxl": (logging.ERROR, logging.ERROR),
}

_loggers = {}


def _shared_processors() -> List:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer(settings: Settings):
    if settings.DEBUG:
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def _build_handlers(settings: Settings) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if settings.LOG_FILE:
        path = Path(settings.LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        if settings.LOG_ROTATION:
            handlers.append(logging.handlers.RotatingFileHandler(
                path,
                maxBytes=_parse_size(settings.LOG_MAX_SIZE),
                backupCount=settings.LOG_BACKUP_COUNT,
                encoding="utf-8",
            ))
        else:
            handlers.append(logging.FileHandler(path, encoding="utf-8"))

    return handlers


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Route structlog and stdlib logging through one set of handlers."""
    settings = settings or get_settings()
    level = getattr(logging, settings.LOG_LEVEL)
    shared = _shared_processors()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    for handler in _build_handlers(settings):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name, (debug_level, normal_level) in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(debug_level if settings.DEBUG else normal_level)
    logging.getLogger("sheetstore").setLevel(level)

    get_logger(__name__).info(
        "Logging configured",
        level=settings.LOG_LEVEL,
        debug_mode=settings.DEBUG,
        log_file=settings.LOG_FILE,
    )


def _parse_size(size_str: str) -> int:
    """'10MB' -> bytes. Unparseable sizes fall back to 10MB."""
    match = _SIZE_PATTERN.match(size_str or "")
    if not match:
        return DEFAULT_MAX_LOG_SIZE
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "B").upper()])


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    if name not in _loggers:
        _loggers[name] = structlog.get_logger(name)
    return _loggers[name]


class LoggerMixin:
    """Gives a class a `logger` named after its module and class."""

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(f"{type(self).__module__}.{type(self).__name__}")


class PerformanceLogger:
    """
    Times a block and logs its outcome with the given context:
    `Completed <operation>` at info, or `Failed <operation>` at error.
    The exception is never suppressed.
    """

    def __init__(self, operation_name: str, logger: Optional[structlog.stdlib.BoundLogger] = None, **context):
        self.operation_name = operation_name
        self.logger = (logger or get_logger(__name__)).bind(**context)
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration_ms = round((time.perf_counter() - self.start_time) * 1000, 3)
        if exc_type is None:
            self.logger.info(f"Completed {self.operation_name}", duration_ms=self.duration_ms)
        else:
            self.logger.error(f"Failed {self.operation_name}",
                              duration_ms=self.duration_ms, error=str(exc_val))
        return False


def configure_test_logging() -> None:
    """Plain console rendering at DEBUG for test runs."""
    logging.basicConfig(level=logging.DEBUG, stream=sys.stdout, format="%(message)s")
    for name in ("openpyxl", "multipart", "httpx"):
        logging.getLogger(name).setLevel(logging.ERROR)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
