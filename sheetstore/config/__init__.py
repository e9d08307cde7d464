"""
Configuration modules for the sheetstore backend.
"""

from .settings import Settings, get_settings
from .logging_config import setup_logging, get_logger, LoggerMixin, PerformanceLogger
from .cors_config import get_cors_config

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
    "PerformanceLogger",
    "get_cors_config"
]
