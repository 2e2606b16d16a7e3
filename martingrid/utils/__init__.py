"""Utility modules"""

from martingrid.utils.logger import LoggerMixin, get_logger, log_context, setup_logging
from martingrid.utils.time_provider import (
    LiveTimeProvider,
    ManualTimeProvider,
    TimeProvider,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_context",
    "LoggerMixin",
    "TimeProvider",
    "LiveTimeProvider",
    "ManualTimeProvider",
]
