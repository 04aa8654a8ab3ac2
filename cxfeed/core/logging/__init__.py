"""Logging utilities for monitoring and debugging."""

from cxfeed.core.logging.config import LogConfig
from cxfeed.core.logging.logger import (
    StructuredLogger,
    configure_logging,
    current_trace_id,
    log_context,
    logger,
)

__all__ = [
    "LogConfig",
    "StructuredLogger",
    "configure_logging",
    "current_trace_id",
    "log_context",
    "logger",
]
