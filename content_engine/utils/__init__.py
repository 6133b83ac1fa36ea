"""Utility modules for the content engine."""

from content_engine.utils.logging import (
    get_logger,
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    AppLogger,
    job_logger,
    worker_logger,
    webhook_logger,
    transfer_logger,
    api_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "job_logger",
    "worker_logger",
    "webhook_logger",
    "transfer_logger",
    "api_logger",
]
