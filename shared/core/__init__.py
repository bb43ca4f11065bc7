"""Logging and health endpoints shared by the order services."""

from .health import HealthStatus, ServiceHealth
from .logging_config import (
    LoggerAdapter,
    RequestLoggingMiddleware,
    current_context,
    generate_request_id,
    get_logger,
    set_request_context,
    setup_logging,
)

__all__ = [
    "HealthStatus",
    "ServiceHealth",
    "LoggerAdapter",
    "RequestLoggingMiddleware",
    "current_context",
    "generate_request_id",
    "get_logger",
    "set_request_context",
    "setup_logging",
]
