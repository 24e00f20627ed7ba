"""Cross-cutting utilities: structured logging and correlation context."""

from .logging_config import (
    setup_logging,
    get_logger,
    log_operation,
    set_correlation_id,
    generate_correlation_id,
    LoggerAdapter,
    StructuredFormatter,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_operation",
    "set_correlation_id",
    "generate_correlation_id",
    "LoggerAdapter",
    "StructuredFormatter",
]
