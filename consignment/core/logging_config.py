"""
Structured logging configuration

Every record is emitted as one JSON object carrying the service metadata,
the correlation context of the unit of work being processed (for example the
id of the payment webhook delivery that triggered a status update) and,
for operations wrapped in ``log_operation``, their duration.
"""

import logging
import logging.handlers
import sys
import json
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

# Context variables for operation tracking
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
operation_var: ContextVar[Optional[str]] = ContextVar('operation', default=None)

class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter"""

    def __init__(self, service_name: str = "consignment-schema", environment: str = "development",
                 version: str = "1.0.0"):
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.version = version

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "version": self.version,
        }

        trace_context = self._get_trace_context()
        if trace_context:
            log_obj["trace"] = trace_context

        log_obj["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
            "module": record.module
        }

        if record.exc_info:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info)
            }

        if hasattr(record, 'extra_fields'):
            log_obj["custom"] = record.extra_fields

        if hasattr(record, 'duration_ms'):
            log_obj["performance"] = {
                "duration_ms": record.duration_ms
            }

        return json.dumps(log_obj, default=str)

    def _get_trace_context(self) -> Optional[Dict[str, Any]]:
        context = {}
        correlation_id = correlation_id_var.get()
        if correlation_id:
            context["correlation_id"] = correlation_id
        operation = operation_var.get()
        if operation:
            context["operation"] = operation
        return context or None

class PerformanceFilter(logging.Filter):
    """Filter to add performance metrics to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'duration'):
            record.duration_ms = record.duration * 1000
        return True

class SecurityFilter(logging.Filter):
    """Filter to redact sensitive values from logs"""

    SENSITIVE_FIELDS = [
        'password', 'token', 'secret', 'stripe_account_id'
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        extra_fields = getattr(record, 'extra_fields', None)
        if isinstance(extra_fields, dict):
            record.extra_fields = {
                key: ("***REDACTED***" if key.lower() in self.SENSITIVE_FIELDS else value)
                for key, value in extra_fields.items()
            }
        return True

def setup_logging(
    service_name: str,
    level: str = "INFO",
    environment: str = "development",
    version: str = "1.0.0",
    enable_console: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Setup structured logging for the process

    Args:
        service_name: Name reported in every record
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Deployment environment (development/staging/production)
        version: Service version
        enable_console: Enable stdout output
        log_file: Optional path of a rotating log file
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    formatter = StructuredFormatter(service_name, environment, version)

    handlers = []
    if enable_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(PerformanceFilter())
        handler.addFilter(SecurityFilter())
        root_logger.addHandler(handler)

    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('alembic').setLevel(logging.INFO)

    root_logger.info(
        "Logging initialized",
        extra={
            'extra_fields': {
                'service': service_name,
                'level': level,
                'handlers': {
                    'console': enable_console,
                    'file': bool(log_file)
                }
            }
        }
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the current correlation context into every record"""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})

        correlation_id = correlation_id_var.get()
        if correlation_id:
            extra['correlation_id'] = correlation_id

        operation = operation_var.get()
        if operation:
            extra['operation'] = operation

        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    """
    Get a logger instance with correlation context support

    Args:
        name: Logger name (usually __name__)

    Returns:
        LoggerAdapter with context injection
    """
    return LoggerAdapter(logging.getLogger(name), {})

def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind the correlation id (e.g. a webhook event id) to the current context"""
    if correlation_id:
        correlation_id_var.set(correlation_id)

def generate_correlation_id() -> str:
    return str(uuid.uuid4())

@contextmanager
def log_operation(logger: logging.LoggerAdapter, operation: str,
                  correlation_id: Optional[str] = None, **fields: Any) -> Iterator[None]:
    """
    Log the start, completion and failure of a unit of work.

    The operation name and correlation id are bound to the context for the
    duration of the block so nested log calls carry them too.
    """
    operation_token = operation_var.set(operation)
    correlation_token = correlation_id_var.set(correlation_id or correlation_id_var.get()
                                               or generate_correlation_id())
    start_time = time.time()
    logger.debug(f"Operation started: {operation}", extra={'extra_fields': dict(fields)})
    try:
        yield
    except Exception:
        duration = time.time() - start_time
        logger.error(
            f"Operation failed: {operation}",
            exc_info=True,
            extra={'extra_fields': dict(fields), 'duration_ms': duration * 1000}
        )
        raise
    else:
        duration = time.time() - start_time
        logger.info(
            f"Operation completed: {operation}",
            extra={'extra_fields': dict(fields), 'duration_ms': duration * 1000}
        )
    finally:
        correlation_id_var.reset(correlation_token)
        operation_var.reset(operation_token)
