"""
Error taxonomy surfaced by every write operation.

All errors carry a stable ``code``, a human readable ``message`` and an
optional ``context`` dict (table, constraint, offending values).
"""
from typing import Any, Dict, Optional


class ErrorCodes:
    UNIQUE_CONSTRAINT_VIOLATION = "UNIQUE_CONSTRAINT_VIOLATION"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    RESTRICTED_DELETE_VIOLATION = "RESTRICTED_DELETE_VIOLATION"
    VALIDATION_VIOLATION = "VALIDATION_VIOLATION"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"


class ConsignmentError(Exception):
    """Base class for errors raised by the schema layer"""
    code = "CONSIGNMENT_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": self.context}


class UniqueConstraintViolation(ConsignmentError):
    """A unique field (email, isbn, name, editor prefix, identity) collides"""
    code = ErrorCodes.UNIQUE_CONSTRAINT_VIOLATION


class ForeignKeyViolation(ConsignmentError):
    """A row references a parent that does not exist"""
    code = ErrorCodes.FOREIGN_KEY_VIOLATION


class RestrictedDeleteViolation(ConsignmentError):
    """A delete (or key update) is blocked by dependent rows"""
    code = ErrorCodes.RESTRICTED_DELETE_VIOLATION


class ValidationViolation(ConsignmentError):
    """A value is outside its declared domain (enum, length, range)"""
    code = ErrorCodes.VALIDATION_VIOLATION


class InvalidStatusTransition(ValidationViolation):
    code = ErrorCodes.INVALID_STATUS_TRANSITION


class RecordNotFound(ConsignmentError):
    code = ErrorCodes.RECORD_NOT_FOUND
