"""
Translation of storage-engine constraint failures into the error taxonomy.

Postgres reports the violated constraint through SQLSTATE codes; SQLite only
through the message text, and reports both "missing parent" and "parent
still referenced" as the same FOREIGN KEY failure, so the kind of statement
being executed decides between ForeignKeyViolation and
RestrictedDeleteViolation.
"""
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from consignment.core import get_logger
from consignment.domain.errors import (
    ConsignmentError,
    UniqueConstraintViolation,
    ForeignKeyViolation,
    RestrictedDeleteViolation,
    ValidationViolation,
)

logger = get_logger(__name__)

PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_CHECK_VIOLATION = "23514"
PG_NOT_NULL_VIOLATION = "23502"
PG_RESTRICT_VIOLATION = "23001"


def _constraint_name(exc: IntegrityError):
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None)


def translate_integrity_error(exc: IntegrityError, deleting: bool = False, **context: Any) -> ConsignmentError:
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None)
    message = str(orig)
    details = dict(context)
    details["detail"] = message
    constraint = _constraint_name(exc)
    if constraint:
        details["constraint"] = constraint

    if pgcode == PG_UNIQUE_VIOLATION or "UNIQUE constraint failed" in message:
        return UniqueConstraintViolation("Duplicate value for a unique field", details)
    if pgcode == PG_RESTRICT_VIOLATION:
        return RestrictedDeleteViolation("Row is still referenced by dependent rows", details)
    if pgcode == PG_FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in message:
        # Postgres: "update or delete on table ... violates foreign key constraint"
        if deleting or "update or delete on table" in message:
            return RestrictedDeleteViolation("Row is still referenced by dependent rows", details)
        return ForeignKeyViolation("Referenced row does not exist", details)
    if pgcode in (PG_CHECK_VIOLATION, PG_NOT_NULL_VIOLATION) \
            or "CHECK constraint failed" in message or "NOT NULL constraint failed" in message:
        return ValidationViolation("Value rejected by a table constraint", details)
    return ConsignmentError("Integrity constraint violated", details)


@contextmanager
def guarded_write(db: Session, deleting: bool = False, **context: Any) -> Iterator[Session]:
    """Run a unit of work; on a constraint failure roll back and raise the translated error."""
    try:
        yield db
    except IntegrityError as exc:
        db.rollback()
        error = translate_integrity_error(exc, deleting=deleting, **context)
        logger.warning(
            f"Write rejected: {error.code}",
            extra={'extra_fields': {k: v for k, v in error.context.items() if k != "detail"}}
        )
        raise error from exc
    except Exception:
        db.rollback()
        raise
