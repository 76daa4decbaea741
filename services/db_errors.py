# services/db_errors.py
from __future__ import annotations

import psycopg2
from psycopg2 import errorcodes

from app.errors import ConflictError, DomainError


# SQLSTATE -> (code, message) for failures a client can act on
DB_ERROR_MAP: dict[str, tuple[str, str]] = {
    errorcodes.UNIQUE_VIOLATION: ("DUPLICATE_RESOURCE", "Resource already exists"),
    errorcodes.LOCK_NOT_AVAILABLE: ("RESOURCE_BUSY", "Resource is being updated, please retry"),
    errorcodes.SERIALIZATION_FAILURE: ("RESOURCE_BUSY", "Resource is being updated, please retry"),
    errorcodes.DEADLOCK_DETECTED: ("RESOURCE_BUSY", "Resource is being updated, please retry"),
}


def translate_db_error(exc: Exception) -> DomainError | None:
    """
    Map a psycopg2 error to a 409 domain error; None means "unknown, fail closed".
    """
    pgcode = getattr(exc, "pgcode", None)
    if pgcode and pgcode in DB_ERROR_MAP:
        code, message = DB_ERROR_MAP[pgcode]
        constraint = None
        diag = getattr(exc, "diag", None)
        if diag is not None:
            constraint = getattr(diag, "constraint_name", None)
        if constraint:
            return ConflictError(code, message, constraint=constraint)
        return ConflictError(code, message)
    return None


def is_db_error(exc: Exception) -> bool:
    return isinstance(exc, psycopg2.Error)
