# app/errors.py
from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Business-rule violation with a machine-readable code.

    `context` carries the fields a client needs to explain the failure
    (current/target status, allowed set, ...). Rendered by main.py as
    {"detail": {"code": ..., "message": ..., **context}}.
    """

    status_code = 400

    def __init__(self, code: str, message: str, **context: Any):
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.context}


class BadRequestError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404

    def __init__(self, code: str, message: str = "Not found", **context: Any):
        super().__init__(code, message, **context)


class ForbiddenError(DomainError):
    status_code = 403


class ConflictError(DomainError):
    status_code = 409
