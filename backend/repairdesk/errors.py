# Overview: Domain error taxonomy and the operation boundary that turns errors into results.

"""
RepairDesk error model

Services raise the exceptions below. Nothing in this module is retried.

Boundary rule:
- Business rejections (validation, authorization, not found, conflict,
  domain rule) become a failed OperationResult carrying a machine-checkable
  `kind`, an optional `code`, and a human-readable `reason`.
- Storage failures are rolled back, logged with context, and surfaced as a
  generic INTERNAL result. The original message never leaves the core.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from .extensions import db


logger = logging.getLogger(__name__)


class CoreError(Exception):
    """Base class for every error the core raises on purpose."""

    kind = "INTERNAL"
    http_status = 500

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(CoreError):
    """400-level input problem (malformed or out-of-range)."""

    kind = "VALIDATION"
    http_status = 400


class AuthorizationError(CoreError):
    """Actor role is not allowed to perform the operation."""

    kind = "AUTHORIZATION"
    http_status = 403


class NotFoundError(CoreError):
    kind = "NOT_FOUND"
    http_status = 404


class ConflictError(CoreError):
    """409-level conflict (duplicate active return, unique constraint race)."""

    kind = "CONFLICT"
    http_status = 409


class DomainRuleViolation(CoreError):
    """A business rule rejected the request (illegal transition, expired window, ...)."""

    kind = "DOMAIN_RULE"
    http_status = 400


class InternalError(CoreError):
    kind = "INTERNAL"
    http_status = 500


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    value: Any = None
    kind: str | None = None
    reason: str | None = None
    code: str | None = None
    http_status: int = 200

    @classmethod
    def success(cls, value: Any) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: CoreError) -> "OperationResult":
        return cls(
            ok=False,
            kind=error.kind,
            reason=error.message,
            code=error.code,
            http_status=error.http_status,
        )

    def error_body(self) -> dict:
        body = {"error": self.reason, "kind": self.kind}
        if self.code:
            body["code"] = self.code
        return body


def run_operation(func: Callable[..., Any], *args, **kwargs) -> OperationResult:
    """
    Invoke a core operation and recover every rejection into an OperationResult.

    Storage errors have already been rolled back by unit_of_work(); the extra
    rollback here covers reads that failed outside of one.
    """
    try:
        return OperationResult.success(func(*args, **kwargs))
    except CoreError as exc:
        if isinstance(exc, InternalError):
            logger.error("Operation %s failed: %s", getattr(func, "__name__", func), exc.message)
        return OperationResult.failure(exc)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Storage failure in %s (args=%r, kwargs=%r)",
            getattr(func, "__name__", func),
            args,
            sorted(kwargs),
        )
        return OperationResult.failure(InternalError("Internal server error"))
