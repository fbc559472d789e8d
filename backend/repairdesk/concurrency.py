# Overview: Row locking and the unit-of-work boundary for multi-row writes.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from .errors import ConflictError
from .extensions import db


logger = logging.getLogger(__name__)

# Partial unique index guarding "one active return per ticket".
ACTIVE_RETURN_INDEX = "uq_returns_active_ticket"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _is_active_return_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    # SQLite reports the columns, PostgreSQL reports the index name.
    return ACTIVE_RETURN_INDEX in message or "returns.ticket_id" in message


@contextmanager
def unit_of_work():
    """
    Run a group of writes as one transaction.

    Commits when the block exits cleanly. Any exception rolls the whole group
    back and propagates; nothing is retried. A violation of the active-return
    index is surfaced as ConflictError so the losing request of a race gets
    the same answer as the optimistic check would have given it.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _is_active_return_violation(exc):
            logger.warning("Active return constraint rejected a concurrent write")
            raise ConflictError(
                "An active return already exists for this ticket",
                code="ACTIVE_RETURN_EXISTS",
            ) from exc
        raise
    except Exception:
        db.session.rollback()
        raise
