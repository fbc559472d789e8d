# Overview: Service-layer operations for shop expenses.

from __future__ import annotations

import logging

from ..concurrency import unit_of_work
from ..context import Actor
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..events import emit_event
from ..extensions import db
from ..models import Expense, Ticket
from ..models.enums import JournalEntryType, JournalReferenceType, Role
from ..time_utils import utcnow
from ..validation import coerce_int, require_positive_cents
from .ledger_service import append_journal_entry


logger = logging.getLogger(__name__)


def create_expense(
    *,
    amount_cents,
    category: str,
    actor: Actor,
    description: str | None = None,
    ticket_id=None,
) -> Expense:
    if actor.role not in (Role.ADMIN, Role.STAFF):
        raise AuthorizationError("Only admin or staff can record expenses")
    amount_cents = require_positive_cents(amount_cents, "amount_cents")
    category = (category or "").strip()
    if not category:
        raise ValidationError("category is required")
    if len(category) > 64:
        raise ValidationError("category exceeds max length 64")
    if ticket_id is not None:
        ticket_id = coerce_int(ticket_id, "ticket_id")
        if db.session.get(Ticket, ticket_id) is None:
            raise NotFoundError("Ticket not found")

    with unit_of_work():
        expense = Expense(
            amount_cents=amount_cents,
            category=category,
            description=description,
            ticket_id=ticket_id,
            created_by=actor.id,
        )
        db.session.add(expense)
        db.session.flush()

        append_journal_entry(
            entry_type=JournalEntryType.EXPENSE,
            amount_cents=amount_cents,
            reference_type=JournalReferenceType.EXPENSE,
            reference_id=expense.id,
            ticket_id=ticket_id,
            description=f"Expense ({category}): {description or ''}".rstrip(": "),
            created_by=actor.id,
        )

    emit_event("expense.created", {"expense_id": expense.id, "amount_cents": amount_cents, "category": category})
    return expense


def delete_expense(expense_id: int, actor: Actor) -> Expense:
    """Soft delete. The journal row stays; metrics filter on deleted_at."""
    if actor.role != Role.ADMIN:
        raise AuthorizationError("Only admin can delete expenses")

    with unit_of_work():
        expense = db.session.get(Expense, expense_id)
        if expense is None or expense.deleted_at is not None:
            raise NotFoundError("Expense not found")
        expense.deleted_at = utcnow()

    logger.info("Expense %s soft-deleted by actor %s", expense_id, actor.id)
    emit_event("expense.deleted", {"expense_id": expense_id})
    return expense


def list_expenses(*, start=None, end=None, category: str | None = None, include_deleted: bool = False) -> list[Expense]:
    q = db.session.query(Expense)
    if not include_deleted:
        q = q.filter(Expense.deleted_at.is_(None))
    if start is not None:
        q = q.filter(Expense.created_at >= start)
    if end is not None:
        q = q.filter(Expense.created_at <= end)
    if category:
        q = q.filter(Expense.category == category)
    return q.order_by(Expense.created_at.desc(), Expense.id.desc()).all()
