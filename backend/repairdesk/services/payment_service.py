# Overview: Service-layer operations for ticket payments and cash refunds.

"""
Payment Service

WHY: Customers pay for tickets (possibly in several parts) and returns pay
money back. Each money movement is an immutable Payment row plus one journal
entry referencing it, written in the same unit of work.

DESIGN PRINCIPLES:
- Payments are positive, refunds are new negative rows (never edits)
- No cap beyond "amount > 0"; overpayment simply clamps outstanding at zero
- The journal stores magnitudes; the entry type carries the direction
- post_refund() is flush-only so return approval can include it in its own
  unit of work
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..concurrency import lock_for_update, unit_of_work
from ..context import Actor
from ..errors import AuthorizationError, DomainRuleViolation, NotFoundError, ValidationError
from ..events import emit_event
from ..extensions import db
from ..models import Payment, Return, Ticket
from ..models.enums import (
    JournalEntryType,
    JournalReferenceType,
    PaymentMethod,
    ReturnStatus,
    Role,
)
from ..validation import coerce_enum, coerce_int, require_positive_cents
from .balance_service import ticket_balance
from .ledger_service import append_journal_entry
from .lifecycle_service import is_terminal
from .ticket_service import append_history


logger = logging.getLogger(__name__)

PAYMENT_ROLES = (Role.ADMIN, Role.STAFF)


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    ticket_id: int,
    amount_cents,
    method,
    actor: Actor,
    reference: str | None = None,
    reason: str | None = None,
) -> Payment:
    """
    Record a customer payment against a ticket.

    WHY the history note: the ticket trail shows money events next to status
    changes, which is what the front desk reads when a customer calls.
    """
    if actor.role not in PAYMENT_ROLES:
        raise AuthorizationError("Only admin or staff can record payments")
    amount_cents = require_positive_cents(amount_cents, "amount_cents")
    ticket_id = coerce_int(ticket_id, "ticket_id")
    method = coerce_enum(PaymentMethod, method or PaymentMethod.CASH, "method")

    with unit_of_work():
        ticket = lock_for_update(
            db.session.query(Ticket).filter(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
        ).first()
        if ticket is None:
            raise NotFoundError("Ticket not found")
        if is_terminal(ticket.status):
            raise DomainRuleViolation(
                f"Cannot record a payment on a {ticket.status.value} ticket",
                code="INVALID_STATE",
            )

        payment = Payment(
            ticket_id=ticket.id,
            amount_cents=amount_cents,
            method=method,
            reference=reference,
            reason=reason,
            performed_by=actor.id,
        )
        db.session.add(payment)
        db.session.flush()

        append_journal_entry(
            entry_type=JournalEntryType.PAYMENT,
            amount_cents=amount_cents,
            reference_type=JournalReferenceType.PAYMENT,
            reference_id=payment.id,
            ticket_id=ticket.id,
            description=f"{method.value.title()} payment received for ticket {ticket.ticket_number}",
            created_by=actor.id,
        )

        balance = ticket_balance(ticket)
        if balance.is_paid and not ticket.paid:
            ticket.paid = True
        append_history(
            ticket,
            ticket.status,
            f"Payment of {amount_cents} cents recorded ({method.value}); outstanding {balance.outstanding_cents} cents",
            actor.id,
        )

    logger.info("Payment %s of %s cents recorded on ticket %s", payment.id, amount_cents, ticket_id)
    emit_event("payment.recorded", {
        "payment_id": payment.id,
        "ticket_id": ticket_id,
        "amount_cents": amount_cents,
        "method": method.value,
        "outstanding_cents": balance.outstanding_cents,
    })
    return payment


def record_cash_payment(
    ticket_id: int,
    amount_cents,
    actor: Actor,
    notes: str | None = None,
    receipt_number: str | None = None,
) -> Payment:
    return record_payment(
        ticket_id,
        amount_cents,
        PaymentMethod.CASH,
        actor,
        reference=receipt_number,
        reason=notes,
    )


def list_ticket_payments(ticket_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(ticket_id=ticket_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


# =============================================================================
# REFUNDS
# =============================================================================

def post_refund(
    return_doc: Return,
    amount_cents: int,
    actor: Actor,
    *,
    method: PaymentMethod = PaymentMethod.CASH,
    notes: str | None = None,
    receipt_number: str | None = None,
) -> Payment:
    """
    Write a negative Payment and its REFUND journal entry.

    Flush-only: the caller owns the unit of work.
    """
    if amount_cents <= 0:
        raise ValidationError("Refund amount must be greater than 0")

    payment = Payment(
        ticket_id=return_doc.ticket_id,
        return_id=return_doc.id,
        amount_cents=-amount_cents,
        method=method,
        reference=receipt_number,
        reason=f"Refund for return: {return_doc.reason}",
        performed_by=actor.id,
    )
    db.session.add(payment)
    db.session.flush()

    append_journal_entry(
        entry_type=JournalEntryType.REFUND,
        amount_cents=amount_cents,
        reference_type=JournalReferenceType.PAYMENT,
        reference_id=payment.id,
        ticket_id=return_doc.ticket_id,
        description=notes or f"{method.value.title()} refund processed for return {return_doc.id}",
        created_by=actor.id,
    )
    return payment


def _net_paid_cents(ticket_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.ticket_id == ticket_id)
        .scalar()
    )
    return int(total or 0)


def record_cash_refund(
    return_id: int,
    amount_cents,
    actor: Actor,
    notes: str | None = None,
    receipt_number: str | None = None,
) -> Payment:
    """
    Pay cash back against an approved return outside of the approval step.

    Capped at what the customer has paid net of earlier refunds.
    """
    if actor.role != Role.ADMIN:
        raise AuthorizationError("Only admin can record refunds")
    return_id = coerce_int(return_id, "return_id")
    amount_cents = require_positive_cents(amount_cents, "amount_cents")

    with unit_of_work():
        return_doc = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
        if return_doc is None:
            raise NotFoundError("Return not found")
        if return_doc.status != ReturnStatus.APPROVED:
            raise DomainRuleViolation("Refunds can only be recorded for approved returns", code="RETURN_NOT_APPROVED")

        refundable = _net_paid_cents(return_doc.ticket_id)
        if amount_cents > refundable:
            raise ValidationError(
                f"Refund of {amount_cents} cents exceeds refundable amount of {max(refundable, 0)} cents"
            )

        payment = post_refund(return_doc, amount_cents, actor, notes=notes, receipt_number=receipt_number)

    logger.info("Refund %s of %s cents recorded for return %s", payment.id, amount_cents, return_id)
    emit_event("payment.refunded", {
        "payment_id": payment.id,
        "return_id": return_id,
        "ticket_id": return_doc.ticket_id,
        "amount_cents": amount_cents,
    })
    return payment
