# Overview: Service-layer operations for returns; eligibility, creation and approval.

"""
Return Processing Service

WHY: A customer may bring a finished repair back. The return decides whether
money goes back, whether consumed parts go back on the shelf, and moves the
ticket to its terminal RETURNED status. Those effects are either all applied
or none are.

DESIGN PRINCIPLES:
- Only finished tickets (REPAIRED or COMPLETED) can be returned
- The warranty window is measured from completed_at
- At most one active (PENDING or APPROVED) return per ticket; the service
  checks first and the partial unique index settles races
- original_ticket_status is a snapshot taken at creation and never rewritten
- Policy is passed in once per call, never re-read mid-operation

LIFECYCLE:
1. Create return: PENDING when approval is required, otherwise APPROVED
   immediately with the approval side effects applied in the same unit of work
2. Approve (ADMIN): PENDING -> APPROVED, ticket -> RETURNED, optional
   restock (GOOD lines back on the shelf, DAMAGED lines written off),
   refund payment + REFUND journal entry for the requested amount or a
   smaller approved one. A return that already carries a refund payment is
   never refunded again.
There is no rejection step in this workflow.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..concurrency import lock_for_update, unit_of_work
from ..context import Actor, Policy
from ..errors import AuthorizationError, ConflictError, DomainRuleViolation, NotFoundError, ValidationError
from ..events import emit_event
from ..extensions import db
from ..models import Return, Ticket
from ..models.enums import ACTIVE_RETURN_STATUSES, PaymentMethod, ReturnStatus, Role, TicketStatus
from ..time_utils import to_utc_z, utcnow
from ..validation import coerce_enum, coerce_int
from .inventory_service import coerce_part_conditions, restock_ticket_parts
from .payment_service import post_refund
from .ticket_service import append_history


logger = logging.getLogger(__name__)

RETURNABLE_STATUSES = (TicketStatus.REPAIRED, TicketStatus.COMPLETED)


# =============================================================================
# ELIGIBILITY
# =============================================================================

def _load_ticket(ticket_id: int, *, lock: bool = False) -> Ticket:
    query = db.session.query(Ticket).filter(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
    if lock:
        query = lock_for_update(query)
    ticket = query.first()
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


def find_active_return(ticket_id: int) -> Return | None:
    return (
        db.session.query(Return)
        .filter(Return.ticket_id == ticket_id, Return.status.in_(ACTIVE_RETURN_STATUSES))
        .first()
    )


def return_deadline(ticket: Ticket, policy: Policy) -> datetime | None:
    if policy.return_window_days <= 0 or ticket.completed_at is None:
        return None
    return ticket.completed_at + timedelta(days=policy.return_window_days)


def _check_eligibility(ticket: Ticket, policy: Policy, now: datetime) -> datetime | None:
    """
    Status, warranty window and active-return checks, in that order.
    Returns the deadline (None when the window is disabled).
    """
    if ticket.status not in RETURNABLE_STATUSES:
        raise DomainRuleViolation(
            f"Only REPAIRED or COMPLETED tickets can be returned (ticket is {ticket.status.value})",
            code="TICKET_NOT_RETURNABLE",
        )

    deadline = None
    if policy.return_window_days > 0:
        if ticket.completed_at is None:
            raise DomainRuleViolation(
                "Ticket has no completion date; return window cannot be verified",
                code="RETURN_WINDOW_EXPIRED",
            )
        deadline = return_deadline(ticket, policy)
        if now > deadline:
            raise DomainRuleViolation(
                f"Return window of {policy.return_window_days} days expired on {to_utc_z(deadline)}",
                code="RETURN_WINDOW_EXPIRED",
            )

    if find_active_return(ticket.id) is not None:
        raise ConflictError(
            "An active return already exists for this ticket",
            code="ACTIVE_RETURN_EXISTS",
        )
    return deadline


def validate_return_eligibility(ticket_id: int, policy: Policy, now: datetime | None = None) -> dict:
    """Dry run of the creation checks; nothing is written."""
    now = now or utcnow()
    ticket = _load_ticket(ticket_id)
    deadline = _check_eligibility(ticket, policy, now)
    return {
        "eligible": True,
        "ticket_id": ticket.id,
        "ticket_status": ticket.status.value,
        "effective_price_cents": ticket.effective_price_cents,
        "deadline": to_utc_z(deadline),
        "require_approval": policy.require_return_approval,
        "allow_partial_refunds": policy.allow_partial_refunds,
    }


# =============================================================================
# CREATION
# =============================================================================

def create_return(
    ticket_id: int,
    reason: str,
    refund_amount_cents,
    actor: Actor,
    policy: Policy,
    now: datetime | None = None,
) -> Return:
    """
    Create a return request for a finished ticket.

    When policy does not require approval the return is created APPROVED and
    the ticket becomes RETURNED in the same unit of work.
    """
    if not actor.can_handle_returns:
        raise AuthorizationError("Only admin or staff can create returns")
    ticket_id = coerce_int(ticket_id, "ticket_id")
    now = now or utcnow()

    with unit_of_work():
        ticket = _load_ticket(ticket_id, lock=True)
        _check_eligibility(ticket, policy, now)

        refund = coerce_int(refund_amount_cents, "refund_amount_cents")
        if refund < 0:
            raise ValidationError("refund_amount_cents must be >= 0")
        effective = ticket.effective_price_cents
        if refund > effective:
            raise ValidationError(
                f"Refund amount {refund} exceeds ticket price {effective} cents"
            )
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required for returns")

        if not policy.allow_partial_refunds and 0 < refund < effective:
            raise DomainRuleViolation(
                "Partial refunds are disabled; refund the full amount or nothing",
                code="PARTIAL_REFUND_DISALLOWED",
            )

        auto_approve = not policy.require_return_approval
        return_doc = Return(
            ticket_id=ticket.id,
            status=ReturnStatus.APPROVED if auto_approve else ReturnStatus.PENDING,
            reason=reason,
            refund_amount_cents=refund,
            original_ticket_status=ticket.status,
            created_by=actor.id,
        )
        db.session.add(return_doc)
        db.session.flush()

        if auto_approve:
            _apply_approval(return_doc, ticket, actor, policy)
        else:
            append_history(
                ticket,
                ticket.status,
                f"Return request created (refund {refund} cents): {reason}",
                actor.id,
            )

    logger.info(
        "Return %s created for ticket %s with status %s",
        return_doc.id, ticket_id, return_doc.status.value,
    )
    emit_event("return.created", {
        "return_id": return_doc.id,
        "ticket_id": ticket_id,
        "status": return_doc.status.value,
        "refund_amount_cents": return_doc.refund_amount_cents,
    })
    if return_doc.status == ReturnStatus.APPROVED:
        emit_event("return.approved", {"return_id": return_doc.id, "ticket_id": ticket_id})
    return return_doc


# =============================================================================
# APPROVAL
# =============================================================================

def _apply_approval(
    return_doc: Return,
    ticket: Ticket,
    actor: Actor,
    policy: Policy,
    *,
    refund_method: PaymentMethod = PaymentMethod.CASH,
    refund_amount_cents: int | None = None,
    part_conditions: dict | None = None,
    notes: str | None = None,
) -> None:
    """
    Approval side effects. Runs inside the caller's unit of work.

    refund_amount_cents, when given, replaces the requested amount for the
    refund payment; the requested amount stays on the return as asked.
    """
    return_doc.status = ReturnStatus.APPROVED
    return_doc.handled_at = utcnow()
    return_doc.handled_by = actor.id
    if notes:
        return_doc.notes = notes

    previous = ticket.status
    ticket.status = TicketStatus.RETURNED
    append_history(
        ticket,
        TicketStatus.RETURNED,
        f"Return {return_doc.id} approved (was {previous.value}): {return_doc.reason}",
        actor.id,
    )

    if policy.auto_restock_on_return:
        restock_ticket_parts(ticket, return_doc, actor, part_conditions)

    amount = return_doc.refund_amount_cents if refund_amount_cents is None else refund_amount_cents
    if amount > 0:
        refund = post_refund(
            return_doc,
            amount,
            actor,
            method=refund_method,
            notes=notes,
        )
        return_doc.refund_payment_id = refund.id

    db.session.flush()


def _approved_refund_amount(return_doc: Return, ticket: Ticket, value, policy: Policy) -> int | None:
    """Validate an approver's refund override against the requested amount."""
    if value is None:
        return None
    amount = coerce_int(value, "refund_amount_cents")
    if amount <= 0:
        raise ValidationError("refund_amount_cents must be > 0")
    if amount > return_doc.refund_amount_cents:
        raise ValidationError(
            f"Approved refund ({amount}) cannot exceed the requested refund "
            f"({return_doc.refund_amount_cents})"
        )
    if not policy.allow_partial_refunds and amount < ticket.effective_price_cents:
        raise DomainRuleViolation(
            "Partial refunds are disabled; refund the full amount or nothing",
            code="PARTIAL_REFUND_DISALLOWED",
        )
    return amount


def approve_return(
    return_id: int,
    actor: Actor,
    policy: Policy,
    refund_method=PaymentMethod.CASH,
    notes: str | None = None,
    refund_amount_cents=None,
    part_conditions=None,
) -> Return:
    """
    Approve a PENDING return: ticket to RETURNED, optional restock, refund.

    part_conditions maps ticket_part_id -> GOOD/DAMAGED and only matters when
    the policy restocks on return.
    """
    if actor.role != Role.ADMIN:
        raise AuthorizationError("Only admin can approve returns")
    refund_method = coerce_enum(PaymentMethod, refund_method or PaymentMethod.CASH, "refund_method")

    with unit_of_work():
        return_doc = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
        if return_doc is None:
            raise NotFoundError("Return not found")
        if return_doc.status != ReturnStatus.PENDING:
            raise DomainRuleViolation(
                f"Return is {return_doc.status.value}; only PENDING returns can be approved",
                code="RETURN_NOT_PENDING",
            )
        if return_doc.refund_payment_id is not None:
            raise DomainRuleViolation(
                f"Return {return_doc.id} has already been refunded",
                code="RETURN_ALREADY_REFUNDED",
            )

        ticket = lock_for_update(db.session.query(Ticket).filter_by(id=return_doc.ticket_id)).one()
        if ticket.status not in RETURNABLE_STATUSES:
            raise DomainRuleViolation(
                f"Ticket is {ticket.status.value} and can no longer be returned",
                code="TICKET_NOT_RETURNABLE",
            )

        approved_amount = _approved_refund_amount(return_doc, ticket, refund_amount_cents, policy)
        conditions = coerce_part_conditions(ticket, part_conditions)

        _apply_approval(
            return_doc,
            ticket,
            actor,
            policy,
            refund_method=refund_method,
            refund_amount_cents=approved_amount,
            part_conditions=conditions,
            notes=notes,
        )

    logger.info("Return %s approved by actor %s", return_id, actor.id)
    emit_event("return.approved", {
        "return_id": return_doc.id,
        "ticket_id": return_doc.ticket_id,
        "refund_amount_cents": return_doc.refund_amount_cents,
        "refunded_amount_cents": return_doc.refunded_amount_cents,
        "refund_payment_id": return_doc.refund_payment_id,
    })
    return return_doc


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> Return:
    return_doc = db.session.get(Return, return_id)
    if return_doc is None:
        raise NotFoundError("Return not found")
    return return_doc


def list_returns(*, status=None, ticket_id: int | None = None) -> list[Return]:
    q = db.session.query(Return)
    if status:
        q = q.filter(Return.status == coerce_enum(ReturnStatus, status, "status"))
    if ticket_id is not None:
        q = q.filter(Return.ticket_id == ticket_id)
    return q.order_by(Return.created_at.desc(), Return.id.desc()).all()


def pending_returns_count() -> int:
    return int(
        db.session.query(db.func.count(Return.id))
        .filter(Return.status == ReturnStatus.PENDING)
        .scalar()
        or 0
    )
