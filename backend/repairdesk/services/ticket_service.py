# Overview: Service-layer operations for tickets; applies lifecycle decisions and writes history.

"""
Ticket Service

WHY: Tickets are the unit of work of the shop. Every status change must land
together with its history row, so each change runs in one unit of work and
events are only emitted after the commit succeeded.

DESIGN PRINCIPLES:
- Rules live in lifecycle_service (pure); this module applies them
- History is append-only: one row per accepted transition or note
- A rejected transition raises and writes nothing
- Nothing is retried; the caller decides what to do with a rejection
"""

from __future__ import annotations

import logging
import secrets
import string

from ..concurrency import lock_for_update, unit_of_work
from ..context import Actor
from ..errors import AuthorizationError, DomainRuleViolation, NotFoundError, ValidationError
from ..events import emit_event
from ..extensions import db
from ..models import Customer, Payment, Return, Ticket, TicketStatusHistory
from ..models.enums import Role, TicketStatus
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_rules_ticket, require_non_negative_cents, validate_payload
from .balance_service import ticket_balance
from .lifecycle_service import (
    TransitionCode,
    allowed_transitions_for_role,
    can_transition,
    parse_status,
)


logger = logging.getLogger(__name__)

TICKET_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id",
        "device_type",
        "device_brand",
        "device_model",
        "serial_number",
        "issue_description",
        "priority",
        "estimated_price_cents",
        "warranty_days",
    },
    required_on_create={"customer_id", "device_type", "issue_description"},
)

TRACKING_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_CODE_LENGTH = 8

# Statuses excluded by the "active" list filter
INACTIVE_STATUSES = (TicketStatus.COMPLETED, TicketStatus.CANCELLED, TicketStatus.RETURNED)

# Entering these stamps completed_at when it is still empty
COMPLETION_STATUSES = (TicketStatus.REPAIRED, TicketStatus.COMPLETED)


# =============================================================================
# HISTORY
# =============================================================================

def append_history(
    ticket: Ticket,
    status: TicketStatus,
    note: str | None,
    actor_id: int | None,
) -> TicketStatusHistory:
    """Append one history row. Flushes, never commits."""
    row = TicketStatusHistory(ticket_id=ticket.id, status=status, note=note, actor_id=actor_id)
    db.session.add(row)
    db.session.flush()
    return row


def get_history(ticket_id: int) -> list[TicketStatusHistory]:
    return (
        db.session.query(TicketStatusHistory)
        .filter_by(ticket_id=ticket_id)
        .order_by(TicketStatusHistory.created_at.asc(), TicketStatusHistory.id.asc())
        .all()
    )


# =============================================================================
# CREATION AND LOOKUP
# =============================================================================

def _generate_tracking_code() -> str:
    while True:
        code = "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(TRACKING_CODE_LENGTH))
        if db.session.query(Ticket.id).filter_by(tracking_code=code).first() is None:
            return code


def _format_ticket_number(ticket_id: int) -> str:
    return f"T-{ticket_id:06d}"


def create_ticket(payload: dict, actor: Actor) -> Ticket:
    """
    Intake a device. The ticket starts RECEIVED with one history row.

    ticket_number is derived from the primary key, so the row is flushed with
    a placeholder first and renamed inside the same unit of work.
    """
    patch = validate_payload(model=Ticket, payload=payload, policy=TICKET_POLICY, partial=False)
    enforce_rules_ticket(patch)

    if db.session.get(Customer, patch["customer_id"]) is None:
        raise NotFoundError("Customer not found")

    with unit_of_work():
        ticket = Ticket(**patch)
        ticket.status = TicketStatus.RECEIVED
        ticket.created_by = actor.id
        ticket.tracking_code = _generate_tracking_code()
        ticket.ticket_number = f"PENDING-{ticket.tracking_code}"
        db.session.add(ticket)
        db.session.flush()

        ticket.ticket_number = _format_ticket_number(ticket.id)
        append_history(ticket, TicketStatus.RECEIVED, "Ticket created", actor.id)

    logger.info("Ticket %s created by actor %s", ticket.ticket_number, actor.id)
    emit_event("ticket.created", {
        "ticket_id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "customer_id": ticket.customer_id,
    })
    return ticket


def get_ticket(ticket_id: int, *, include_deleted: bool = False) -> Ticket:
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None or (ticket.deleted_at is not None and not include_deleted):
        raise NotFoundError("Ticket not found")
    return ticket


def get_ticket_by_tracking_code(code: str) -> Ticket:
    code = (code or "").strip().upper()
    ticket = (
        db.session.query(Ticket)
        .filter(Ticket.tracking_code == code, Ticket.deleted_at.is_(None))
        .first()
    )
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


def list_tickets(
    *,
    status: str | None = None,
    customer_id: int | None = None,
    include_deleted: bool = False,
) -> list[Ticket]:
    """
    List tickets, newest first.

    status may be a TicketStatus value or "active" (anything not
    COMPLETED/CANCELLED/RETURNED).
    """
    q = db.session.query(Ticket)
    if not include_deleted:
        q = q.filter(Ticket.deleted_at.is_(None))
    if status:
        if status.strip().lower() == "active":
            q = q.filter(Ticket.status.notin_(INACTIVE_STATUSES))
        else:
            q = q.filter(Ticket.status == parse_status(status))
    if customer_id is not None:
        q = q.filter(Ticket.customer_id == customer_id)
    return q.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()


def ticket_detail(ticket_id: int) -> dict:
    ticket = get_ticket(ticket_id)
    data = ticket.to_dict()
    data["history"] = [h.to_dict() for h in get_history(ticket.id)]
    data["parts"] = [p.to_dict() for p in ticket.parts]
    data["balance"] = ticket_balance(ticket).to_dict()
    return data


def transitions_for_actor(ticket_id: int, actor: Actor) -> list[str]:
    ticket = get_ticket(ticket_id)
    return [s.value for s in allowed_transitions_for_role(ticket.status, actor.role)]


# =============================================================================
# STATUS CHANGES
# =============================================================================

def change_status(
    ticket_id: int,
    target,
    actor: Actor,
    note: str | None = None,
    override: bool = False,
) -> Ticket:
    """
    Validate and apply one status transition.

    A same-status request is a no-op: nothing is written and no event fires.
    Role rejections raise AuthorizationError; every other rejection raises
    DomainRuleViolation carrying the transition code.
    """
    target = parse_status(target)

    with unit_of_work():
        ticket = lock_for_update(
            db.session.query(Ticket).filter(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
        ).first()
        if ticket is None:
            raise NotFoundError("Ticket not found")

        current = ticket.status
        balance = ticket_balance(ticket)
        decision = can_transition(
            current,
            target,
            actor.role,
            outstanding_cents=balance.outstanding_cents,
            override=override,
        )
        if not decision.allowed:
            if decision.code == TransitionCode.INSUFFICIENT_PERMISSIONS:
                raise AuthorizationError(decision.reason, code=decision.code)
            raise DomainRuleViolation(decision.reason, code=decision.code)

        if current == target:
            return ticket

        ticket.status = target
        if target in COMPLETION_STATUSES and ticket.completed_at is None:
            ticket.completed_at = utcnow()
        if target == TicketStatus.COMPLETED and balance.is_paid:
            ticket.paid = True

        history_note = note or f"Status changed from {current.value} to {target.value}"
        if override and balance.outstanding_cents > 0 and target == TicketStatus.COMPLETED:
            history_note = f"{history_note} (admin override, outstanding {balance.outstanding_cents} cents)"
        append_history(ticket, target, history_note, actor.id)

    logger.info(
        "Ticket %s status %s -> %s by actor %s",
        ticket.id, current.value, target.value, actor.id,
    )
    emit_event("ticket.status_changed", {
        "ticket_id": ticket.id,
        "from": current.value,
        "to": target.value,
        "actor_id": actor.id,
    })
    return ticket


# =============================================================================
# PRICE AND DELETION
# =============================================================================

def update_final_price(ticket_id: int, price_cents, reason: str, actor: Actor) -> Ticket:
    """
    Set the final price of a REPAIRED ticket. The old and new values are kept
    in a history note since the column itself is overwritten.
    """
    if actor.role not in (Role.ADMIN, Role.STAFF):
        raise AuthorizationError("Only admin or staff can change the final price")
    price_cents = require_non_negative_cents(price_cents, "final_price_cents")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to change the final price")

    with unit_of_work():
        ticket = lock_for_update(
            db.session.query(Ticket).filter(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
        ).first()
        if ticket is None:
            raise NotFoundError("Ticket not found")
        if ticket.status != TicketStatus.REPAIRED:
            raise DomainRuleViolation(
                "Final price can only be changed while the ticket is REPAIRED",
                code="INVALID_STATE",
            )

        old_price = ticket.effective_price_cents
        ticket.final_price_cents = price_cents
        append_history(
            ticket,
            ticket.status,
            f"Final price changed from {old_price} to {price_cents} cents: {reason}",
            actor.id,
        )

    emit_event("ticket.price_updated", {"ticket_id": ticket.id, "from": old_price, "to": price_cents})
    return ticket


def soft_delete_ticket(ticket_id: int, actor: Actor) -> Ticket:
    if actor.role != Role.ADMIN:
        raise AuthorizationError("Only admin can delete tickets")

    with unit_of_work():
        ticket = get_ticket(ticket_id)
        has_payments = db.session.query(Payment.id).filter_by(ticket_id=ticket.id).first() is not None
        has_returns = db.session.query(Return.id).filter_by(ticket_id=ticket.id).first() is not None
        if has_payments or has_returns:
            raise DomainRuleViolation(
                "Ticket has payments or returns and cannot be deleted",
                code="TICKET_REFERENCED",
            )
        ticket.deleted_at = utcnow()

    logger.info("Ticket %s soft-deleted by actor %s", ticket.id, actor.id)
    emit_event("ticket.deleted", {"ticket_id": ticket.id})
    return ticket
