# Overview: Service-layer operations for parts stock; every stock move posts a ledger transaction.

from __future__ import annotations

import logging

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..concurrency import lock_for_update, unit_of_work
from ..context import Actor, Policy
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..events import emit_event
from ..extensions import db
from ..models import InventoryAdjustment, InventoryTransaction, Part, Return, Ticket, TicketPart
from ..models.enums import (
    InventoryDirection,
    InventoryReason,
    JournalEntryType,
    JournalReferenceType,
    PartCondition,
    Role,
)
from ..validation import coerce_enum, coerce_int, require_non_negative_cents, require_positive_quantity
from .ledger_service import append_journal_entry
from .lifecycle_service import is_terminal
"""
RepairDesk Inventory Invariants (authoritative)

- Part.quantity is a cached balance; the ledger is SUM of signed
  InventoryTransaction deltas (+quantity for IN, -quantity for OUT).
- Every stock change updates Part.quantity AND posts one transaction in the
  same unit of work, so cached == ledger after every committed operation.
- Stock may not go below zero unless policy.allow_negative_stock. The check
  happens before any write.
- Ticket part lines consumed by a repair are never deleted by a return; a
  restock posts IN transactions and leaves the lines as the historical record.
- A DAMAGED returned line posts IN then OUT (DAMAGE_LOSS); stock is unchanged.
"""


logger = logging.getLogger(__name__)

PART_WRITE_ROLES = (Role.ADMIN, Role.STAFF)


def _require_role(actor: Actor, roles, message: str) -> None:
    if actor.role not in roles:
        raise AuthorizationError(message)


def _load_part(part_id: int, *, lock: bool = False) -> Part:
    query = db.session.query(Part).filter(Part.id == part_id, Part.deleted_at.is_(None))
    if lock:
        query = lock_for_update(query)
    part = query.first()
    if part is None:
        raise NotFoundError("Part not found")
    return part


def _load_ticket(ticket_id: int, *, lock: bool = False) -> Ticket:
    query = db.session.query(Ticket).filter(Ticket.id == ticket_id, Ticket.deleted_at.is_(None))
    if lock:
        query = lock_for_update(query)
    ticket = query.first()
    if ticket is None:
        raise NotFoundError("Ticket not found")
    return ticket


def _post_stock_move(
    part: Part,
    direction: InventoryDirection,
    quantity: int,
    reason: InventoryReason,
    *,
    actor_id: int | None,
    ticket_id: int | None = None,
    return_id: int | None = None,
    adjustment_id: int | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """Move cached stock and append the matching ledger row. Flushes, never commits."""
    tx = InventoryTransaction(
        part_id=part.id,
        direction=direction,
        quantity=quantity,
        reason=reason,
        ticket_id=ticket_id,
        return_id=return_id,
        adjustment_id=adjustment_id,
        note=note,
        actor_id=actor_id,
    )
    part.quantity = part.quantity + tx.delta
    db.session.add(tx)
    db.session.flush()
    return tx


def _after_stock_change(part: Part) -> None:
    emit_event("part.updated", {"part_id": part.id, "sku": part.sku, "quantity": part.quantity})
    if part.is_low_stock:
        logger.warning(
            "Part %s (%s) is at or below reorder level: quantity=%s reorder_level=%s",
            part.id, part.sku, part.quantity, part.reorder_level,
        )


# =============================================================================
# Parts master data
# =============================================================================

def create_part(
    *,
    sku: str,
    name: str,
    actor: Actor,
    quantity: int = 0,
    reorder_level: int = 0,
    unit_price_cents: int = 0,
    description: str | None = None,
) -> Part:
    """
    Create a part. Opening stock is posted as a RECEIVE transaction so the
    ledger and cached quantity agree from the first row.
    """
    _require_role(actor, PART_WRITE_ROLES, "Only admin or staff can create parts")

    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")
    quantity = coerce_int(quantity, "quantity")
    if quantity < 0:
        raise ValidationError("quantity must be >= 0")
    reorder_level = coerce_int(reorder_level, "reorder_level")
    if reorder_level < 0:
        raise ValidationError("reorder_level must be >= 0")
    unit_price_cents = require_non_negative_cents(unit_price_cents, "unit_price_cents")

    if db.session.query(Part.id).filter(Part.sku == sku).first() is not None:
        raise ConflictError(f"SKU {sku} already exists")

    try:
        with unit_of_work():
            part = Part(
                sku=sku,
                name=name,
                description=description,
                quantity=0,
                reorder_level=reorder_level,
                unit_price_cents=unit_price_cents,
            )
            db.session.add(part)
            db.session.flush()
            if quantity > 0:
                _post_stock_move(
                    part, InventoryDirection.IN, quantity, InventoryReason.RECEIVE,
                    actor_id=actor.id, note="Opening stock",
                )
    except IntegrityError as exc:
        raise ConflictError(f"SKU {sku} already exists") from exc

    _after_stock_change(part)
    return part


def get_part(part_id: int) -> Part:
    return _load_part(part_id)


def list_parts(*, search: str | None = None, low_stock_only: bool = False) -> list[Part]:
    q = db.session.query(Part).filter(Part.deleted_at.is_(None))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter((Part.name.ilike(like)) | (Part.sku.ilike(like)))
    if low_stock_only:
        q = q.filter(Part.quantity <= Part.reorder_level)
    return q.order_by(Part.name.asc(), Part.id.asc()).all()


def low_stock_parts() -> list[Part]:
    return list_parts(low_stock_only=True)


# =============================================================================
# Ticket part usage
# =============================================================================

def add_part_to_ticket(
    ticket_id: int,
    part_id: int,
    quantity,
    actor: Actor,
    policy: Policy,
) -> TicketPart:
    """
    Consume stock for a ticket.

    Re-adding a part already on the ticket increments its line. The stock
    check runs before anything is written.
    """
    _require_role(actor, PART_WRITE_ROLES, "Only admin or staff can add parts to tickets")
    part_id = coerce_int(part_id, "part_id")
    quantity = require_positive_quantity(quantity)

    with unit_of_work():
        ticket = _load_ticket(ticket_id, lock=True)
        if is_terminal(ticket.status):
            raise ValidationError(f"Cannot add parts to a {ticket.status.value} ticket")
        part = _load_part(part_id, lock=True)

        if quantity > part.quantity and not policy.allow_negative_stock:
            raise ValidationError(
                f"Insufficient stock for {part.sku}: available {part.quantity}, requested {quantity}"
            )

        line = (
            db.session.query(TicketPart)
            .filter_by(ticket_id=ticket.id, part_id=part.id)
            .first()
        )
        if line is None:
            line = TicketPart(ticket_id=ticket.id, part_id=part.id, quantity=quantity)
            db.session.add(line)
        else:
            line.quantity = line.quantity + quantity

        _post_stock_move(
            part, InventoryDirection.OUT, quantity, InventoryReason.TICKET_USAGE,
            actor_id=actor.id, ticket_id=ticket.id,
            note=f"Used on ticket {ticket.ticket_number}",
        )

    _after_stock_change(part)
    return line


def remove_part_from_ticket(
    ticket_id: int,
    ticket_part_id: int,
    actor: Actor,
    quantity=None,
) -> TicketPart | None:
    """
    Give consumed stock back. Without a quantity the whole line is removed;
    with one, the line is decremented. Returns the remaining line or None.
    """
    _require_role(actor, PART_WRITE_ROLES, "Only admin or staff can remove parts from tickets")

    with unit_of_work():
        ticket = _load_ticket(ticket_id, lock=True)
        if is_terminal(ticket.status):
            raise ValidationError(f"Cannot remove parts from a {ticket.status.value} ticket")

        line = db.session.get(TicketPart, ticket_part_id)
        if line is None:
            raise NotFoundError("Ticket part not found")
        if line.ticket_id != ticket.id:
            raise ValidationError("Ticket part does not belong to this ticket")

        if quantity is None:
            released = line.quantity
        else:
            released = require_positive_quantity(quantity)
            if released > line.quantity:
                raise ValidationError(
                    f"Cannot remove {released} units; only {line.quantity} on this ticket"
                )

        part = lock_for_update(db.session.query(Part).filter(Part.id == line.part_id)).one()

        remaining = line
        if released == line.quantity:
            db.session.delete(line)
            remaining = None
        else:
            line.quantity = line.quantity - released

        _post_stock_move(
            part, InventoryDirection.IN, released, InventoryReason.TICKET_REMOVAL,
            actor_id=actor.id, ticket_id=ticket.id,
            note=f"Removed from ticket {ticket.ticket_number}",
        )

    _after_stock_change(part)
    return remaining


def coerce_part_conditions(ticket: Ticket, raw) -> dict[int, PartCondition]:
    """
    Normalise {ticket_part_id: condition} input for a return approval.

    Keys may arrive as JSON strings. Every key must be a part line of the
    ticket; lines left out are treated as GOOD.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("part_conditions must be an object of ticket_part_id -> condition")

    line_ids = {
        row.id for row in db.session.query(TicketPart.id).filter_by(ticket_id=ticket.id).all()
    }
    conditions = {}
    for key, value in raw.items():
        line_id = coerce_int(key, "part_conditions key")
        if line_id not in line_ids:
            raise ValidationError(f"Ticket part {line_id} does not belong to ticket {ticket.id}")
        conditions[line_id] = coerce_enum(PartCondition, value, "part condition")
    return conditions


def restock_ticket_parts(
    ticket: Ticket,
    return_doc: Return,
    actor: Actor,
    conditions: dict[int, PartCondition] | None = None,
) -> int:
    """
    Replay a returned ticket's consumed parts back into stock.

    GOOD lines post IN (RETURN_RESTOCK). DAMAGED lines post the same IN
    followed by an OUT (DAMAGE_LOSS), so the unit is on record as returned
    and written off while stock stays where it was.

    Runs inside the caller's unit of work (flush only). Returns units restocked.
    """
    conditions = conditions or {}
    restocked = 0
    written_off = 0
    lines = db.session.query(TicketPart).filter_by(ticket_id=ticket.id).order_by(TicketPart.id).all()
    for line in lines:
        part = lock_for_update(db.session.query(Part).filter(Part.id == line.part_id)).one()
        _post_stock_move(
            part, InventoryDirection.IN, line.quantity, InventoryReason.RETURN_RESTOCK,
            actor_id=actor.id, ticket_id=ticket.id, return_id=return_doc.id,
            note=f"Restocked from return {return_doc.id}",
        )
        if conditions.get(line.id, PartCondition.GOOD) == PartCondition.DAMAGED:
            _post_stock_move(
                part, InventoryDirection.OUT, line.quantity, InventoryReason.DAMAGE_LOSS,
                actor_id=actor.id, ticket_id=ticket.id, return_id=return_doc.id,
                note=f"Damaged part from return {return_doc.id}",
            )
            written_off += line.quantity
        else:
            restocked += line.quantity
    if restocked or written_off:
        logger.info(
            "Return %s for ticket %s: restocked %s units, wrote off %s damaged",
            return_doc.id, ticket.id, restocked, written_off,
        )
    return restocked


# =============================================================================
# Stock intake and manual adjustments
# =============================================================================

def receive_part_stock(part_id: int, quantity, actor: Actor, note: str | None = None) -> InventoryTransaction:
    _require_role(actor, PART_WRITE_ROLES, "Only admin or staff can receive stock")
    quantity = require_positive_quantity(quantity)

    with unit_of_work():
        part = _load_part(part_id, lock=True)
        tx = _post_stock_move(
            part, InventoryDirection.IN, quantity, InventoryReason.RECEIVE,
            actor_id=actor.id, note=note,
        )

    _after_stock_change(part)
    return tx


def adjust_part_stock(
    part_id: int,
    qty_change,
    reason: str,
    actor: Actor,
    policy: Policy,
) -> InventoryAdjustment:
    """
    Manual stock correction (damage, loss, count correction).

    WHY a separate record: the adjustment carries cost and reason for
    reporting, the transaction keeps the quantity ledger complete. Losses also
    post an ADJUSTMENT journal entry valued at the part's unit price.
    """
    _require_role(actor, (Role.ADMIN,), "Only admin can adjust stock")
    qty_change = coerce_int(qty_change, "qty_change")
    if qty_change == 0:
        raise ValidationError("qty_change must be non-zero")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required for stock adjustments")

    with unit_of_work():
        part = _load_part(part_id, lock=True)
        if part.quantity + qty_change < 0 and not policy.allow_negative_stock:
            raise ValidationError(
                f"Adjustment would make stock negative for {part.sku}: on hand {part.quantity}"
            )

        adjustment = InventoryAdjustment(
            part_id=part.id,
            qty_change=qty_change,
            cost_cents=abs(qty_change) * part.unit_price_cents,
            reason=reason,
            actor_id=actor.id,
        )
        db.session.add(adjustment)
        db.session.flush()

        direction = InventoryDirection.IN if qty_change > 0 else InventoryDirection.OUT
        _post_stock_move(
            part, direction, abs(qty_change), InventoryReason.ADJUSTMENT,
            actor_id=actor.id, adjustment_id=adjustment.id, note=reason,
        )

        if qty_change < 0 and adjustment.cost_cents > 0:
            append_journal_entry(
                entry_type=JournalEntryType.ADJUSTMENT,
                amount_cents=adjustment.cost_cents,
                reference_type=JournalReferenceType.INVENTORY_ADJUSTMENT,
                reference_id=adjustment.id,
                description=f"Inventory loss: {part.sku} x{abs(qty_change)} ({reason})",
                created_by=actor.id,
            )

    _after_stock_change(part)
    return adjustment


# =============================================================================
# Ledger queries
# =============================================================================

def _signed_delta():
    return case(
        (InventoryTransaction.direction == InventoryDirection.IN, InventoryTransaction.quantity),
        else_=-InventoryTransaction.quantity,
    )


def ledger_quantity(part_id: int) -> int:
    """Stock derived from the transaction ledger alone."""
    q = db.session.query(func.coalesce(func.sum(_signed_delta()), 0)).filter(
        InventoryTransaction.part_id == part_id
    )
    return int(q.scalar() or 0)


def get_part_transactions(part_id: int) -> list[InventoryTransaction]:
    _load_part(part_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.part_id == part_id)
        .order_by(InventoryTransaction.created_at.asc(), InventoryTransaction.id.asc())
        .all()
    )


def reconcile_parts() -> list[dict]:
    """
    Compare cached quantity with the ledger for every part.

    Returns one row per drifting part; an empty list means the invariant holds.
    """
    ledger = (
        db.session.query(
            InventoryTransaction.part_id.label("part_id"),
            func.sum(_signed_delta()).label("qty"),
        )
        .group_by(InventoryTransaction.part_id)
        .subquery()
    )
    rows = (
        db.session.query(Part.id, Part.sku, Part.quantity, func.coalesce(ledger.c.qty, 0))
        .outerjoin(ledger, ledger.c.part_id == Part.id)
        .order_by(Part.id.asc())
        .all()
    )
    drift = []
    for part_id, sku, cached, ledger_qty in rows:
        ledger_qty = int(ledger_qty or 0)
        if cached != ledger_qty:
            drift.append({
                "part_id": part_id,
                "sku": sku,
                "cached_quantity": cached,
                "ledger_quantity": ledger_qty,
                "drift": cached - ledger_qty,
            })
    if drift:
        logger.warning("Inventory drift detected on %s part(s)", len(drift))
    return drift
