# Overview: Pure balance arithmetic over a ticket's payments.

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable

from ..errors import NotFoundError
from ..extensions import db
from ..models import Payment, Ticket


@dataclass(frozen=True)
class BalanceSummary:
    effective_price_cents: int
    total_paid_cents: int
    outstanding_cents: int
    is_paid: bool

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_balance(
    estimated_price_cents: int,
    final_price_cents: int | None,
    payment_amounts: Iterable[int],
) -> BalanceSummary:
    """
    Derive the balance. Refunds are negative amounts and net out naturally;
    outstanding is clamped at zero so overpayment never reads as credit.
    """
    effective = final_price_cents if final_price_cents is not None else (estimated_price_cents or 0)
    total_paid = sum(payment_amounts)
    outstanding = max(0, effective - total_paid)
    return BalanceSummary(
        effective_price_cents=effective,
        total_paid_cents=total_paid,
        outstanding_cents=outstanding,
        is_paid=outstanding == 0,
    )


def ticket_balance(ticket: Ticket) -> BalanceSummary:
    amounts = [
        row[0]
        for row in db.session.query(Payment.amount_cents).filter(Payment.ticket_id == ticket.id).all()
    ]
    return calculate_balance(ticket.estimated_price_cents, ticket.final_price_cents, amounts)


def get_ticket_balance(ticket_id: int) -> BalanceSummary:
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None or ticket.deleted_at is not None:
        raise NotFoundError("Ticket not found")
    return ticket_balance(ticket)
