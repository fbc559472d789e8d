from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import ReturnStatus, TicketStatus, enum_column


class Return(db.Model):
    """
    Customer return against a finished ticket.

    ONE ACTIVE RETURN: the partial unique index below allows at most one
    PENDING/APPROVED row per ticket. The service checks first; the index
    closes the race between two concurrent requests.

    SNAPSHOT: original_ticket_status records the ticket status at creation
    and is never rewritten by approval.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index(
            "uq_returns_active_ticket",
            "ticket_id",
            unique=True,
            sqlite_where=db.text("status IN ('PENDING', 'APPROVED')"),
            postgresql_where=db.text("status IN ('PENDING', 'APPROVED')"),
        ),
        db.Index("ix_returns_status_created", "status", "created_at"),
        db.CheckConstraint("refund_amount_cents >= 0", name="ck_returns_refund_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)

    status = db.Column(enum_column(ReturnStatus, "return_status"), nullable=False, default=ReturnStatus.PENDING)
    reason = db.Column(db.Text, nullable=False)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    original_ticket_status = db.Column(enum_column(TicketStatus, "return_original_status"), nullable=False)

    created_by = db.Column(db.Integer, nullable=True)
    handled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    handled_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    refund_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = db.relationship("Ticket", backref=db.backref("returns", lazy=True))
    refund_payment = db.relationship("Payment", foreign_keys=[refund_payment_id])

    @property
    def refunded_amount_cents(self) -> int:
        """Amount actually paid back at approval; may be below the requested refund."""
        if self.refund_payment is None:
            return 0
        return -self.refund_payment.amount_cents

    def __repr__(self) -> str:
        return f"<Return id={self.id} ticket_id={self.ticket_id} status={self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "status": self.status.value,
            "reason": self.reason,
            "refund_amount_cents": self.refund_amount_cents,
            "refunded_amount_cents": self.refunded_amount_cents,
            "original_ticket_status": self.original_ticket_status.value,
            "created_by": self.created_by,
            "handled_at": to_utc_z(self.handled_at),
            "handled_by": self.handled_by,
            "notes": self.notes,
            "refund_payment_id": self.refund_payment_id,
            "created_at": to_utc_z(self.created_at),
        }
