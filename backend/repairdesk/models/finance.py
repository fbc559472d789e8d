from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import JournalEntryType, JournalReferenceType, PaymentMethod, enum_column


class Payment(db.Model):
    """
    Operational money movement for a ticket.

    SIGN: positive amount_cents is a customer payment, negative is a refund.
    IMMUTABLE: a refund is a new negative row, never an edit of an old one.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents <> 0", name="ck_payments_amount_nonzero"),
        db.Index("ix_payments_ticket_created", "ticket_id", "created_at"),
        db.Index("ix_payments_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False)
    # Set on refunds posted by return approval; returns.refund_payment_id points back
    return_id = db.Column(db.Integer, nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(enum_column(PaymentMethod, "payment_method"), nullable=False, default=PaymentMethod.CASH)
    reference = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.Text, nullable=True)

    performed_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = db.relationship("Ticket", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    @property
    def is_refund(self) -> bool:
        return self.amount_cents < 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "return_id": self.return_id,
            "amount_cents": self.amount_cents,
            "method": self.method.value,
            "reference": self.reference,
            "reason": self.reason,
            "is_refund": self.is_refund,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    """Shop expense. Soft-deleted rows keep their journal entry but drop out of metrics."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "description": self.description,
            "ticket_id": self.ticket_id,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class JournalEntry(db.Model):
    """
    Analytical ledger row.

    APPEND-ONLY: never updated or deleted. amount_cents is a non-negative
    magnitude; the entry type carries the direction. Refund aggregation reads
    from here only, never from Payment.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_journal_amount_non_negative"),
        db.Index("ix_journal_type_created", "type", "created_at"),
        db.Index("ix_journal_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(enum_column(JournalEntryType, "journal_entry_type"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)

    reference_type = db.Column(enum_column(JournalReferenceType, "journal_reference_type"), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "reference_type": self.reference_type.value,
            "reference_id": self.reference_id,
            "ticket_id": self.ticket_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
