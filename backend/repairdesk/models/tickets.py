from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import TicketPriority, TicketStatus, enum_column


class Ticket(db.Model):
    """
    Repair work order.

    STATUS: driven only through the lifecycle state machine
    (services/lifecycle_service.py) or the returns workflow. The column carries
    a CHECK constraint so an unknown status cannot be persisted.

    PRICING: final_price_cents is nullable; the effective price falls back to
    estimated_price_cents. Balances are always derived from payments, the
    `paid` flag is a convenience marker set when the balance reaches zero.

    DELETION: soft delete only (deleted_at). Tickets referenced by payments or
    returns are never hard-deleted.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.UniqueConstraint("ticket_number", name="uq_tickets_ticket_number"),
        db.UniqueConstraint("tracking_code", name="uq_tickets_tracking_code"),
        db.Index("ix_tickets_status_completed", "status", "completed_at"),
        db.CheckConstraint("estimated_price_cents >= 0", name="ck_tickets_estimate_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "T-000123") and public tracking code
    ticket_number = db.Column(db.String(32), nullable=False)
    tracking_code = db.Column(db.String(16), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Device intake fields
    device_type = db.Column(db.String(64), nullable=False)
    device_brand = db.Column(db.String(64), nullable=True)
    device_model = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)
    issue_description = db.Column(db.Text, nullable=False)

    priority = db.Column(enum_column(TicketPriority, "ticket_priority"), nullable=False, default=TicketPriority.MEDIUM)
    status = db.Column(enum_column(TicketStatus, "ticket_status"), nullable=False, default=TicketStatus.RECEIVED, index=True)

    estimated_price_cents = db.Column(db.Integer, nullable=False, default=0)
    final_price_cents = db.Column(db.Integer, nullable=True)
    paid = db.Column(db.Boolean, nullable=False, default=False)

    warranty_days = db.Column(db.Integer, nullable=False, default=0)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("tickets", lazy=True))
    status_history = db.relationship(
        "TicketStatusHistory",
        back_populates="ticket",
        order_by="TicketStatusHistory.id",
        lazy=True,
    )
    parts = db.relationship("TicketPart", back_populates="ticket", order_by="TicketPart.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def effective_price_cents(self) -> int:
        if self.final_price_cents is not None:
            return self.final_price_cents
        return self.estimated_price_cents or 0

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} number={self.ticket_number!r} status={self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "tracking_code": self.tracking_code,
            "customer_id": self.customer_id,
            "device_type": self.device_type,
            "device_brand": self.device_brand,
            "device_model": self.device_model,
            "serial_number": self.serial_number,
            "issue_description": self.issue_description,
            "priority": self.priority.value,
            "status": self.status.value,
            "estimated_price_cents": self.estimated_price_cents,
            "final_price_cents": self.final_price_cents,
            "effective_price_cents": self.effective_price_cents,
            "paid": self.paid,
            "warranty_days": self.warranty_days,
            "completed_at": to_utc_z(self.completed_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TicketStatusHistory(db.Model):
    """
    Append-only status trail. One row per accepted transition (and per
    informational note such as payments or pending return requests).
    Rows are never edited or deleted.
    """
    __tablename__ = "ticket_status_history"
    __table_args__ = (
        db.Index("ix_ticket_history_ticket_created", "ticket_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False)
    status = db.Column(enum_column(TicketStatus, "history_status"), nullable=False)
    note = db.Column(db.Text, nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = db.relationship("Ticket", back_populates="status_history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "status": self.status.value,
            "note": self.note,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class TicketPart(db.Model):
    """Part consumed by a ticket. One line per (ticket, part); re-adding increments quantity."""
    __tablename__ = "ticket_parts"
    __table_args__ = (
        db.UniqueConstraint("ticket_id", "part_id", name="uq_ticket_parts_ticket_part"),
        db.CheckConstraint("quantity > 0", name="ck_ticket_parts_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=False, index=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    ticket = db.relationship("Ticket", back_populates="parts")
    part = db.relationship("Part")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "part_id": self.part_id,
            "quantity": self.quantity,
            "part": {
                "id": self.part.id,
                "sku": self.part.sku,
                "name": self.part.name,
                "unit_price_cents": self.part.unit_price_cents,
            } if self.part else None,
            "created_at": to_utc_z(self.created_at),
        }
