from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import InventoryDirection, InventoryReason, enum_column


class Part(db.Model):
    """
    Stocked spare part.

    QUANTITY: `quantity` is a cached running balance. The authoritative value
    is the sum of signed InventoryTransaction deltas for the part; every
    service that moves stock updates both in the same unit of work.
    """
    __tablename__ = "parts"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_parts_sku"),
        db.Index("ix_parts_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Part id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "unit_price_cents": self.unit_price_cents,
            "is_low_stock": self.is_low_stock,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement.

    quantity is always positive; the direction carries the sign. Rows are
    never updated or deleted, corrections are new rows.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_tx_quantity_positive"),
        db.Index("ix_inventory_tx_part_created", "part_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False)
    direction = db.Column(enum_column(InventoryDirection, "inventory_direction"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(enum_column(InventoryReason, "inventory_reason"), nullable=False)

    ticket_id = db.Column(db.Integer, db.ForeignKey("tickets.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("inventory_adjustments.id"), nullable=True)

    note = db.Column(db.Text, nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    part = db.relationship("Part", backref=db.backref("transactions", lazy=True))

    @property
    def delta(self) -> int:
        return self.quantity if self.direction == InventoryDirection.IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_id": self.part_id,
            "direction": self.direction.value,
            "quantity": self.quantity,
            "delta": self.delta,
            "reason": self.reason.value,
            "ticket_id": self.ticket_id,
            "return_id": self.return_id,
            "adjustment_id": self.adjustment_id,
            "note": self.note,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryAdjustment(db.Model):
    """Manual stock correction (damage, loss, count correction)."""
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.CheckConstraint("qty_change <> 0", name="ck_inventory_adjustments_nonzero"),
        db.Index("ix_inventory_adjustments_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)
    qty_change = db.Column(db.Integer, nullable=False)
    # Always |qty_change| x unit price at the time of the adjustment
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    reason = db.Column(db.Text, nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    part = db.relationship("Part")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_id": self.part_id,
            "qty_change": self.qty_change,
            "cost_cents": self.cost_cents,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
