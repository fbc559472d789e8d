"""Initial RepairDesk schema: customers, tickets, parts, payments, returns, journal

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


TICKET_STATUSES = ("RECEIVED", "IN_PROGRESS", "WAITING_FOR_PARTS", "REPAIRED", "COMPLETED", "CANCELLED", "RETURNED")


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=32)


def upgrade():
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_phone", ["phone"], unique=False)

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_number", sa.String(32), nullable=False),
        sa.Column("tracking_code", sa.String(16), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("device_type", sa.String(64), nullable=False),
        sa.Column("device_brand", sa.String(64), nullable=True),
        sa.Column("device_model", sa.String(128), nullable=True),
        sa.Column("serial_number", sa.String(128), nullable=True),
        sa.Column("issue_description", sa.Text(), nullable=False),
        sa.Column("priority", _enum("ticket_priority", "LOW", "MEDIUM", "HIGH", "URGENT"), nullable=False, server_default="MEDIUM"),
        sa.Column("status", _enum("ticket_status", *TICKET_STATUSES), nullable=False, server_default="RECEIVED"),
        sa.Column("estimated_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("final_price_cents", sa.Integer(), nullable=True),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("warranty_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ticket_number", name="uq_tickets_ticket_number"),
        sa.UniqueConstraint("tracking_code", name="uq_tickets_tracking_code"),
        sa.CheckConstraint("estimated_price_cents >= 0", name="ck_tickets_estimate_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("tickets", schema=None) as batch_op:
        batch_op.create_index("ix_tickets_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_tickets_status", ["status"], unique=False)
        batch_op.create_index("ix_tickets_status_completed", ["status", "completed_at"], unique=False)

    op.create_table(
        "ticket_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("status", _enum("history_status", *TICKET_STATUSES), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("ticket_status_history", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_history_ticket_created", ["ticket_id", "created_at"], unique=False)

    op.create_table(
        "parts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_parts_sku"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("parts", schema=None) as batch_op:
        batch_op.create_index("ix_parts_name", ["name"], unique=False)

    op.create_table(
        "ticket_parts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("part_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.ForeignKeyConstraint(["part_id"], ["parts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ticket_id", "part_id", name="uq_ticket_parts_ticket_part"),
        sa.CheckConstraint("quantity > 0", name="ck_ticket_parts_quantity_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("ticket_parts", schema=None) as batch_op:
        batch_op.create_index("ix_ticket_parts_ticket_id", ["ticket_id"], unique=False)
        batch_op.create_index("ix_ticket_parts_part_id", ["part_id"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("return_id", sa.Integer(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", _enum("payment_method", "CASH", "CARD", "MOBILE", "OTHER"), nullable=False, server_default="CASH"),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents <> 0", name="ck_payments_amount_nonzero"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("payments", schema=None) as batch_op:
        batch_op.create_index("ix_payments_ticket_created", ["ticket_id", "created_at"], unique=False)
        batch_op.create_index("ix_payments_created", ["created_at"], unique=False)
        batch_op.create_index("ix_payments_return_id", ["return_id"], unique=False)

    op.create_table(
        "returns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("status", _enum("return_status", "PENDING", "APPROVED"), nullable=False, server_default="PENDING"),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("refund_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("original_ticket_status", _enum("return_original_status", *TICKET_STATUSES), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("handled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("handled_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("refund_payment_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.ForeignKeyConstraint(["refund_payment_id"], ["payments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("refund_amount_cents >= 0", name="ck_returns_refund_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("returns", schema=None) as batch_op:
        batch_op.create_index("ix_returns_ticket_id", ["ticket_id"], unique=False)
        batch_op.create_index("ix_returns_status_created", ["status", "created_at"], unique=False)
        # At most one PENDING/APPROVED return per ticket
        batch_op.create_index(
            "uq_returns_active_ticket",
            ["ticket_id"],
            unique=True,
            sqlite_where=sa.text("status IN ('PENDING', 'APPROVED')"),
            postgresql_where=sa.text("status IN ('PENDING', 'APPROVED')"),
        )

    op.create_table(
        "inventory_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("part_id", sa.Integer(), nullable=False),
        sa.Column("qty_change", sa.Integer(), nullable=False),
        sa.Column("cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["part_id"], ["parts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("qty_change <> 0", name="ck_inventory_adjustments_nonzero"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("inventory_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_adjustments_part_id", ["part_id"], unique=False)
        batch_op.create_index("ix_inventory_adjustments_created", ["created_at"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("part_id", sa.Integer(), nullable=False),
        sa.Column("direction", _enum("inventory_direction", "IN", "OUT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column(
            "reason",
            _enum("inventory_reason", "TICKET_USAGE", "TICKET_REMOVAL", "RETURN_RESTOCK", "DAMAGE_LOSS", "ADJUSTMENT", "RECEIVE"),
            nullable=False,
        ),
        sa.Column("ticket_id", sa.Integer(), nullable=True),
        sa.Column("return_id", sa.Integer(), nullable=True),
        sa.Column("adjustment_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["part_id"], ["parts.id"]),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.ForeignKeyConstraint(["return_id"], ["returns.id"]),
        sa.ForeignKeyConstraint(["adjustment_id"], ["inventory_adjustments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_tx_quantity_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("inventory_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_tx_part_created", ["part_id", "created_at"], unique=False)
        batch_op.create_index("ix_inventory_transactions_ticket_id", ["ticket_id"], unique=False)
        batch_op.create_index("ix_inventory_transactions_return_id", ["return_id"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("ticket_id", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_created", ["created_at"], unique=False)
        batch_op.create_index("ix_expenses_ticket_id", ["ticket_id"], unique=False)

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", _enum("journal_entry_type", "PAYMENT", "REFUND", "EXPENSE", "ADJUSTMENT"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "reference_type",
            _enum("journal_reference_type", "PAYMENT", "EXPENSE", "RETURN", "INVENTORY_ADJUSTMENT"),
            nullable=False,
        ),
        sa.Column("reference_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["ticket_id"], ["tickets.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_cents >= 0", name="ck_journal_amount_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("journal_entries", schema=None) as batch_op:
        batch_op.create_index("ix_journal_type_created", ["type", "created_at"], unique=False)
        batch_op.create_index("ix_journal_reference", ["reference_type", "reference_id"], unique=False)
        batch_op.create_index("ix_journal_entries_ticket_id", ["ticket_id"], unique=False)


def downgrade():
    op.drop_table("journal_entries")
    op.drop_table("expenses")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory_adjustments")
    op.drop_table("returns")
    op.drop_table("payments")
    op.drop_table("ticket_parts")
    op.drop_table("parts")
    op.drop_table("ticket_status_history")
    op.drop_table("tickets")
    op.drop_table("customers")
