"""
Closed vocabularies shared by models and services.

Every enum subclasses str so members compare equal to their wire value and
serialize as plain strings.
"""

from __future__ import annotations

import enum

from ..extensions import db


class TicketStatus(str, enum.Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    WAITING_FOR_PARTS = "WAITING_FOR_PARTS"
    REPAIRED = "REPAIRED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class TicketPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    TECHNICIAN = "TECHNICIAN"


class ReturnStatus(str, enum.Enum):
    # No REJECTED: rejection is decided outside this write path.
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE = "MOBILE"
    OTHER = "OTHER"


class JournalEntryType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"
    EXPENSE = "EXPENSE"
    ADJUSTMENT = "ADJUSTMENT"


class JournalReferenceType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    EXPENSE = "EXPENSE"
    RETURN = "RETURN"
    INVENTORY_ADJUSTMENT = "INVENTORY_ADJUSTMENT"


class InventoryDirection(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class InventoryReason(str, enum.Enum):
    TICKET_USAGE = "TICKET_USAGE"
    TICKET_REMOVAL = "TICKET_REMOVAL"
    RETURN_RESTOCK = "RETURN_RESTOCK"
    DAMAGE_LOSS = "DAMAGE_LOSS"
    ADJUSTMENT = "ADJUSTMENT"
    RECEIVE = "RECEIVE"


class PartCondition(str, enum.Enum):
    """State of a returned part; only GOOD parts go back on the shelf."""
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"


ACTIVE_RETURN_STATUSES = (ReturnStatus.PENDING, ReturnStatus.APPROVED)
TERMINAL_TICKET_STATUSES = frozenset({TicketStatus.CANCELLED, TicketStatus.RETURNED})


def enum_column(enum_cls: type[enum.Enum], name: str):
    """
    Non-native SQLAlchemy Enum with a CHECK constraint, so an out-of-set value
    is rejected by the database as well as by Python.
    """
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=32,
    )
