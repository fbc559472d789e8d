from .customers import Customer
from .tickets import Ticket, TicketStatusHistory, TicketPart
from .inventory import Part, InventoryTransaction, InventoryAdjustment
from .finance import Payment, Expense, JournalEntry
from .returns import Return
from .enums import (
    TicketStatus,
    TicketPriority,
    Role,
    ReturnStatus,
    PaymentMethod,
    JournalEntryType,
    JournalReferenceType,
    InventoryDirection,
    InventoryReason,
    PartCondition,
)

__all__ = [
    'Customer',
    'Ticket', 'TicketStatusHistory', 'TicketPart',
    'Part', 'InventoryTransaction', 'InventoryAdjustment',
    'Payment', 'Expense', 'JournalEntry',
    'Return',
    'TicketStatus', 'TicketPriority', 'Role', 'ReturnStatus', 'PaymentMethod',
    'JournalEntryType', 'JournalReferenceType', 'InventoryDirection', 'InventoryReason', 'PartCondition',
]
