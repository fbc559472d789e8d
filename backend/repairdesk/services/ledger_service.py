# Overview: Append-only writer and readers for the financial journal.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..errors import ValidationError
from ..extensions import db
from ..models import JournalEntry
from ..models.enums import JournalEntryType, JournalReferenceType
"""
RepairDesk Journal Invariants (authoritative)

- Append-only: entries are never updated or deleted, corrections are new rows.
- amount_cents is a non-negative magnitude; the entry type carries direction.
- Entries are written inside the same unit of work as the Payment/Expense/
  Return/InventoryAdjustment they reference. This module flushes, the caller
  commits.
- Refund totals in metrics come from REFUND entries only.
"""


def append_journal_entry(
    *,
    entry_type: JournalEntryType,
    amount_cents: int,
    reference_type: JournalReferenceType,
    reference_id: int,
    ticket_id: int | None = None,
    description: Optional[str] = None,
    created_by: int | None = None,
    created_at: Optional[datetime] = None,
) -> JournalEntry:
    """
    Append one journal entry.

    - No domain logic here.
    - No deletes/updates of existing entries.
    - created_at defaults to now when omitted.
    """
    if amount_cents < 0:
        raise ValidationError("Journal amount must be a non-negative magnitude")

    entry = JournalEntry(
        type=entry_type,
        amount_cents=amount_cents,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        ticket_id=ticket_id,
        created_by=created_by,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_journal_entries(
    *,
    entry_type: JournalEntryType | None = None,
    ticket_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[JournalEntry]:
    q = db.session.query(JournalEntry)
    if entry_type is not None:
        q = q.filter(JournalEntry.type == entry_type)
    if ticket_id is not None:
        q = q.filter(JournalEntry.ticket_id == ticket_id)
    if start is not None:
        q = q.filter(JournalEntry.created_at >= start)
    if end is not None:
        q = q.filter(JournalEntry.created_at <= end)
    return q.order_by(JournalEntry.created_at.asc(), JournalEntry.id.asc()).all()
