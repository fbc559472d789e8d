# Overview: Journal-based financial metrics over arbitrary and named periods.

"""
RepairDesk Financial Metrics (authoritative)

Definitions, all over created_at within [start, end] inclusive:
- revenue        = SUM(Payment.amount_cents) where amount_cents > 0
- refunds        = SUM(JournalEntry.amount_cents) where type = REFUND
- expenses       = SUM(Expense.amount_cents) where deleted_at IS NULL
- inventory_loss = SUM(InventoryAdjustment.cost_cents) where qty_change < 0
- gross_profit   = revenue - refunds
- net_profit     = gross_profit - expenses - inventory_loss
- gross_margin   = 0 if revenue == 0 else gross_profit / revenue * 100 (2 dp)

Refunds are read from the journal only. Negative payments are the
operational record of the same money and are never summed here.

Period semantics:
- daily:   today 00:00:00 -> 23:59:59.999999
- weekly:  rolling; start of the day 7 days ago -> now
- monthly: first day of the month 00:00 -> now
- yearly:  January 1st 00:00 -> now
Previous periods: daily = the day before; monthly/yearly = same calendar
offset one month/year earlier ending 1 microsecond before start; weekly and
custom = a window of equal length ending 1 microsecond before start.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    Expense,
    InventoryAdjustment,
    InventoryTransaction,
    JournalEntry,
    Payment,
    Ticket,
)
from ..models.enums import InventoryDirection, InventoryReason, JournalEntryType, TicketStatus
from ..time_utils import end_of_day, parse_iso_datetime, start_of_day, to_utc_z, utcnow
from .return_service import pending_returns_count


PERIODS = ("daily", "weekly", "monthly", "yearly", "custom")
ONE_MICROSECOND = timedelta(microseconds=1)


def _sum(query) -> int:
    return int(query.scalar() or 0)


def _in_range(column, start: datetime, end: datetime):
    return column.between(start, end)


def parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    """Parse ISO bounds. A bare end date covers that whole day."""
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_dt is None or end_dt is None:
        raise ValidationError("start and end are required")
    if end and len(end.strip()) == 10:
        end_dt = end_of_day(end_dt)
    if end_dt < start_dt:
        raise ValidationError("end must not be before start")
    return start_dt, end_dt


def _validate_period(period: str) -> str:
    period = (period or "").strip().lower()
    if period not in PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")
    return period


# =============================================================================
# Period math
# =============================================================================

def create_date_range(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    period = _validate_period(period)
    now = now or utcnow()
    if period == "daily":
        return start_of_day(now), end_of_day(now)
    if period == "weekly":
        return start_of_day(now - timedelta(days=7)), now
    if period == "monthly":
        return start_of_day(now.replace(day=1)), now
    if period == "yearly":
        return start_of_day(now.replace(month=1, day=1)), now
    raise ValidationError("custom periods need explicit start and end")


def previous_period_range(start: datetime, end: datetime, period: str) -> tuple[datetime, datetime]:
    period = _validate_period(period)
    if period == "daily":
        prev_start = start - timedelta(days=1)
        return prev_start, end_of_day(prev_start)
    if period == "monthly":
        return start + relativedelta(months=-1), start - ONE_MICROSECOND
    if period == "yearly":
        return start + relativedelta(years=-1), start - ONE_MICROSECOND
    length = end - start
    prev_end = start - ONE_MICROSECOND
    return prev_end - length, prev_end


# =============================================================================
# Metrics
# =============================================================================

def get_financial_metrics(start: datetime, end: datetime) -> dict:
    revenue = _sum(
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0)).filter(
            Payment.amount_cents > 0,
            _in_range(Payment.created_at, start, end),
        )
    )
    refunds = _sum(
        db.session.query(func.coalesce(func.sum(JournalEntry.amount_cents), 0)).filter(
            JournalEntry.type == JournalEntryType.REFUND,
            _in_range(JournalEntry.created_at, start, end),
        )
    )
    expenses = _sum(
        db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
            Expense.deleted_at.is_(None),
            _in_range(Expense.created_at, start, end),
        )
    )
    inventory_loss = _sum(
        db.session.query(func.coalesce(func.sum(func.abs(InventoryAdjustment.cost_cents)), 0)).filter(
            InventoryAdjustment.qty_change < 0,
            _in_range(InventoryAdjustment.created_at, start, end),
        )
    )
    ticket_count = _sum(
        db.session.query(func.count(Ticket.id)).filter(
            Ticket.deleted_at.is_(None),
            Ticket.status == TicketStatus.COMPLETED,
            _in_range(Ticket.completed_at, start, end),
        )
    )
    parts_used = _sum(
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0)).filter(
            InventoryTransaction.direction == InventoryDirection.OUT,
            InventoryTransaction.reason == InventoryReason.TICKET_USAGE,
            _in_range(InventoryTransaction.created_at, start, end),
        )
    )

    gross_profit = revenue - refunds
    net_profit = gross_profit - expenses - inventory_loss
    gross_margin = 0.0 if revenue == 0 else round(gross_profit / revenue * 100, 2)

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "revenue_cents": revenue,
        "refunds_cents": refunds,
        "expenses_cents": expenses,
        "inventory_loss_cents": inventory_loss,
        "gross_profit_cents": gross_profit,
        "net_profit_cents": net_profit,
        "gross_margin": gross_margin,
        "ticket_count": ticket_count,
        "parts_used": parts_used,
    }


def percent_change(current: int, previous: int) -> int:
    """Whole-percent change; half rounds up like the dashboard does."""
    if previous == 0:
        return 100 if current > 0 else 0
    return int(math.floor((current - previous) / abs(previous) * 100 + 0.5))


def get_financial_metrics_with_comparison(start: datetime, end: datetime, period: str) -> dict:
    metrics = get_financial_metrics(start, end)
    prev_start, prev_end = previous_period_range(start, end, period)
    previous = get_financial_metrics(prev_start, prev_end)

    metrics.update({
        "period": _validate_period(period),
        "previous_start": to_utc_z(prev_start),
        "previous_end": to_utc_z(prev_end),
        "previous_revenue_cents": previous["revenue_cents"],
        "previous_net_profit_cents": previous["net_profit_cents"],
        "revenue_change": percent_change(metrics["revenue_cents"], previous["revenue_cents"]),
        "profit_change": percent_change(metrics["net_profit_cents"], previous["net_profit_cents"]),
    })
    return metrics


def metrics_for_period(period: str, *, compare: bool = False, now: datetime | None = None) -> dict:
    start, end = create_date_range(period, now)
    if compare:
        return get_financial_metrics_with_comparison(start, end, period)
    data = get_financial_metrics(start, end)
    data["period"] = period
    return data


def revenue_trend(start: datetime, end: datetime) -> list[dict]:
    """Positive payments bucketed per calendar day (UTC)."""
    day = func.date(Payment.created_at)
    rows = (
        db.session.query(day.label("day"), func.sum(Payment.amount_cents).label("revenue"))
        .filter(Payment.amount_cents > 0, _in_range(Payment.created_at, start, end))
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [{"date": str(row.day), "revenue_cents": int(row.revenue or 0)} for row in rows]


def finance_summary(start: datetime, end: datetime) -> dict:
    data = get_financial_metrics(start, end)
    data["returns_pending"] = pending_returns_count()
    return data
