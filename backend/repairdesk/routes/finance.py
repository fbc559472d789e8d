# Overview: Flask API routes for cash operations, expenses and financial metrics.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import ValidationError, run_operation
from ..models import JournalEntryType
from ..responses import json_body, render_result
from ..services import expense_service, finance_service, ledger_service, payment_service
from ..validation import coerce_enum


finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _resolve_range():
    """
    Either ?period=daily|weekly|monthly|yearly or ?start=&end= (period=custom).
    Returns (start, end, period).
    """
    period = (request.args.get("period") or "").strip().lower()
    start = request.args.get("start")
    end = request.args.get("end")
    if start or end:
        start_dt, end_dt = finance_service.parse_range(start, end)
        return start_dt, end_dt, "custom"
    if not period:
        raise ValidationError("Provide a period or a start and end date")
    start_dt, end_dt = finance_service.create_date_range(period)
    return start_dt, end_dt, period


# =============================================================================
# CASH OPERATIONS
# =============================================================================

@finance_bp.post("/cash-payments")
@require_auth
def cash_payment_route():
    """Request body: {"ticket_id": 1, "amount_cents": 5000, "notes": "...", "receipt_number": "..."}"""
    try:
        def _op():
            data = json_body()
            return payment_service.record_cash_payment(
                data.get("ticket_id"),
                data.get("amount_cents"),
                g.actor,
                notes=data.get("notes"),
                receipt_number=data.get("receipt_number"),
            )

        result = run_operation(_op)
        return render_result(result, lambda p: {"payment": p.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to record cash payment")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.post("/cash-refunds")
@require_auth
def cash_refund_route():
    """Request body: {"return_id": 1, "amount_cents": 5000, "notes": "...", "receipt_number": "..."}"""
    try:
        def _op():
            data = json_body()
            return payment_service.record_cash_refund(
                data.get("return_id"),
                data.get("amount_cents"),
                g.actor,
                notes=data.get("notes"),
                receipt_number=data.get("receipt_number"),
            )

        result = run_operation(_op)
        return render_result(result, lambda p: {"payment": p.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to record cash refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# EXPENSES
# =============================================================================

@finance_bp.post("/expenses")
@require_auth
def create_expense_route():
    """Request body: {"amount_cents": 2500, "category": "Rent", "description": "...", "ticket_id": null}"""
    try:
        def _op():
            data = json_body()
            return expense_service.create_expense(
                amount_cents=data.get("amount_cents"),
                category=data.get("category"),
                actor=g.actor,
                description=data.get("description"),
                ticket_id=data.get("ticket_id"),
            )

        result = run_operation(_op)
        return render_result(result, lambda e: {"expense": e.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/expenses")
@require_auth
def list_expenses_route():
    try:
        def _op():
            start = end = None
            if request.args.get("start") or request.args.get("end"):
                start, end = finance_service.parse_range(request.args.get("start"), request.args.get("end"))
            return expense_service.list_expenses(start=start, end=end, category=request.args.get("category"))

        result = run_operation(_op)
        return render_result(result, lambda rows: {"expenses": [e.to_dict() for e in rows]})
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.delete("/expenses/<int:expense_id>")
@require_auth
def delete_expense_route(expense_id: int):
    try:
        result = run_operation(expense_service.delete_expense, expense_id, g.actor)
        return render_result(result, lambda e: {"expense": e.to_dict()})
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# METRICS
# =============================================================================

@finance_bp.get("/metrics")
@require_auth
def metrics_route():
    """
    Query params:
    - period: daily | weekly | monthly | yearly
    - start, end: ISO-8601 (custom range; overrides period)
    - include_comparison: "true" to add previous-period figures
    """
    try:
        def _op():
            start, end, period = _resolve_range()
            if request.args.get("include_comparison", "false").lower() == "true":
                return finance_service.get_financial_metrics_with_comparison(start, end, period)
            data = finance_service.get_financial_metrics(start, end)
            data["period"] = period
            return data

        result = run_operation(_op)
        return render_result(result, lambda m: {"metrics": m})
    except Exception:
        current_app.logger.exception("Failed to compute financial metrics")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/summary")
@require_auth
def summary_route():
    try:
        def _op():
            start, end, _period = _resolve_range()
            return finance_service.finance_summary(start, end)

        result = run_operation(_op)
        return render_result(result, lambda s: {"summary": s})
    except Exception:
        current_app.logger.exception("Failed to compute finance summary")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/revenue-trend")
@require_auth
def revenue_trend_route():
    try:
        def _op():
            start, end, _period = _resolve_range()
            return finance_service.revenue_trend(start, end)

        result = run_operation(_op)
        return render_result(result, lambda rows: {"trend": rows})
    except Exception:
        current_app.logger.exception("Failed to compute revenue trend")
        return jsonify({"error": "Internal server error"}), 500


@finance_bp.get("/journal")
@require_auth
def journal_route():
    """
    Query params (all optional):
    - type: PAYMENT | REFUND | EXPENSE | ADJUSTMENT
    - ticket_id: int
    - start, end: ISO-8601
    """
    try:
        def _op():
            start = end = None
            if request.args.get("start") or request.args.get("end"):
                start, end = finance_service.parse_range(request.args.get("start"), request.args.get("end"))
            entry_type = request.args.get("type")
            return ledger_service.list_journal_entries(
                entry_type=coerce_enum(JournalEntryType, entry_type, "type") if entry_type else None,
                ticket_id=request.args.get("ticket_id", type=int),
                start=start,
                end=end,
            )

        result = run_operation(_op)
        return render_result(result, lambda rows: {"entries": [e.to_dict() for e in rows]})
    except Exception:
        current_app.logger.exception("Failed to list journal entries")
        return jsonify({"error": "Internal server error"}), 500
