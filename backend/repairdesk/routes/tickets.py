# Overview: Flask API routes for tickets, ticket parts and ticket payments.

"""
Ticket API Routes

DESIGN:
- Intake, lookup and listing of tickets
- Status changes go through the lifecycle rules (see lifecycle_service)
- Parts and payments are nested under the ticket they belong to
- Every mutation runs through run_operation; rejections map to 400/403/404/409

SECURITY:
- All routes require an actor (X-Actor-Id / X-Actor-Role) except public
  tracking lookups
- Role checks live in the services, so the same rules apply to CLI callers
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import current_policy
from ..decorators import require_auth
from ..errors import run_operation
from ..responses import json_body, render_result
from ..services import balance_service, inventory_service, payment_service, ticket_service


tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# INTAKE AND LOOKUP
# =============================================================================

@tickets_bp.post("")
@require_auth
def create_ticket_route():
    """
    Request body:
    {
        "customer_id": 1,
        "device_type": "Phone",
        "device_brand": "Acme",  (optional)
        "device_model": "X1",  (optional)
        "serial_number": "SN123",  (optional)
        "issue_description": "Cracked screen",
        "priority": "HIGH",  (optional, default MEDIUM)
        "estimated_price_cents": 12000,  (optional)
        "warranty_days": 30  (optional)
    }

    Returns:
        201: Ticket created with status RECEIVED
        400: Invalid input
        404: Customer not found
    """
    try:
        result = run_operation(lambda: ticket_service.create_ticket(json_body(), g.actor))
        return render_result(result, lambda t: {"ticket": t.to_dict()}, 201)
    except Exception:
        return _internal_error("Failed to create ticket")


@tickets_bp.get("")
@require_auth
def list_tickets_route():
    """
    Query params:
    - status: a ticket status or "active" (optional)
    - customer_id: int (optional)
    - include_deleted: "true" to include soft-deleted tickets (optional)
    """
    try:
        result = run_operation(
            ticket_service.list_tickets,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            include_deleted=request.args.get("include_deleted", "false").lower() == "true",
        )
        return render_result(result, lambda rows: {"tickets": [t.to_dict() for t in rows]})
    except Exception:
        return _internal_error("Failed to list tickets")


@tickets_bp.get("/<int:ticket_id>")
@require_auth
def get_ticket_route(ticket_id: int):
    try:
        result = run_operation(ticket_service.ticket_detail, ticket_id)
        return render_result(result, lambda data: {"ticket": data})
    except Exception:
        return _internal_error("Failed to get ticket")


@tickets_bp.get("/track/<code>")
def track_ticket_route(code: str):
    """Public lookup by tracking code; exposes status only, no customer data."""
    try:
        result = run_operation(ticket_service.get_ticket_by_tracking_code, code)
        return render_result(result, lambda t: {
            "ticket_number": t.ticket_number,
            "tracking_code": t.tracking_code,
            "device_type": t.device_type,
            "device_model": t.device_model,
            "status": t.status.value,
            "updated_at": t.to_dict()["updated_at"],
        })
    except Exception:
        return _internal_error("Failed to track ticket")


# =============================================================================
# STATUS, PRICE, DELETION
# =============================================================================

@tickets_bp.patch("/<int:ticket_id>/status")
@require_auth
def change_status_route(ticket_id: int):
    """
    Request body:
    {
        "status": "IN_PROGRESS",
        "note": "Started diagnostics",  (optional)
        "override": false  (optional, ADMIN only; bypasses the payment guard)
    }

    Returns:
        200: Updated ticket
        400: Illegal transition or payment outstanding (see "code")
        403: Role not allowed to make this transition
        404: Ticket not found
    """
    try:
        def _op():
            data = json_body()
            return ticket_service.change_status(
                ticket_id,
                data.get("status"),
                g.actor,
                note=data.get("note"),
                override=data.get("override") is True,
            )

        result = run_operation(_op)
        return render_result(result, lambda t: {"ticket": t.to_dict()})
    except Exception:
        return _internal_error("Failed to change ticket status")


@tickets_bp.get("/<int:ticket_id>/transitions")
@require_auth
def transitions_route(ticket_id: int):
    try:
        result = run_operation(ticket_service.transitions_for_actor, ticket_id, g.actor)
        return render_result(result, lambda targets: {"ticket_id": ticket_id, "allowed": targets})
    except Exception:
        return _internal_error("Failed to list transitions")


@tickets_bp.patch("/<int:ticket_id>/price")
@require_auth
def update_price_route(ticket_id: int):
    """Request body: {"final_price_cents": 9000, "reason": "Extra part needed"}"""
    try:
        def _op():
            data = json_body()
            return ticket_service.update_final_price(
                ticket_id, data.get("final_price_cents"), data.get("reason"), g.actor
            )

        result = run_operation(_op)
        return render_result(result, lambda t: {"ticket": t.to_dict()})
    except Exception:
        return _internal_error("Failed to update ticket price")


@tickets_bp.delete("/<int:ticket_id>")
@require_auth
def delete_ticket_route(ticket_id: int):
    try:
        result = run_operation(ticket_service.soft_delete_ticket, ticket_id, g.actor)
        return render_result(result, lambda t: {"ticket": t.to_dict()})
    except Exception:
        return _internal_error("Failed to delete ticket")


# =============================================================================
# PARTS
# =============================================================================

@tickets_bp.post("/<int:ticket_id>/parts")
@require_auth
def add_part_route(ticket_id: int):
    """Request body: {"part_id": 3, "quantity": 2}"""
    try:
        def _op():
            data = json_body()
            return inventory_service.add_part_to_ticket(
                ticket_id, data.get("part_id"), data.get("quantity"), g.actor, current_policy()
            )

        result = run_operation(_op)
        return render_result(result, lambda line: {"ticket_part": line.to_dict()}, 201)
    except Exception:
        return _internal_error("Failed to add part to ticket")


@tickets_bp.delete("/<int:ticket_id>/parts/<int:ticket_part_id>")
@require_auth
def remove_part_route(ticket_id: int, ticket_part_id: int):
    """Query param quantity (optional): remove only that many units."""
    try:
        result = run_operation(
            inventory_service.remove_part_from_ticket,
            ticket_id,
            ticket_part_id,
            g.actor,
            quantity=request.args.get("quantity"),
        )
        return render_result(result, lambda line: {
            "removed": line is None,
            "ticket_part": line.to_dict() if line is not None else None,
        })
    except Exception:
        return _internal_error("Failed to remove part from ticket")


# =============================================================================
# PAYMENTS AND BALANCE
# =============================================================================

@tickets_bp.post("/<int:ticket_id>/payments")
@require_auth
def record_payment_route(ticket_id: int):
    """
    Request body:
    {
        "amount_cents": 6000,
        "method": "CASH",  (optional, default CASH)
        "reference": "R-1",  (optional)
        "reason": "Deposit"  (optional)
    }
    """
    try:
        def _op():
            data = json_body()
            payment = payment_service.record_payment(
                ticket_id,
                data.get("amount_cents"),
                data.get("method"),
                g.actor,
                reference=data.get("reference"),
                reason=data.get("reason"),
            )
            return payment, balance_service.get_ticket_balance(ticket_id)

        result = run_operation(_op)
        return render_result(result, lambda pair: {
            "payment": pair[0].to_dict(),
            "balance": pair[1].to_dict(),
        }, 201)
    except Exception:
        return _internal_error("Failed to record payment")


@tickets_bp.get("/<int:ticket_id>/payments")
@require_auth
def list_payments_route(ticket_id: int):
    """Payments and refunds on a ticket, oldest first."""
    try:
        def _op():
            ticket_service.get_ticket(ticket_id)
            return payment_service.list_ticket_payments(ticket_id)

        result = run_operation(_op)
        return render_result(result, lambda rows: {"payments": [p.to_dict() for p in rows]})
    except Exception:
        return _internal_error("Failed to list payments")


@tickets_bp.get("/<int:ticket_id>/balance")
@require_auth
def balance_route(ticket_id: int):
    try:
        result = run_operation(balance_service.get_ticket_balance, ticket_id)
        return render_result(result, lambda b: {"ticket_id": ticket_id, "balance": b.to_dict()})
    except Exception:
        return _internal_error("Failed to get ticket balance")
