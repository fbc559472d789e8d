# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- Returns reference the ticket they undo
- Creation honours the policy snapshot (window, approval, partial refunds)
- Admin approval applies status, restock and refund in one unit of work

SECURITY:
- Creating returns: ADMIN or STAFF
- Approving returns: ADMIN
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import current_policy
from ..decorators import require_auth
from ..errors import run_operation
from ..responses import json_body, render_result
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Request body:
    {
        "ticket_id": 12,
        "reason": "Screen flickers again",
        "refund_amount_cents": 5000
    }

    Returns:
        201: Return created (PENDING, or APPROVED when approval is not required)
        400: Invalid input, window expired or partial refund disallowed
        403: Role not allowed
        404: Ticket not found
        409: An active return already exists
    """
    try:
        def _op():
            data = json_body()
            return return_service.create_return(
                data.get("ticket_id"),
                data.get("reason"),
                data.get("refund_amount_cents", 0),
                g.actor,
                current_policy(),
            )

        result = run_operation(_op)
        return render_result(result, lambda r: {"return": r.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_auth
def list_returns_route():
    """Query params: status (PENDING/APPROVED), ticket_id."""
    try:
        result = run_operation(
            return_service.list_returns,
            status=request.args.get("status"),
            ticket_id=request.args.get("ticket_id", type=int),
        )
        return render_result(result, lambda rows: {"returns": [r.to_dict() for r in rows]})
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/validate")
@require_auth
def validate_return_route():
    """Eligibility dry run for ?ticket_id=; nothing is written."""
    ticket_id = request.args.get("ticket_id", type=int)
    if ticket_id is None:
        return jsonify({"error": "ticket_id is required", "kind": "VALIDATION"}), 400
    try:
        result = run_operation(return_service.validate_return_eligibility, ticket_id, current_policy())
        if not result.ok:
            body = result.error_body()
            body["eligible"] = False
            return jsonify(body), result.http_status
        return render_result(result)
    except Exception:
        current_app.logger.exception("Failed to validate return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        result = run_operation(return_service.get_return, return_id)
        return render_result(result, lambda r: {"return": r.to_dict()})
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/approve")
@require_auth
def approve_return_route(return_id: int):
    """
    Request body (optional):
    {
        "refund_method": "CASH",
        "notes": "Refunded at counter",
        "refund_amount_cents": 4000,
        "part_conditions": {"7": "GOOD", "8": "DAMAGED"}
    }

    refund_amount_cents overrides the requested refund downwards.
    part_conditions is keyed by ticket part line id; missing lines are GOOD.
    """
    try:
        def _op():
            data = json_body()
            return return_service.approve_return(
                return_id,
                g.actor,
                current_policy(),
                refund_method=data.get("refund_method"),
                notes=data.get("notes"),
                refund_amount_cents=data.get("refund_amount_cents"),
                part_conditions=data.get("part_conditions"),
            )

        result = run_operation(_op)
        return render_result(result, lambda r: {"return": r.to_dict()})
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500
