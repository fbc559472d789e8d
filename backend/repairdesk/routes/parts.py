# Overview: Flask API routes for parts stock; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..context import current_policy
from ..decorators import require_auth
from ..errors import run_operation
from ..responses import json_body, render_result
from ..services import inventory_service


parts_bp = Blueprint("parts", __name__, url_prefix="/api/parts")


@parts_bp.post("")
@require_auth
def create_part_route():
    """
    Request body:
    {
        "sku": "SCR-IP12",
        "name": "Screen assembly",
        "quantity": 5,  (optional opening stock)
        "reorder_level": 2,  (optional)
        "unit_price_cents": 4500,  (optional)
        "description": "..."  (optional)
    }
    """
    try:
        def _op():
            data = json_body()
            return inventory_service.create_part(
                sku=data.get("sku"),
                name=data.get("name"),
                actor=g.actor,
                quantity=data.get("quantity", 0),
                reorder_level=data.get("reorder_level", 0),
                unit_price_cents=data.get("unit_price_cents", 0),
                description=data.get("description"),
            )

        result = run_operation(_op)
        return render_result(result, lambda p: {"part": p.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to create part")
        return jsonify({"error": "Internal server error"}), 500


@parts_bp.get("")
@require_auth
def list_parts_route():
    """Query params: search, low_stock=true."""
    try:
        result = run_operation(
            inventory_service.list_parts,
            search=request.args.get("search"),
            low_stock_only=request.args.get("low_stock", "false").lower() == "true",
        )
        return render_result(result, lambda rows: {"parts": [p.to_dict() for p in rows]})
    except Exception:
        current_app.logger.exception("Failed to list parts")
        return jsonify({"error": "Internal server error"}), 500


@parts_bp.get("/<int:part_id>")
@require_auth
def get_part_route(part_id: int):
    try:
        result = run_operation(inventory_service.get_part, part_id)
        return render_result(result, lambda p: {"part": p.to_dict()})
    except Exception:
        current_app.logger.exception("Failed to get part")
        return jsonify({"error": "Internal server error"}), 500


@parts_bp.post("/<int:part_id>/adjust")
@require_auth
def adjust_part_route(part_id: int):
    """Request body: {"qty_change": -2, "reason": "Damaged in storage"}"""
    try:
        def _op():
            data = json_body()
            return inventory_service.adjust_part_stock(
                part_id, data.get("qty_change"), data.get("reason"), g.actor, current_policy()
            )

        result = run_operation(_op)
        return render_result(result, lambda a: {"adjustment": a.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to adjust part stock")
        return jsonify({"error": "Internal server error"}), 500


@parts_bp.post("/<int:part_id>/receive")
@require_auth
def receive_part_route(part_id: int):
    """Request body: {"quantity": 10, "note": "PO 4411"}"""
    try:
        def _op():
            data = json_body()
            return inventory_service.receive_part_stock(part_id, data.get("quantity"), g.actor, data.get("note"))

        result = run_operation(_op)
        return render_result(result, lambda tx: {"transaction": tx.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to receive part stock")
        return jsonify({"error": "Internal server error"}), 500


@parts_bp.get("/<int:part_id>/transactions")
@require_auth
def part_transactions_route(part_id: int):
    try:
        def _op():
            rows = inventory_service.get_part_transactions(part_id)
            return rows, inventory_service.ledger_quantity(part_id)

        result = run_operation(_op)
        return render_result(result, lambda pair: {
            "part_id": part_id,
            "ledger_quantity": pair[1],
            "transactions": [tx.to_dict() for tx in pair[0]],
        })
    except Exception:
        current_app.logger.exception("Failed to list part transactions")
        return jsonify({"error": "Internal server error"}), 500
