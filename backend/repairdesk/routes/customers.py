# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import run_operation
from ..responses import json_body, render_result
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Request body:
    {
        "name": "Jane Doe",
        "phone": "555-0100",  (optional)
        "email": "jane@example.com"  (optional)
    }
    """
    try:
        result = run_operation(lambda: customer_service.create_customer(json_body(), g.actor))
        return render_result(result, lambda c: {"customer": c.to_dict()}, 201)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
@require_auth
def list_customers_route():
    try:
        result = run_operation(customer_service.list_customers, request.args.get("search"))
        return render_result(result, lambda rows: {"customers": [c.to_dict() for c in rows]})
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        result = run_operation(customer_service.get_customer, customer_id)
        return render_result(result, lambda c: {"customer": c.to_dict()})
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500
