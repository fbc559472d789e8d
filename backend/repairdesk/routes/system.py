# backend/repairdesk/routes/system.py
"""
System health endpoint.

Reports database connectivity and the pieces of state an operator checks
first: pending returns and inventory drift.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..services.inventory_service import reconcile_parts
from ..services.return_service import pending_returns_count
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)}
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "error": type(e).__name__}


@system_bp.get("/health")
def health():
    database = check_database_health()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    if database["status"] == "healthy":
        body["checks"]["returns_pending"] = pending_returns_count()
        body["checks"]["inventory_drift"] = len(reconcile_parts())
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify(body), status_code
