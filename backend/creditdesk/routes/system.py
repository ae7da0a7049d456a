# backend/creditdesk/routes/system.py
"""
System health and system log endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify, request
from ..extensions import db
from ..models import TechnicalService, Product
from ..services import system_log_service
from ..decorators import require_operator
from creditdesk.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        service_count = db.session.query(TechnicalService).count()
        product_count = db.session.query(Product).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "technical_services": service_count,
                "products": product_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    system_log = system_log_service.writer.stats()

    status = "OK" if database["status"] == "healthy" else "DEGRADED"
    code = 200 if status == "OK" else 503
    return jsonify({
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "system_log": system_log,
    }), code


@system_bp.get("/api/system-logs")
@require_operator
def list_system_logs_route():
    """
    System log viewer feed, newest first.

    Query params:
    - entity_type, entity_id, action: optional filters
    - limit: 1..500 (default 100)
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    rows = system_log_service.list_system_logs(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        action=request.args.get("action"),
        limit=limit,
    )
    return jsonify({"items": [r.to_dict() for r in rows], "limit": limit}), 200
