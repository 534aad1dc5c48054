# backend/stockroom/routes/system.py
"""
System health endpoint.

Reports database reachability and whether outbound email is configured.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryRecord, Location, Product, User
from ..services.email_service import EmailService
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "locations": db.session.query(Location).count(),
            "products": db.session.query(Product).count(),
            "inventory_records": db.session.query(InventoryRecord).count(),
            "users": db.session.query(User).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_mail_health() -> dict:
    # Alerts still land as Notification rows without mail, so this only degrades
    if EmailService.is_configured():
        return {"status": "healthy"}
    return {"status": "degraded", "warning": "Outbound email is not configured"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: Healthy or degraded
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    mail_health = check_mail_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif mail_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "mail": mail_health,
        }
    }

    return response, http_status
