# backend/tripflow/routes/system.py
"""
System health endpoint.

Reports database connectivity and the state of the memo numbering and
cascade hooks for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import FiscalCounter, Organization, Trip
from tripflow.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        organization_count = db.session.query(Organization).count()
        trip_count = db.session.query(Trip).count()
        counter_count = db.session.query(FiscalCounter).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "organizations": organization_count,
                "trips": trip_count,
                "fiscal_counters": counter_count,
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


def check_notifier_health() -> dict:
    hooks = current_app.extensions.get("trip_notifiers", [])
    if not hooks:
        # Trips still move; nobody hears about them
        return {"status": "degraded", "warning": "No trip notifiers registered", "details": {"notifiers": 0}}
    return {"status": "healthy", "details": {"notifiers": len(hooks)}}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    notifier_health = check_notifier_health()

    all_checks = [database_health, notifier_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "notifications": notifier_health,
        }
    }

    return response, http_status
