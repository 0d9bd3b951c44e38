# backend/steadymonitor/routes/system.py
"""
System health endpoint.

Checks the database and the session store so load balancers and the
deployment scripts can tell a running but broken instance from a healthy one.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, User, UserSession
from steadymonitor.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a couple of cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "products": product_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_store_health() -> dict:
    """
    Check the session table and report how many records are waiting for
    `flask maintenance cleanup-sessions`.
    """
    start_time = time.time()
    try:
        now = utcnow()
        active_sessions = db.session.query(UserSession).filter(
            UserSession.expires_at > now
        ).count()
        expired_sessions = db.session.query(UserSession).filter(
            UserSession.expires_at <= now
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session store health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session store error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All checks healthy
    - 503: One or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_store_health()

    healthy = all(check["status"] == "healthy" for check in (database_health, session_health))

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "session_store": session_health,
        }
    }

    return response, 200 if healthy else 503
