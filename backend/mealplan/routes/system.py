# backend/mealplan/routes/system.py
"""
System health endpoint.

Reports database connectivity and the billing calendar configuration so a
deployment (or the external scheduler) can confirm the service is ready.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Subscription, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        subscription_count = db.session.query(Subscription).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "subscriptions": subscription_count,
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


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
        "billing": {
            "renewal_anchor_weekday": current_app.config["RENEWAL_ANCHOR_WEEKDAY"],
            "currency": current_app.config["CURRENCY"],
        },
    }), 200 if healthy else 503
