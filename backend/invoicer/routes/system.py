# backend/invoicer/routes/system.py
"""
System health and version endpoints.

Unauthenticated; used by load balancers and deployment checks.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Tenant, Document
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity with two cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        document_count = db.session.query(Document).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "tenants": tenant_count,
                "documents": document_count,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_remote_configuration() -> dict:
    cfg = current_app.config
    missing = [
        key for key in ("IDENTITY_SERVICE_URL", "EXPORT_SERVICE_URL", "EMAIL_SERVICE_URL")
        if not cfg.get(key)
    ]
    if missing:
        return {"status": "degraded", "warning": f"Not configured: {', '.join(missing)}"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Health check.

    Returns:
    - 200: healthy or degraded (a remote service is not configured)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    remote_health = check_remote_configuration()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif remote_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "remote_services": remote_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "0.1.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
