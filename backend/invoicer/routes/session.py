# backend/invoicer/routes/session.py
"""
Session endpoint: who am I and which tenant am I working in.

The first call for a new principal provisions its tenant.
"""

from flask import Blueprint, jsonify, g

from ..decorators import require_tenant
from ..services import settings_service


session_bp = Blueprint("session", __name__, url_prefix="/api/session")


@session_bp.get("")
@require_tenant
def get_session_route():
    """
    Response:
        {
            "principal": {"id": ..., "email": ...},
            "tenant": {...},
            "membership": {...},
            "settings": {...}
        }
    """
    return jsonify({
        "principal": {"id": g.principal.id, "email": g.principal.email},
        "tenant": g.tenant.to_dict(),
        "membership": g.membership.to_dict(),
        "settings": settings_service.get_settings(g.tenant_id).to_dict(),
    }), 200
