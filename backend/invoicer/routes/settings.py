# backend/invoicer/routes/settings.py
from flask import Blueprint, request, jsonify, g

from ..decorators import require_tenant, require_admin
from ..services import settings_service
from ..validation import require_json_object


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_tenant
def get_settings_route():
    return jsonify({"settings": settings_service.get_settings(g.tenant_id).to_dict()}), 200


@settings_bp.patch("")
@require_tenant
@require_admin
def update_settings_route():
    """
    Update tenant settings. Admin only.

    Body: any subset of company_name, email, currency, default_tax_rate_bps,
    default_due_days, offer_validity_days, invoice_number_format,
    offer_number_format.
    """
    payload = require_json_object(request.get_json(silent=True))
    settings = settings_service.update_settings(g.tenant_id, payload)
    return jsonify({"settings": settings.to_dict()}), 200
