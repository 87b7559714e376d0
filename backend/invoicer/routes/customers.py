# backend/invoicer/routes/customers.py
from flask import Blueprint, request, jsonify, g

from ..decorators import require_tenant
from ..services import customer_service
from ..validation import require_json_object


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_tenant
def list_customers_route():
    """Query params: include_inactive=true, q=<search>."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    customers = customer_service.list_customers(
        g.tenant_id,
        include_inactive=include_inactive,
        search=request.args.get("q"),
    )
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_tenant
def create_customer_route():
    payload = require_json_object(request.get_json(silent=True))
    customer = customer_service.create_customer(g.tenant_id, payload)
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.get("/<customer_id>")
@require_tenant
def get_customer_route(customer_id: str):
    return jsonify({"customer": customer_service.get_customer(g.tenant_id, customer_id).to_dict()}), 200


@customers_bp.patch("/<customer_id>")
@require_tenant
def update_customer_route(customer_id: str):
    payload = require_json_object(request.get_json(silent=True))
    customer = customer_service.update_customer(g.tenant_id, customer_id, payload)
    return jsonify({"customer": customer.to_dict()}), 200
