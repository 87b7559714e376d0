# backend/invoicer/routes/products.py
from flask import Blueprint, request, jsonify, g

from ..decorators import require_tenant
from ..models import Product
from ..services import catalog_service, duplication_service
from ..validation import require_json_object


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_dict(product: Product) -> dict:
    data = product.to_dict()
    data["is_duplicate"] = duplication_service.is_product_duplicate(product)
    return data


@products_bp.get("")
@require_tenant
def list_products_route():
    """Query params: include_inactive=true, category=<name>."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = catalog_service.list_products(
        g.tenant_id,
        include_inactive=include_inactive,
        category=request.args.get("category"),
    )
    return jsonify({"products": [_product_dict(p) for p in products]}), 200


@products_bp.post("")
@require_tenant
def create_product_route():
    payload = require_json_object(request.get_json(silent=True))
    product = catalog_service.create_product(g.tenant_id, payload)
    return jsonify({"product": _product_dict(product)}), 201


@products_bp.get("/<product_id>")
@require_tenant
def get_product_route(product_id: str):
    return jsonify({"product": _product_dict(catalog_service.get_product(g.tenant_id, product_id))}), 200


@products_bp.patch("/<product_id>")
@require_tenant
def update_product_route(product_id: str):
    payload = require_json_object(request.get_json(silent=True))
    product = catalog_service.update_product(g.tenant_id, product_id, payload)
    return jsonify({"product": _product_dict(product)}), 200


@products_bp.post("/<product_id>/duplicate")
@require_tenant
def duplicate_product_route(product_id: str):
    """Copy a product as "<name> (Copy)" with a provenance line in the description."""
    product = duplication_service.duplicate_product(g.tenant_id, product_id)
    return jsonify({"product": _product_dict(product)}), 201


@products_bp.post("/<product_id>/clear-duplicate")
@require_tenant
def clear_product_duplicate_route(product_id: str):
    product = duplication_service.clear_product_duplicate_marker(g.tenant_id, product_id)
    return jsonify({"product": _product_dict(product)}), 200
