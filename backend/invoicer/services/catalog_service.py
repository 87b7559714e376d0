# Overview: Tenant-scoped product catalog.

from __future__ import annotations

from typing import Any

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Product
from ..validation import coerce_price_cents, coerce_tax_rate_bps, coerce_text, reject_unknown_fields
from .concurrency import commit_or_unavailable
from .settings_service import get_settings
from .tenant_service import require_product_in_tenant


PRODUCT_FIELDS = {"name", "description", "category", "unit", "unit_price_cents", "tax_rate_bps", "is_active"}


def _clean(payload: dict[str, Any]) -> dict[str, Any]:
    reject_unknown_fields(payload, PRODUCT_FIELDS)
    clean: dict[str, Any] = {}
    for field, value in payload.items():
        if field == "unit_price_cents":
            clean[field] = coerce_price_cents(field, value)
        elif field == "tax_rate_bps":
            clean[field] = coerce_tax_rate_bps(field, value)
        elif field == "is_active":
            if not isinstance(value, bool):
                raise ValidationError("is_active must be a boolean")
            clean[field] = value
        elif field == "name":
            clean[field] = coerce_text(field, value, max_length=255, required=True)
        else:
            clean[field] = coerce_text(field, value, max_length=None if field == "description" else 128)
    return clean


def create_product(tenant_id: str, payload: dict[str, Any]) -> Product:
    clean = _clean(payload)
    if not clean.get("name"):
        raise ValidationError("name is required")
    clean.setdefault("unit_price_cents", 0)
    if "tax_rate_bps" not in clean:
        clean["tax_rate_bps"] = get_settings(tenant_id).default_tax_rate_bps

    product = Product(tenant_id=tenant_id, **clean)
    db.session.add(product)
    commit_or_unavailable("create product")
    current_app.logger.info("Created product %s for tenant %s", product.id, tenant_id)
    return product


def get_product(tenant_id: str, product_id: str) -> Product:
    return require_product_in_tenant(product_id, tenant_id)


def list_products(tenant_id: str, *, include_inactive: bool = False, category: str | None = None) -> list[Product]:
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name).all()


def update_product(tenant_id: str, product_id: str, payload: dict[str, Any]) -> Product:
    product = require_product_in_tenant(product_id, tenant_id)
    for field, value in _clean(payload).items():
        setattr(product, field, value)
    commit_or_unavailable(f"update product {product_id}")
    return product
