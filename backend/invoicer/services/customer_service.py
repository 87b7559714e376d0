# Overview: Tenant-scoped customer records.

from __future__ import annotations

from typing import Any

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer
from ..validation import coerce_text, reject_unknown_fields
from .concurrency import commit_or_unavailable
from .tenant_service import require_customer_in_tenant


CUSTOMER_FIELDS = {"company_name", "first_name", "last_name", "email", "phone", "address", "is_active"}

_TEXT_LIMITS = {
    "company_name": 255,
    "first_name": 128,
    "last_name": 128,
    "email": 255,
    "phone": 64,
    "address": None,
}


def _clean(payload: dict[str, Any]) -> dict[str, Any]:
    reject_unknown_fields(payload, CUSTOMER_FIELDS)
    clean: dict[str, Any] = {}
    for field, value in payload.items():
        if field == "is_active":
            if not isinstance(value, bool):
                raise ValidationError("is_active must be a boolean")
            clean[field] = value
        else:
            clean[field] = coerce_text(field, value, max_length=_TEXT_LIMITS[field])
    if "email" in clean and clean["email"] and "@" not in clean["email"]:
        raise ValidationError("email is not a valid address")
    return clean


def create_customer(tenant_id: str, payload: dict[str, Any]) -> Customer:
    clean = _clean(payload)
    if not (clean.get("company_name") or clean.get("last_name") or clean.get("first_name")):
        raise ValidationError("company_name or a person's name is required")

    customer = Customer(tenant_id=tenant_id, **clean)
    db.session.add(customer)
    commit_or_unavailable("create customer")
    current_app.logger.info("Created customer %s for tenant %s", customer.id, tenant_id)
    return customer


def get_customer(tenant_id: str, customer_id: str) -> Customer:
    return require_customer_in_tenant(customer_id, tenant_id)


def list_customers(tenant_id: str, *, include_inactive: bool = False, search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Customer.company_name.ilike(like),
                Customer.first_name.ilike(like),
                Customer.last_name.ilike(like),
                Customer.email.ilike(like),
            )
        )
    return query.order_by(Customer.company_name, Customer.last_name, Customer.first_name).all()


def update_customer(tenant_id: str, customer_id: str, payload: dict[str, Any]) -> Customer:
    customer = require_customer_in_tenant(customer_id, tenant_id)
    for field, value in _clean(payload).items():
        setattr(customer, field, value)
    if not (customer.company_name or customer.last_name or customer.first_name):
        db.session.rollback()
        raise ValidationError("company_name or a person's name is required")
    commit_or_unavailable(f"update customer {customer_id}")
    return customer
