# Overview: Per-tenant settings: seeding, lookup with configured fallbacks, validated updates.

from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import TenantSettings
from .concurrency import commit_or_unavailable
from .sequence_service import validate_pattern


MAX_TAX_RATE_BPS = 10_000
MAX_TERM_DAYS = 3650

EDITABLE_FIELDS = {
    "company_name",
    "email",
    "currency",
    "default_tax_rate_bps",
    "default_due_days",
    "offer_validity_days",
    "invoice_number_format",
    "offer_number_format",
}


def build_default_settings(tenant_id: str, *, company_name: Optional[str] = None, email: Optional[str] = None) -> TenantSettings:
    """Seed row for a newly provisioned tenant (not added to the session)."""
    cfg = current_app.config
    return TenantSettings(
        tenant_id=tenant_id,
        company_name=company_name,
        email=email,
        currency=cfg["DEFAULT_CURRENCY"],
        default_tax_rate_bps=cfg["DEFAULT_TAX_RATE_BPS"],
        default_due_days=cfg["DEFAULT_DUE_DAYS"],
        offer_validity_days=cfg["DEFAULT_OFFER_VALIDITY_DAYS"],
        invoice_number_format=cfg["DEFAULT_INVOICE_NUMBER_FORMAT"],
        offer_number_format=cfg["DEFAULT_OFFER_NUMBER_FORMAT"],
    )


def get_settings(tenant_id: str) -> TenantSettings:
    """Stored settings, or an unsaved default row when the tenant has none."""
    settings = db.session.query(TenantSettings).filter_by(tenant_id=tenant_id).first()
    if settings is None:
        settings = build_default_settings(tenant_id)
    return settings


def _int_in_range(field: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < low or value > high:
        raise ValidationError(f"{field} must be between {low} and {high}")
    return value


def update_settings(tenant_id: str, updates: dict[str, Any]) -> TenantSettings:
    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    clean: dict[str, Any] = {}
    for field, value in updates.items():
        if field in ("invoice_number_format", "offer_number_format"):
            clean[field] = validate_pattern(value)
        elif field == "default_tax_rate_bps":
            clean[field] = _int_in_range(field, value, 0, MAX_TAX_RATE_BPS)
        elif field in ("default_due_days", "offer_validity_days"):
            clean[field] = _int_in_range(field, value, 0, MAX_TERM_DAYS)
        elif field == "currency":
            if not isinstance(value, str) or len(value.strip()) != 3:
                raise ValidationError("currency must be a 3-letter code")
            clean[field] = value.strip().upper()
        else:
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{field} must be a string")
            clean[field] = value.strip() if value else None

    settings = db.session.query(TenantSettings).filter_by(tenant_id=tenant_id).first()
    if settings is None:
        settings = build_default_settings(tenant_id)
        db.session.add(settings)

    for field, value in clean.items():
        setattr(settings, field, value)

    commit_or_unavailable(f"settings of tenant {tenant_id}")
    current_app.logger.info("Updated settings for tenant %s: %s", tenant_id, sorted(clean))
    return settings
