"""
Tenant resolver and tenant scoping helpers.

Every authenticated principal belongs to exactly one tenant. The first
session of a principal without a membership provisions a tenant, an owner
membership and the default settings in one transaction; every later session
is a read.

Concurrent first sessions of the same principal converge: the losing
writer trips the unique constraint on memberships.user_id (or tenants.slug),
rolls back, and returns the winner's membership.

SECURITY INVARIANTS:
1. Services receive tenant_id explicitly, never from ambient state
2. Rows from another tenant are reported exactly like missing rows
3. Cross-tenant lookups are logged
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..clients import Principal
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Document, Membership, Product, Tenant
from ..models.tenancy import new_uuid
from .concurrency import run_with_retry
from .settings_service import build_default_settings


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", name.strip().lower())
    slug = re.sub(r"[^a-z0-9\-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug or "tenant"


SLUG_MAX_LENGTH = 255
NAME_MAX_LENGTH = 255


def tenant_slug(name: str, suffix: str) -> str:
    """slugify(name) trimmed so that name plus "-suffix" fits the slug column."""
    suffix = f"-{suffix}"
    return slugify(name)[: max(0, SLUG_MAX_LENGTH - len(suffix))].rstrip("-") + suffix


def _find_membership(principal_id: str) -> Membership | None:
    return db.session.query(Membership).filter_by(user_id=principal_id).first()


def _provision(principal: Principal, *, full_suffix: bool = False) -> tuple[Tenant, Membership]:
    metadata = principal.metadata or {}
    name = (metadata.get("company_name") or "").strip() or current_app.config["DEFAULT_TENANT_NAME"]
    name = name[:NAME_MAX_LENGTH]
    # Short ids keep slugs readable; two principals sharing a prefix fall back to the full id
    suffix = principal.id if full_suffix else principal.id[:8]
    slug = tenant_slug(name, suffix)

    tenant = Tenant(
        id=new_uuid(),
        name=name,
        slug=slug,
        email=principal.email,
        is_active=True,
    )
    membership = Membership(
        user_id=principal.id,
        role="admin",
        is_owner=True,
        email=principal.email,
        first_name=metadata.get("first_name"),
        last_name=metadata.get("last_name"),
    )
    membership.tenant = tenant
    settings = build_default_settings(tenant.id, company_name=name, email=principal.email)
    settings.tenant = tenant

    db.session.add_all([tenant, membership, settings])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(
            "Concurrent provisioning detected for principal %s, re-reading membership", principal.id
        )
        existing = _find_membership(principal.id)
        if existing is None and not full_suffix:
            current_app.logger.warning(
                "Slug %s is taken, re-provisioning principal %s with the full id suffix", slug, principal.id
            )
            return _provision(principal, full_suffix=True)
        if existing is None:
            current_app.logger.error(
                "Provisioning for principal %s conflicted but no membership exists", principal.id
            )
            raise ConflictError("Tenant provisioning conflicted, please retry")
        return existing.tenant, existing

    current_app.logger.info(
        "Provisioned tenant %s (%s) for principal %s", tenant.id, tenant.slug, principal.id
    )
    return tenant, membership


def resolve_tenant(principal: Principal) -> tuple[Tenant, Membership]:
    """
    Return the (tenant, membership) pair for a principal, provisioning on first use.

    Idempotent: repeated calls for the same principal return the same tenant.
    Storage outages are retried (each retry re-checks the membership first)
    and surface as RemoteUnavailableError once exhausted.
    """
    if principal is None or not principal.id:
        raise ValidationError("Principal id is required")

    def _op() -> tuple[Tenant, Membership]:
        membership = _find_membership(principal.id)
        if membership is not None:
            return membership.tenant, membership
        return _provision(principal)

    return run_with_retry(_op, label=f"resolve tenant for {principal.id}")


def get_tenant(tenant_id: str) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def list_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.created_at, Tenant.name).all()


def list_orphan_tenants() -> list[Tenant]:
    """Tenants without any membership, left behind by partial provisioning elsewhere."""
    has_member = db.session.query(Membership.id).filter(Membership.tenant_id == Tenant.id).exists()
    return db.session.query(Tenant).filter(~has_member).order_by(Tenant.created_at).all()


def _log_cross_tenant_attempt(label: str, row_id: str, owner_tenant_id: str | None, tenant_id: str) -> None:
    if owner_tenant_id is None:
        current_app.logger.info("%s %s not found (tenant %s)", label, row_id, tenant_id)
    else:
        current_app.logger.warning(
            "Cross-tenant access: %s %s belongs to tenant %s, requested by tenant %s",
            label, row_id, owner_tenant_id, tenant_id,
        )


def _require_in_tenant(model, label: str, row_id: str, tenant_id: str):
    row = db.session.query(model).filter_by(id=row_id).first()
    if row is None or row.tenant_id != tenant_id:
        _log_cross_tenant_attempt(label, row_id, row.tenant_id if row else None, tenant_id)
        # Don't reveal that it exists in another tenant
        raise NotFoundError(f"{label} not found", details={"id": row_id})
    return row


def require_customer_in_tenant(customer_id: str, tenant_id: str) -> Customer:
    return _require_in_tenant(Customer, "Customer", customer_id, tenant_id)


def require_product_in_tenant(product_id: str, tenant_id: str) -> Product:
    return _require_in_tenant(Product, "Product", product_id, tenant_id)


def require_document_in_tenant(document_id: str, tenant_id: str, kind: str | None = None) -> Document:
    label = kind.capitalize() if kind else "Document"
    document = _require_in_tenant(Document, label, document_id, tenant_id)
    if kind is not None and document.kind != kind:
        raise NotFoundError(f"{label} not found", details={"id": document_id})
    return document
