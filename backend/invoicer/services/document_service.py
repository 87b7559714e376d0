# Overview: Invoices and offers: creation, draft edits, listing, deletion and totals.

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from flask import current_app

from ..errors import LifecycleError, ValidationError
from ..extensions import db
from ..models import Document, DocumentItem
from ..models.tenancy import new_uuid
from ..time_utils import today as today_of, utcnow
from ..validation import (
    coerce_date,
    coerce_price_cents,
    coerce_quantity,
    coerce_tax_rate_bps,
    coerce_text,
    reject_unknown_fields,
)
from .concurrency import commit_or_unavailable
from .duplication_service import is_marked_duplicate, provenance_source
from .lifecycle_service import STATUSES, is_overdue
from .sequence_service import AllocatedNumber, check_kind, insert_with_fresh_number
from .settings_service import get_settings
from .tenant_service import (
    require_customer_in_tenant,
    require_document_in_tenant,
    require_product_in_tenant,
)


ITEM_FIELDS = {"product_id", "description", "quantity", "unit", "unit_price_cents", "tax_rate_bps"}
CREATE_FIELDS = {"customer_id", "items", "issue_date", "due_date", "valid_until", "notes", "terms", "currency"}
MAX_ITEMS = 500

_ONE = Decimal("1")


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def compute_line_total(quantity: Decimal, unit_price_cents: int) -> int:
    return _round_cents(Decimal(quantity) * unit_price_cents)


def compute_totals(items) -> tuple[int, int, int]:
    """(subtotal, tax_total, total) in cents. Tax is rounded once, on the sum."""
    subtotal = 0
    tax = Decimal(0)
    for item in items:
        subtotal += item.line_total_cents
        tax += Decimal(item.line_total_cents) * item.tax_rate_bps / 10_000
    tax_total = _round_cents(tax)
    return subtotal, tax_total, subtotal + tax_total


def _parse_items(tenant_id: str, raw_items: Any, default_tax_bps: int) -> list[dict]:
    """Validate line items up front; returns plain specs so each write attempt builds fresh rows."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one line item is required")
    if len(raw_items) > MAX_ITEMS:
        raise ValidationError(f"At most {MAX_ITEMS} line items are allowed")

    specs = []
    for position, raw in enumerate(raw_items):
        field = f"items[{position}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{field} must be an object")
        reject_unknown_fields(raw, ITEM_FIELDS)

        product = None
        if raw.get("product_id"):
            product = require_product_in_tenant(raw["product_id"], tenant_id)

        description = coerce_text(f"{field}.description", raw.get("description"))
        if description is None:
            if product is None:
                raise ValidationError(f"{field}.description is required")
            description = product.name

        if "unit_price_cents" in raw:
            unit_price_cents = coerce_price_cents(f"{field}.unit_price_cents", raw["unit_price_cents"])
        elif product is not None:
            unit_price_cents = product.unit_price_cents
        else:
            raise ValidationError(f"{field}.unit_price_cents is required")

        if "tax_rate_bps" in raw:
            tax_rate_bps = coerce_tax_rate_bps(f"{field}.tax_rate_bps", raw["tax_rate_bps"])
        elif product is not None:
            tax_rate_bps = product.tax_rate_bps
        else:
            tax_rate_bps = default_tax_bps

        quantity = coerce_quantity(f"{field}.quantity", raw.get("quantity", 1))

        specs.append({
            "position": position,
            "product_id": product.id if product else None,
            "description": description,
            "quantity": quantity,
            "unit": coerce_text(f"{field}.unit", raw.get("unit"), max_length=32) or (product.unit if product else None),
            "unit_price_cents": unit_price_cents,
            "tax_rate_bps": tax_rate_bps,
            "line_total_cents": compute_line_total(quantity, unit_price_cents),
        })
    return specs


def _make_items(specs: list[dict]) -> list[DocumentItem]:
    return [DocumentItem(id=new_uuid(), **spec) for spec in specs]


def _apply_totals(document: Document, items: list[DocumentItem]) -> None:
    document.subtotal_cents, document.tax_total_cents, document.total_cents = compute_totals(items)


def _term_date(kind: str, payload: dict, issue_date: date, term_days: int) -> date:
    field = "due_date" if kind == "invoice" else "valid_until"
    value = coerce_date(field, payload.get(field)) or issue_date + timedelta(days=term_days)
    if value < issue_date:
        raise ValidationError(f"{field} must not be before issue_date")
    return value


def create_document(
    tenant_id: str,
    kind: str,
    payload: dict[str, Any],
    *,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Document:
    """
    Create a draft invoice/offer under a freshly allocated number.

    All input is validated before anything is written.
    """
    check_kind(kind)
    reject_unknown_fields(payload, CREATE_FIELDS)
    now = now or utcnow()

    if not payload.get("customer_id"):
        raise ValidationError("customer_id is required")
    customer = require_customer_in_tenant(payload["customer_id"], tenant_id)
    customer_id = customer.id

    settings = get_settings(tenant_id)
    specs = _parse_items(tenant_id, payload.get("items"), settings.default_tax_rate_bps)
    issue_date = coerce_date("issue_date", payload.get("issue_date")) or now.date()
    term_date = _term_date(kind, payload, issue_date, settings.term_days_for(kind))
    notes = coerce_text("notes", payload.get("notes"))
    terms = coerce_text("terms", payload.get("terms"))
    currency = (coerce_text("currency", payload.get("currency"), max_length=3) or settings.currency).upper()

    def _build(allocated: AllocatedNumber) -> Document:
        items = _make_items(specs)
        document = Document(
            id=new_uuid(),
            tenant_id=tenant_id,
            kind=kind,
            number=allocated.number,
            sequence_value=allocated.value,
            customer_id=customer_id,
            status="draft",
            issue_date=issue_date,
            due_date=term_date if kind == "invoice" else None,
            valid_until=term_date if kind == "offer" else None,
            currency=currency,
            notes=notes,
            terms=terms,
            sent_count=0,
            created_by_user_id=actor_user_id,
            items=items,
        )
        _apply_totals(document, items)
        return document

    document = insert_with_fresh_number(tenant_id, kind, _build, now=now)
    current_app.logger.info("Created %s %s for tenant %s", kind, document.number, tenant_id)
    return document


def get_document(tenant_id: str, kind: str, document_id: str) -> Document:
    return require_document_in_tenant(document_id, tenant_id, kind)


def list_documents(
    tenant_id: str,
    kind: str,
    *,
    status: Optional[str] = None,
    customer_id: Optional[str] = None,
    today: Optional[date] = None,
) -> list[Document]:
    """
    Newest first. status="overdue" on invoices means the derived flag
    (sent and past due), not the stored override status.
    """
    check_kind(kind)
    query = db.session.query(Document).filter(Document.tenant_id == tenant_id, Document.kind == kind)

    if status == "overdue" and kind == "invoice":
        query = query.filter(
            Document.status == "sent",
            Document.due_date.isnot(None),
            Document.due_date < (today or today_of()),
        )
    elif status:
        if status not in STATUSES[kind]:
            raise ValidationError(f"Invalid {kind} status filter: {status}")
        query = query.filter(Document.status == status)

    if customer_id:
        query = query.filter(Document.customer_id == customer_id)

    return query.order_by(Document.issue_date.desc(), Document.sequence_value.desc()).all()


def update_draft(tenant_id: str, kind: str, document_id: str, payload: dict[str, Any]) -> Document:
    """Edit a draft. The number is never re-rendered, even if the month has changed."""
    document = require_document_in_tenant(document_id, tenant_id, kind)
    if document.status != "draft":
        raise LifecycleError(
            f"Only draft documents can be edited ({document.number} is {document.status})",
            details={"status": document.status},
        )
    reject_unknown_fields(payload, CREATE_FIELDS)

    changes: dict[str, Any] = {}
    if "customer_id" in payload:
        changes["customer_id"] = require_customer_in_tenant(payload["customer_id"], tenant_id).id
    if "issue_date" in payload:
        changes["issue_date"] = coerce_date("issue_date", payload["issue_date"])
        if changes["issue_date"] is None:
            raise ValidationError("issue_date must not be empty")
    term_field = "due_date" if kind == "invoice" else "valid_until"
    if term_field in payload:
        changes[term_field] = coerce_date(term_field, payload[term_field])
    for field in ("notes", "terms"):
        if field in payload:
            changes[field] = coerce_text(field, payload[field])
    if "currency" in payload:
        currency = coerce_text("currency", payload["currency"], max_length=3)
        if not currency:
            raise ValidationError("currency must not be empty")
        changes["currency"] = currency.upper()

    specs = None
    if "items" in payload:
        specs = _parse_items(tenant_id, payload["items"], get_settings(tenant_id).default_tax_rate_bps)

    issue_date = changes.get("issue_date", document.issue_date)
    term_date = changes.get(term_field, getattr(document, term_field))
    if term_date is not None and term_date < issue_date:
        raise ValidationError(f"{term_field} must not be before issue_date")

    for field, value in changes.items():
        setattr(document, field, value)
    if specs is not None:
        items = _make_items(specs)
        document.items = items
        _apply_totals(document, items)

    commit_or_unavailable(f"update {kind} {document.number}")
    return document


def delete_document(tenant_id: str, kind: str, document_id: str) -> None:
    document = require_document_in_tenant(document_id, tenant_id, kind)
    number = document.number
    db.session.delete(document)
    commit_or_unavailable(f"delete {kind} {number}")
    current_app.logger.info("Deleted %s %s for tenant %s", kind, number, tenant_id)


def serialize_document(document: Document, *, today: Optional[date] = None) -> dict:
    data = document.to_dict()
    data["is_overdue"] = is_overdue(document, today)
    data["is_duplicate"] = is_marked_duplicate(document)
    data["duplicated_from"] = provenance_source(document)
    return data
