"""
Duplication engine: derive a fresh draft from an existing invoice or offer.

The copy gets a new id, a newly allocated number, today's dates and copies
of every line item. Its notes start with a provenance line

    Duplicated from F-2025-03-008 on 2025-04-02

followed by a blank line and the source's own notes. While that line is
present and the copy is still a draft, it is reported as a duplicate.
The source document is only read, never written.

Products get the same treatment with a " (Copy)" name suffix and a
provenance line in the description.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import Document, DocumentItem, Product
from ..models.tenancy import new_uuid
from ..time_utils import utcnow
from .concurrency import commit_or_unavailable
from .sequence_service import AllocatedNumber, insert_with_fresh_number
from .settings_service import get_settings
from .tenant_service import require_document_in_tenant, require_product_in_tenant


PROVENANCE_RE = re.compile(
    r"^Duplicated from (?P<source>.+) on (?P<date>\d{4}-\d{2}-\d{2})[ \t]*$",
    re.MULTILINE,
)
PRODUCT_PROVENANCE_RE = re.compile(
    r'^Duplicated from "(?P<source>.+)" on (?P<date>\d{4}-\d{2}-\d{2})[ \t]*$',
    re.MULTILINE,
)

COPY_SUFFIX = " (Copy)"

_ITEM_FIELDS = ("position", "product_id", "description", "quantity", "unit", "unit_price_cents", "tax_rate_bps", "line_total_cents")


def provenance_line(source_number: str, on: date) -> str:
    return f"Duplicated from {source_number} on {on.isoformat()}"


def with_provenance(line: str, text: Optional[str]) -> str:
    if text and text.strip():
        return f"{line}\n\n{text}"
    return line


def strip_marker(text: Optional[str], pattern: re.Pattern = PROVENANCE_RE) -> Optional[str]:
    """Remove the first provenance line and its blank-line separator, keep everything else."""
    if not text:
        return text
    match = pattern.search(text)
    if match is None:
        return text

    before = text[:match.start()].rstrip("\n")
    after = text[match.end():].lstrip("\n")
    if before and after:
        cleaned = f"{before}\n\n{after}"
    else:
        cleaned = before or after
    return cleaned or None


def provenance_source(document: Document) -> Optional[str]:
    match = PROVENANCE_RE.search(document.notes or "")
    return match.group("source") if match else None


def is_marked_duplicate(document: Document) -> bool:
    return document.status == "draft" and provenance_source(document) is not None


def is_product_duplicate(product: Product) -> bool:
    return PRODUCT_PROVENANCE_RE.search(product.description or "") is not None


def _snapshot(document: Document) -> dict:
    return {
        "number": document.number,
        "customer_id": document.customer_id,
        "currency": document.currency,
        "subtotal_cents": document.subtotal_cents,
        "tax_total_cents": document.tax_total_cents,
        "total_cents": document.total_cents,
        "notes": document.notes,
        "terms": document.terms,
        "items": [{field: getattr(item, field) for field in _ITEM_FIELDS} for item in document.items],
    }


def duplicate_document(
    tenant_id: str,
    kind: str,
    document_id: str,
    *,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Document:
    """
    Create a draft copy of a document under a fresh number.

    Either the copy and all of its items are committed, or nothing is.
    """
    now = now or utcnow()
    on = now.date()

    source = require_document_in_tenant(document_id, tenant_id, kind)
    snapshot = _snapshot(source)
    term = timedelta(days=get_settings(tenant_id).term_days_for(kind))

    def _build(allocated: AllocatedNumber) -> Document:
        return Document(
            id=new_uuid(),
            tenant_id=tenant_id,
            kind=kind,
            number=allocated.number,
            sequence_value=allocated.value,
            customer_id=snapshot["customer_id"],
            status="draft",
            issue_date=on,
            due_date=on + term if kind == "invoice" else None,
            valid_until=on + term if kind == "offer" else None,
            currency=snapshot["currency"],
            subtotal_cents=snapshot["subtotal_cents"],
            tax_total_cents=snapshot["tax_total_cents"],
            total_cents=snapshot["total_cents"],
            notes=with_provenance(provenance_line(snapshot["number"], on), snapshot["notes"]),
            terms=snapshot["terms"],
            sent_count=0,
            created_by_user_id=actor_user_id,
            items=[DocumentItem(id=new_uuid(), **item) for item in snapshot["items"]],
        )

    duplicate = insert_with_fresh_number(tenant_id, kind, _build, now=now)
    current_app.logger.info(
        "Duplicated %s %s as %s for tenant %s", kind, snapshot["number"], duplicate.number, tenant_id
    )
    return duplicate


def clear_duplicate_marker(tenant_id: str, kind: str, document_id: str) -> Document:
    document = require_document_in_tenant(document_id, tenant_id, kind)
    cleaned = strip_marker(document.notes)
    if cleaned != document.notes:
        document.notes = cleaned
        commit_or_unavailable(f"clear duplicate marker of {kind} {document.number}")
    return document


def duplicate_product(tenant_id: str, product_id: str, *, now: Optional[datetime] = None) -> Product:
    on = (now or utcnow()).date()
    source = require_product_in_tenant(product_id, tenant_id)

    name = source.name[: 255 - len(COPY_SUFFIX)] + COPY_SUFFIX
    line = f'Duplicated from "{source.name}" on {on.isoformat()}'
    copy = Product(
        id=new_uuid(),
        tenant_id=tenant_id,
        name=name,
        description=with_provenance(line, source.description),
        category=source.category,
        unit=source.unit,
        unit_price_cents=source.unit_price_cents,
        tax_rate_bps=source.tax_rate_bps,
        is_active=source.is_active,
    )
    db.session.add(copy)
    commit_or_unavailable(f"duplicate product {product_id}")
    current_app.logger.info("Duplicated product %s as %s for tenant %s", product_id, copy.id, tenant_id)
    return copy


def clear_product_duplicate_marker(tenant_id: str, product_id: str) -> Product:
    product = require_product_in_tenant(product_id, tenant_id)
    cleaned = strip_marker(product.description, PRODUCT_PROVENANCE_RE)
    if cleaned != product.description:
        product.description = cleaned
        commit_or_unavailable(f"clear duplicate marker of product {product_id}")
    return product
