from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .tenancy import new_uuid


DOCUMENT_KINDS = ("invoice", "offer")


class Document(db.Model):
    """
    Invoice or offer.

    number is rendered once at allocation time and never re-rendered;
    sequence_value is the integer counter behind it, kept so the allocator
    can recover from a lagging counter row.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "kind", "number", name="uq_documents_tenant_kind_number"),
        db.Index("ix_documents_tenant_kind_status", "tenant_id", "kind", "status"),
        db.CheckConstraint("kind IN ('invoice', 'offer')", name="ck_documents_kind"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    number = db.Column(db.String(64), nullable=False)
    sequence_value = db.Column(db.Integer, nullable=False)

    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="draft")

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)      # invoices
    valid_until = db.Column(db.Date, nullable=True)   # offers

    currency = db.Column(db.String(3), nullable=False, default="CHF")
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_count = db.Column(db.Integer, nullable=False, default=0)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", lazy="joined")
    items = db.relationship(
        "DocumentItem",
        backref="document",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="DocumentItem.position",
    )

    def __repr__(self) -> str:
        return f"<Document {self.kind} number={self.number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "kind": self.kind,
            "number": self.number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "status": self.status,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "valid_until": to_iso_date(self.valid_until),
            "currency": self.currency,
            "subtotal_cents": self.subtotal_cents,
            "tax_total_cents": self.tax_total_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "terms": self.terms,
            "sent_at": to_utc_z(self.sent_at),
            "sent_count": self.sent_count,
            "paid_at": to_utc_z(self.paid_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "status_changed_at": to_utc_z(self.status_changed_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }


class DocumentItem(db.Model):
    __tablename__ = "document_items"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    document_id = db.Column(
        db.String(36),
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=True)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("1"))
    unit = db.Column(db.String(32), nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "description": self.description,
            "quantity": str(self.quantity),
            "unit": self.unit,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "line_total_cents": self.line_total_cents,
        }


class DocumentSequence(db.Model):
    """
    Per-tenant, per-kind numbering counter.

    last_value is the highest counter handed out so far. The allocator also
    consults the persisted documents, so a counter that lags behind reality
    only costs a retry, never a duplicate.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "kind", name="uq_doc_sequences_tenant_kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "kind": self.kind,
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentStatusEvent(db.Model):
    """Append-only history of status changes, including manual overrides."""
    __tablename__ = "document_status_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_id = db.Column(
        db.String(36),
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = db.Column(db.String(16), nullable=False)
    to_status = db.Column(db.String(16), nullable=False)
    trigger = db.Column(db.String(16), nullable=False, default="user")  # user | download | email | override
    is_override = db.Column(db.Boolean, nullable=False, default=False)
    actor_user_id = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    document = db.relationship(
        "Document",
        backref=db.backref("status_events", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "trigger": self.trigger,
            "is_override": self.is_override,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
