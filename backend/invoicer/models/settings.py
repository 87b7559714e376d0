from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class TenantSettings(db.Model):
    """Per-tenant defaults: numbering patterns, tax rate and payment terms."""
    __tablename__ = "tenant_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, unique=True, index=True)

    company_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="CHF")
    default_tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # Basis points (810 = 8.1%)
    default_due_days = db.Column(db.Integer, nullable=False, default=30)
    offer_validity_days = db.Column(db.Integer, nullable=False, default=30)
    invoice_number_format = db.Column(db.String(64), nullable=False)
    offer_number_format = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("settings", uselist=False, lazy=True))

    def number_format_for(self, kind: str) -> str:
        return self.invoice_number_format if kind == "invoice" else self.offer_number_format

    def term_days_for(self, kind: str) -> int:
        return self.default_due_days if kind == "invoice" else self.offer_validity_days

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "company_name": self.company_name,
            "email": self.email,
            "currency": self.currency,
            "default_tax_rate_bps": self.default_tax_rate_bps,
            "default_due_days": self.default_due_days,
            "offer_validity_days": self.offer_validity_days,
            "invoice_number_format": self.invoice_number_format,
            "offer_number_format": self.offer_number_format,
            "updated_at": to_utc_z(self.updated_at),
        }
