from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .tenancy import new_uuid


class Customer(db.Model):
    """Invoice recipient, scoped to a tenant."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_active", "tenant_id", "is_active"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    company_name = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        return " ".join(p for p in (self.first_name, self.last_name) if p) or (self.email or "")

    def __repr__(self) -> str:
        return f"<Customer id={self.id} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "company_name": self.company_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
