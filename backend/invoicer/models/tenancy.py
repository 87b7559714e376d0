from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


def new_uuid() -> str:
    return str(uuid.uuid4())


class Tenant(db.Model):
    """
    Multi-tenant root: every customer, product and document belongs to one tenant.

    Created lazily on a principal's first session (see tenant_service) and
    never deleted automatically.
    """
    __tablename__ = "tenants"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, unique=True, index=True)

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "tax_number": self.tax_number,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Membership(db.Model):
    """
    Binds one external principal to exactly one tenant.

    user_id is the identity service's principal id; the unique constraint on
    it is what makes concurrent first logins converge on a single tenant.
    """
    __tablename__ = "memberships"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    user_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    role = db.Column(db.String(32), nullable=False, default="user")  # admin | user
    is_owner = db.Column(db.Boolean, nullable=False, default=False)
    email = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("memberships", lazy=True))

    def __repr__(self) -> str:
        return f"<Membership user_id={self.user_id!r} tenant_id={self.tenant_id}>"

    @property
    def is_admin(self) -> bool:
        return self.is_owner or self.role == "admin"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "role": self.role,
            "is_owner": self.is_owner,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "created_at": to_utc_z(self.created_at),
        }
