"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Tokens the identity service rejects return 401
- Non-admin members are denied settings changes and status overrides (403)
- Deactivated tenants are denied (403)
- Identity outages surface as 503, not as 401
"""

import pytest

from conftest import auth_headers, line
from invoicer.models import Document, Membership, TenantSettings
from invoicer.services import document_service


MEMBER_ID = "dddddddd-4444-4444-8444-444444444444"


@pytest.fixture
def member_headers(db_session, remote, tenant_a):
    """A plain (non-admin) member of tenant A."""
    db_session.add(Membership(user_id=MEMBER_ID, tenant_id=tenant_a.id, role="user", is_owner=False))
    db_session.commit()
    remote.add_user("token-member", MEMBER_ID, "clerk@acme.test")
    return auth_headers("token-member")


@pytest.fixture
def invoice_a(db_session, tenant_a, customer_a):
    return document_service.create_document(
        tenant_a.id, "invoice", {"customer_id": customer_a.id, "items": [line()]}
    )


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/session"),
            ("GET", "/api/settings"),
            ("PATCH", "/api/settings"),
            ("GET", "/api/customers"),
            ("POST", "/api/customers"),
            ("GET", "/api/products"),
            ("POST", "/api/products/some-id/duplicate"),
            ("GET", "/api/invoices"),
            ("POST", "/api/invoices"),
            ("GET", "/api/invoices/next-number"),
            ("POST", "/api/invoices/some-id/paid"),
            ("GET", "/api/offers"),
            ("POST", "/api/offers/some-id/accept"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_rejected_token(self, client, db_session):
        resp = client.get("/api/invoices", headers=auth_headers("not-a-real-token"))
        assert resp.status_code == 401

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/invoices", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401

    def test_public_endpoints_need_no_token(self, client, db_session):
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/version").status_code == 200


# =============================================================================
# NON-ADMIN MEMBERS DENIED PRIVILEGED OPERATIONS: 403
# =============================================================================


class TestMemberDeniedPrivileged:
    def test_member_can_read_settings(self, client, member_headers):
        resp = client.get("/api/settings", headers=member_headers)
        assert resp.status_code == 200

    def test_member_cannot_update_settings(self, client, db_session, member_headers, tenant_a):
        resp = client.patch("/api/settings", json={"default_due_days": 5}, headers=member_headers)
        assert resp.status_code == 403
        db_session.expire_all()
        assert db_session.query(TenantSettings).filter_by(tenant_id=tenant_a.id).one().default_due_days == 30

    def test_member_cannot_override_status(self, client, db_session, member_headers, invoice_a):
        resp = client.post(
            f"/api/invoices/{invoice_a.id}/status", json={"status": "paid"}, headers=member_headers
        )
        assert resp.status_code == 403
        db_session.expire_all()
        assert db_session.get(Document, invoice_a.id).status == "draft"

    def test_member_can_use_natural_transitions(self, client, member_headers, invoice_a):
        resp = client.post(f"/api/invoices/{invoice_a.id}/send", headers=member_headers)
        assert resp.status_code == 200
        assert resp.get_json()["document"]["status"] == "sent"


class TestAdminAllowed:
    def test_owner_can_update_settings(self, client, db_session, token_a):
        resp = client.patch("/api/settings", json={"default_due_days": 10}, headers=auth_headers(token_a))
        assert resp.status_code == 200
        assert resp.get_json()["settings"]["default_due_days"] == 10

    def test_owner_can_override_status(self, client, token_a, invoice_a):
        resp = client.post(
            f"/api/invoices/{invoice_a.id}/status", json={"status": "paid"}, headers=auth_headers(token_a)
        )
        assert resp.status_code == 200
        assert resp.get_json()["document"]["status"] == "paid"


class TestTenantAndIdentityState:
    def test_inactive_tenant_denied(self, client, db_session, token_a, tenant_a):
        tenant_a.is_active = False
        db_session.commit()

        resp = client.get("/api/invoices", headers=auth_headers(token_a))
        assert resp.status_code == 403

    def test_identity_outage_is_503(self, client, db_session, remote, token_a):
        remote.identity_down = True

        resp = client.get("/api/session", headers=auth_headers(token_a))
        assert resp.status_code == 503
        assert resp.get_json()["error"] == "Identity service unavailable"

    def test_identity_non_json_body_is_503(self, client, db_session, remote, token_a):
        remote.identity_garbled = True

        resp = client.get("/api/session", headers=auth_headers(token_a))
        assert resp.status_code == 503
        assert resp.get_json()["error"] == "Identity service unavailable"
