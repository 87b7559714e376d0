"""
Pytest fixtures for invoicer backend tests.

Provides an in-memory database, tenant/customer/product fixtures, a test
client, and fake remote services (identity, export, email, webhook) wired
in through httpx.MockTransport.
"""

import json
from datetime import datetime

import httpx
import pytest

from invoicer import create_app
from invoicer.clients import Principal
from invoicer.extensions import db, identity, dispatcher
from invoicer.models import Customer, Product
from invoicer.services import tenant_service


IDENTITY_URL = "http://identity.test/auth/v1"
EXPORT_URL = "http://export.test/render"
EMAIL_URL = "http://mail.test/send"
WEBHOOK_URL = "http://hooks.test/events"

# Fixed clock for deterministic numbers and dates
MARCH_15 = datetime(2025, 3, 15, 10, 0, 0)

PRINCIPAL_A_ID = "aaaaaaaa-1111-4111-8111-111111111111"
PRINCIPAL_B_ID = "bbbbbbbb-2222-4222-8222-222222222222"


class FakeRemote:
    """Answers and records calls to the remote collaborators."""

    def __init__(self):
        self.users = {}
        self.identity_down = False
        self.identity_garbled = False
        self.export_ok = True
        self.email_ok = True
        self.webhook_ok = True
        self.exports = []
        self.emails = []
        self.webhooks = []

    def add_user(self, token, user_id, email=None, metadata=None):
        self.users[token] = {"id": user_id, "email": email, "user_metadata": metadata or {}}

    def identity_handler(self, request):
        if self.identity_down:
            raise httpx.ConnectError("identity service down", request=request)
        if self.identity_garbled:
            return httpx.Response(200, content=b"<html>gateway</html>", headers={"Content-Type": "text/html"})
        header = request.headers.get("Authorization", "")
        token = header[len("Bearer "):] if header.startswith("Bearer ") else ""
        user = self.users.get(token)
        if user is None:
            return httpx.Response(401, json={"msg": "Invalid JWT"})
        return httpx.Response(200, json=user)

    def dispatch_handler(self, request):
        url = str(request.url)
        body = json.loads(request.content or b"{}")
        if url.startswith(EXPORT_URL):
            self.exports.append(body)
            if not self.export_ok:
                return httpx.Response(502, json={"error": "renderer crashed"})
            return httpx.Response(200, content=b"%PDF-1.4 test", headers={"Content-Type": "application/pdf"})
        if url.startswith(EMAIL_URL):
            self.emails.append(body)
            if not self.email_ok:
                raise httpx.ConnectError("smtp relay down", request=request)
            return httpx.Response(202, json={"queued": True})
        if url.startswith(WEBHOOK_URL):
            self.webhooks.append(body)
            return httpx.Response(204 if self.webhook_ok else 500)
        return httpx.Response(404)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'IDENTITY_SERVICE_URL': IDENTITY_URL,
        'EXPORT_SERVICE_URL': EXPORT_URL,
        'EMAIL_SERVICE_URL': EMAIL_URL,
        'WEBHOOK_URL': WEBHOOK_URL,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def remote(app):
    """Fresh fake remote services for each test."""
    fake = FakeRemote()
    identity.init_app(app, transport=httpx.MockTransport(fake.identity_handler))
    dispatcher.init_app(app, transport=httpx.MockTransport(fake.dispatch_handler))
    return fake


@pytest.fixture(scope='function')
def client(app, remote):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app, remote):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def principal_a():
    return Principal(id=PRINCIPAL_A_ID, email="owner@acme.test", metadata={"company_name": "Acme AG"})


@pytest.fixture(scope='function')
def principal_b():
    return Principal(id=PRINCIPAL_B_ID, email="owner@beta.test", metadata={"company_name": "Beta GmbH"})


@pytest.fixture(scope='function')
def tenant_a(db_session, principal_a):
    """Tenant A, provisioned the same way a first login does."""
    tenant, _ = tenant_service.resolve_tenant(principal_a)
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session, principal_b):
    tenant, _ = tenant_service.resolve_tenant(principal_b)
    return tenant


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a):
    customer = Customer(tenant_id=tenant_a.id, company_name="Kunde A AG", email="billing@kunde-a.test")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, tenant_b):
    customer = Customer(tenant_id=tenant_b.id, company_name="Kunde B GmbH", email="billing@kunde-b.test")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    product = Product(
        tenant_id=tenant_a.id,
        name="Consulting hour",
        description="Senior consultant, billed per hour",
        unit="h",
        unit_price_cents=15000,
        tax_rate_bps=810,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def token_a(remote, principal_a):
    """Bearer token the fake identity service resolves to principal A."""
    remote.add_user("token-a", principal_a.id, principal_a.email, dict(principal_a.metadata))
    return "token-a"


@pytest.fixture(scope='function')
def token_b(remote, principal_b):
    remote.add_user("token-b", principal_b.id, principal_b.email, dict(principal_b.metadata))
    return "token-b"


def line(description="Consulting", quantity="1", unit_price_cents=10000, tax_rate_bps=810, **extra):
    """Line item payload helper."""
    item = {
        "description": description,
        "quantity": quantity,
        "unit_price_cents": unit_price_cents,
        "tax_rate_bps": tax_rate_bps,
    }
    item.update(extra)
    return item


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
