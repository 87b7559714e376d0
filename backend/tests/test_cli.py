# Overview: Tests for the flask CLI command groups.

from conftest import MARCH_15, PRINCIPAL_A_ID, line
from invoicer.models import Membership, Tenant
from invoicer.services import document_service


def test_init_db_is_idempotent(app, db_session, tenant_a):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init-db"])

    assert result.exit_code == 0
    assert "Database schema ready" in result.output
    assert db_session.query(Tenant).count() == 1


def test_reset_db_requires_confirmation(app, db_session, tenant_a):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "reset-db"], input="n\n")

    assert result.exit_code != 0
    assert db_session.query(Tenant).count() == 1


def test_provision_creates_tenant_once(app, db_session):
    runner = app.test_cli_runner()
    args = ["tenants", "provision", "--principal-id", PRINCIPAL_A_ID, "--company-name", "Acme AG"]

    first = runner.invoke(args=args)
    second = runner.invoke(args=args)

    assert first.exit_code == 0
    assert "PASS Tenant Acme AG" in first.output
    assert second.exit_code == 0
    assert db_session.query(Tenant).count() == 1
    assert db_session.query(Membership).count() == 1


def test_list_tenants(app, db_session, tenant_a, tenant_b):
    result = app.test_cli_runner().invoke(args=["tenants", "list"])

    assert result.exit_code == 0
    assert tenant_a.slug in result.output
    assert tenant_b.slug in result.output


def test_orphans(app, db_session, tenant_a):
    runner = app.test_cli_runner()
    assert "No orphan tenants" in runner.invoke(args=["tenants", "orphans"]).output

    db_session.add(Tenant(name="Dangling", slug="dangling-00000000"))
    db_session.commit()

    result = runner.invoke(args=["tenants", "orphans"])
    assert "1 tenant(s) without membership" in result.output
    assert "dangling-00000000" in result.output


def test_show_sequences(app, db_session, tenant_a, customer_a):
    document_service.create_document(
        tenant_a.id, "invoice", {"customer_id": customer_a.id, "items": [line()]}, now=MARCH_15
    )

    result = app.test_cli_runner().invoke(args=["sequences", "show", "--tenant-id", tenant_a.id])

    assert result.exit_code == 0
    assert "invoice" in result.output
    assert "last=1" in result.output


def test_show_sequences_unknown_tenant(app, db_session):
    result = app.test_cli_runner().invoke(args=["sequences", "show", "--tenant-id", "missing"])

    assert result.exit_code == 1
    assert "FAIL Tenant not found" in result.output
