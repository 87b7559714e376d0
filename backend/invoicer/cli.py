# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/invoicer/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant inspection/bootstrap:
# - python -m flask tenants list
#   List all tenants with member and document counts.
# - python -m flask tenants provision --principal-id <uuid> --email owner@example.com --company-name "Acme AG"
#   Resolve (and provision on first use) the tenant of a principal, exactly as the first login would.
# - python -m flask tenants orphans
#   List tenants without any membership, for manual reconciliation.
#
# Numbering:
# - python -m flask sequences show --tenant-id <uuid>
#   Show the counter, highest persisted value and next number per document kind.

import click
from flask.cli import with_appcontext

from .clients import Principal
from .errors import ServiceError
from .extensions import db
from .models import Document, Membership
from .services import sequence_service, tenant_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing tables and data are left alone."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('tenants')
def tenants_group():
    """Tenant inspection and provisioning commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = tenant_service.list_tenants()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<38} {'Slug':<36} {'Active':<8} {'Members':<8} {'Documents'}")
    click.echo("="*100)

    for tenant in tenants:
        member_count = db.session.query(Membership).filter_by(tenant_id=tenant.id).count()
        document_count = db.session.query(Document).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<38} {tenant.slug:<36} {active_str:<8} {member_count:<8} {document_count}")

    click.echo("="*100 + "\n")


@tenants_group.command('provision')
@click.option('--principal-id', required=True, help='Principal id from the identity service')
@click.option('--email', default=None, help='Principal email')
@click.option('--company-name', default=None, help='Tenant name (defaults to DEFAULT_TENANT_NAME)')
@with_appcontext
def provision_tenant(principal_id, email, company_name):
    """Resolve the tenant for a principal, creating it if needed."""
    metadata = {"company_name": company_name} if company_name else {}
    principal = Principal(id=principal_id, email=email, metadata=metadata)
    try:
        tenant, membership = tenant_service.resolve_tenant(principal)
    except ServiceError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)

    click.echo(
        f"PASS Tenant {tenant.name} (ID: {tenant.id}, Slug: {tenant.slug}) "
        f"- membership role={membership.role} owner={membership.is_owner}"
    )


@tenants_group.command('orphans')
@with_appcontext
def list_orphans():
    """List tenants that have no membership (candidates for manual cleanup)."""
    orphans = tenant_service.list_orphan_tenants()
    if not orphans:
        click.echo("PASS No orphan tenants.")
        return

    click.echo(f"WARN {len(orphans)} tenant(s) without membership:")
    for tenant in orphans:
        click.echo(f"  {tenant.id}  {tenant.slug}  {tenant.name}")


@click.group('sequences')
def sequences_group():
    """Document numbering inspection."""


@sequences_group.command('show')
@click.option('--tenant-id', required=True, help='Tenant ID')
@with_appcontext
def show_sequences(tenant_id):
    """Show numbering state per document kind."""
    try:
        tenant = tenant_service.get_tenant(tenant_id)
    except ServiceError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)

    click.echo(f"Tenant {tenant.name} ({tenant.slug})")
    for row in sequence_service.get_sequence_state(tenant.id):
        click.echo(
            f"  {row['kind']:<8} pattern={row['pattern']:<24} last={row['last_value']:<6} "
            f"persisted_max={row['max_persisted_value']:<6} next={row['next_number']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(sequences_group)
