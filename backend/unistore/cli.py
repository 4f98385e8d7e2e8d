# Overview: Flask CLI command groups for tenant bootstrap, smart code checks and ledger diagnostics.

# backend/unistore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "unistore:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs create --name "Acme Salon" --code "ACME"
#   Create a new organization (tenant); prints its id.
# - python -m flask orgs list [--status active]
#   List organizations.
# - python -m flask orgs archive --org-id <uuid>
#   Archive an organization (reads still work, writes are refused).
#
# Smart codes:
# - python -m flask smartcode check CORE.SALON.SVC.ITEM.v1
#   Parse a smart code and report the malformed part, if any.
#
# Ledger diagnostics:
# - python -m flask ledger validate --org <uuid> --txn <uuid>
#   Recompute balance and line numbering for one transaction (read-only).

import click
from flask.cli import with_appcontext

from .errors import InvalidSmartCode, StoreError
from .models import new_id
from .services import organization_service, universal_service
from .services.smart_code_service import parse_smart_code


DEFAULT_ORG_SMART_CODE = "CORE.PLATFORM.ORG.TENANT.v1"


# =============================================================================
# ORGANIZATION COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', default=None, help='Short code (unique)')
@click.option('--type', 'organization_type', default=None, help='Organization type, e.g. salon')
@click.option('--smart-code', default=DEFAULT_ORG_SMART_CODE, show_default=True, help='Classification smart code')
@click.option('--actor', default='cli', show_default=True, help='Actor recorded in created_by')
@with_appcontext
def create_org_cli(name, code, organization_type, smart_code, actor):
    """Create a new organization (tenant)."""
    payload = {"name": name, "code": code, "organization_type": organization_type, "smart_code": smart_code}
    try:
        result = universal_service.execute("organization", "upsert", new_id(), payload, actor=actor)
    except StoreError as e:
        click.echo(f"FAIL {e.kind}: {e.message}")
        raise SystemExit(1)

    org = result["organization"]
    click.echo(f"PASS Created organization: {org['name']} (ID: {org['id']}, Code: {org['code'] or '-'})")


@orgs_group.command('list')
@click.option('--status', type=click.Choice(['active', 'archived']), default=None, help='Filter by status')
@with_appcontext
def list_orgs(status):
    """List organizations."""
    orgs = organization_service.list_organizations(status=status)

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<38} {'Name':<30} {'Code':<15} {'Status':<10} {'Version'}")
    click.echo("=" * 100)

    for org in orgs:
        click.echo(f"{org.id:<38} {org.name:<30} {org.code or '-':<15} {org.status:<10} {org.version}")

    click.echo("=" * 100 + "\n")


@orgs_group.command('archive')
@click.option('--org-id', required=True, help='Organization ID')
@click.option('--actor', default='cli', show_default=True, help='Actor recorded in updated_by')
@with_appcontext
def archive_org_cli(org_id, actor):
    """Archive an organization."""
    try:
        result = universal_service.execute("organization", "archive", org_id, {}, actor=actor)
    except StoreError as e:
        click.echo(f"FAIL {e.kind}: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Archived organization {result['organization']['id']}")


# =============================================================================
# SMART CODE COMMANDS
# =============================================================================

@click.group('smartcode')
def smartcode_group():
    """Smart code inspection commands."""


@smartcode_group.command('check')
@click.argument('code')
def check_smart_code_cli(code):
    """Validate a smart code and print its parts."""
    try:
        parsed = parse_smart_code(code)
    except InvalidSmartCode as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS {parsed.raw}")
    click.echo(f"  prefix:   {parsed.prefix}")
    click.echo(f"  segments: {'.'.join(parsed.segments)}")
    click.echo(f"  version:  {parsed.version}")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Transaction ledger diagnostics."""


@ledger_group.command('validate')
@click.option('--org', 'org_id', required=True, help='Organization ID')
@click.option('--txn', 'transaction_id', required=True, help='Transaction ID')
@with_appcontext
def validate_ledger_cli(org_id, transaction_id):
    """Recompute balance and line numbering for one transaction."""
    try:
        report = universal_service.execute("transaction", "validate", org_id, {"transaction_id": transaction_id})
    except StoreError as e:
        click.echo(f"FAIL {e.kind}: {e.message}")
        raise SystemExit(1)

    if report["ok"]:
        click.echo(f"PASS Transaction {transaction_id} is consistent")
        return

    click.echo(f"FAIL Transaction {transaction_id} has {len(report['discrepancies'])} discrepancies")
    for item in report["discrepancies"]:
        details = ", ".join(f"{k}={v}" for k, v in item.items() if k != "kind")
        click.echo(f"  - {item['kind']}: {details}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orgs_group)
    app.cli.add_command(smartcode_group)
    app.cli.add_command(ledger_group)
