# Overview: Flask CLI command groups for bootstrap, reference data, and stock inspection.

# backend/fieldstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migrated deployments).
#
# Reference data:
# - python -m flask reference add-area --name "Central Warehouse" [--code WH-01] [--org-id 1]
# - python -m flask reference add-material --code ONT-01 --name "GPON ONT" [--type ONT] [--uom PIECE] [--org-id 1]
# - python -m flask reference add-user --name "Tech Seven" [--email t7@example.com] [--org-id 1]
#
# Stock inspection:
# - python -m flask stock levels [--material-id 3] [--area-id 1] [--include-drafts] [--org-id 1]
#   Movement-derived stock per material and stock area.
# - python -m flask stock reconcile [--material-id 3] [--org-id 1]
#   Compare movement-derived totals with ledger units.
# - python -m flask ledger conservation --material-id 3 [--org-id 1]
#   Where every unit of a material is now (warehouse / person / consumed / faulty).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryError
from .services import ledger_service, reference_service, stock_level_service
from .services.concurrency import run_in_transaction
from .services.tenant_service import OrgContext


def _ctx(org_id):
    return OrgContext(org_id=org_id, user_id=None)


org_option = click.option('--org-id', type=int, default=None, help='Organization id (omit for unscoped data)')


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('reference')
def reference_group():
    """Reference data: stock areas, materials, technicians."""


@reference_group.command('add-area')
@click.option('--name', required=True)
@click.option('--code', 'location_code', default=None)
@org_option
@with_appcontext
def add_area(name, location_code, org_id):
    try:
        area = run_in_transaction(
            lambda: reference_service.create_stock_area(_ctx(org_id), name=name, location_code=location_code).to_dict()
        )
    except InventoryError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created stock area {area['name']} (ID: {area['id']})")


@reference_group.command('add-material')
@click.option('--code', 'product_code', required=True)
@click.option('--name', required=True)
@click.option('--type', 'material_type', default=None)
@click.option('--uom', default='PIECE')
@org_option
@with_appcontext
def add_material(product_code, name, material_type, uom, org_id):
    try:
        material = run_in_transaction(
            lambda: reference_service.create_material(
                _ctx(org_id), product_code=product_code, name=name, material_type=material_type, uom=uom
            ).to_dict()
        )
    except InventoryError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created material {material['product_code']} (ID: {material['id']})")


@reference_group.command('add-user')
@click.option('--name', required=True)
@click.option('--email', default=None)
@org_option
@with_appcontext
def add_user(name, email, org_id):
    try:
        user = run_in_transaction(
            lambda: reference_service.create_user(_ctx(org_id), name=name, email=email).to_dict()
        )
    except InventoryError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user['name']} (ID: {user['id']})")


@click.group('stock')
def stock_group():
    """Stock level inspection."""


@stock_group.command('levels')
@click.option('--material-id', type=int, default=None)
@click.option('--area-id', type=int, default=None)
@click.option('--include-drafts/--completed-only', default=None,
              help='Count DRAFT receipts (defaults to STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS)')
@org_option
@with_appcontext
def stock_levels(material_id, area_id, include_drafts, org_id):
    report = stock_level_service.get_stock_levels(
        _ctx(org_id),
        material_id=material_id,
        stock_area_id=area_id,
        include_draft_receipts=include_drafts,
    )
    click.echo(f"Receipt statuses counted: {', '.join(report['receipt_statuses_counted'])}")
    click.echo(f"{'MATERIAL':<24} {'AREA':>6} {'IN':>8} {'OUT':>8} {'XFER IN':>8} {'USED':>8} {'STOCK':>8}")
    for row in report["stock_levels"]:
        label = row["material"]["product_code"] if row["material"] else str(row["material_id"])
        area = row["stock_area_id"] if row["stock_area_id"] is not None else "-"
        click.echo(
            f"{label:<24} {area:>6} {row['total_inward']:>8} {row['total_transferred_out']:>8} "
            f"{row['total_transferred_in']:>8} {row['total_consumed']:>8} {row['current_stock']:>8}"
        )
    summary = report["summary"]
    click.echo(
        f"\n{summary['total_materials']} material(s), total stock {summary['total_stock']}, "
        f"{summary['low_stock_count']} row(s) at or below zero"
    )
    for warning in report["warnings"]:
        click.echo(f"WARN  {warning}")


@stock_group.command('reconcile')
@click.option('--material-id', type=int, default=None)
@org_option
@with_appcontext
def stock_reconcile(material_id, org_id):
    result = stock_level_service.reconcile_stock_levels(_ctx(org_id), material_id=material_id)
    for row in result["materials"]:
        marker = "PASS" if not row["difference"] else "FAIL"
        click.echo(
            f"{marker} material {row['material_id']}: movements {row['aggregated_stock']}, "
            f"ledger {row['ledger_units']}"
        )
    if not result["consistent"]:
        raise click.ClickException(f"{len(result['discrepancies'])} material(s) out of balance")
    click.echo("PASS Movement history and ledger agree")


@click.group('ledger')
def ledger_group():
    """Unit ledger inspection."""


@ledger_group.command('conservation')
@click.option('--material-id', type=int, required=True)
@org_option
@with_appcontext
def ledger_conservation(material_id, org_id):
    counts = ledger_service.conservation_counts(_ctx(org_id), material_id)
    click.echo(
        f"received={counts['received']} created={counts['created']} "
        f"warehouse={counts['warehouse']} person={counts['person']} "
        f"consumed={counts['consumed']} faulty={counts['faulty']} unaccounted={counts['unaccounted']}"
    )
    if not counts["balanced"]:
        raise click.ClickException("Unit conservation violated")
    click.echo("PASS Every unit is accounted for")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(reference_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(ledger_group)
