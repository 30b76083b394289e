# Overview: Flask CLI command groups for bootstrap, inspection, and audit review.

# backend/stationery/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent) and a default "Main Campus" location.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Locations:
# - python -m flask locations list [--all]
#   List locations with their courses.
# - python -m flask locations create --name "North Campus" --course BCA --course MCA
#   Create a location serving the given courses.
#
# Stock inspection:
# - python -m flask stock show --location-id 1 [--catalog GENERAL]
#   Show a location's ledger; omit --location-id for central stock.
#
# Audits:
# - python -m flask audits pending
#   List audit logs awaiting approval.
# - python -m flask audits approve 12 --by "Store Manager"
#   Approve one audit log (sets the ledger cell to its after quantity).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Product
from .services import audit_service, location_service
from .services.concurrency import commit_or_conflict
from .services.ledger_service import StockLedger
from .validation import CATALOGS, StockError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--location', 'location_name', default='Main Campus', help='Default location name')
@with_appcontext
def init_system(location_name):
    """Create tables and a default location (idempotent)."""
    click.echo("START Initializing stationery system...")

    db.create_all()
    click.echo("PASS Tables ready")

    location = db.session.query(Location).filter_by(name=location_name).first()
    if location:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")
        return

    location = location_service.create_location(location_name)
    commit_or_conflict()
    click.echo(f"PASS Created default location: {location.name} (ID: {location.id})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('locations')
def locations_group():
    """Location management commands."""


@locations_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive locations too')
@with_appcontext
def list_locations_cli(show_all):
    """
    List locations.

    Example:
        flask locations list
        flask locations list --all
    """
    locations = location_service.list_locations(active_only=not show_all)
    if not locations:
        click.echo("No locations found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Active':<8} {'Courses'}")
    click.echo("=" * 80)
    for location in locations:
        active = "Yes" if location.is_active else "No"
        click.echo(f"{location.id:<5} {location.name:<30} {active:<8} {', '.join(location.course_names)}")
    click.echo("=" * 80 + "\n")


@locations_group.command('create')
@click.option('--name', required=True, help='Location name (unique)')
@click.option('--address', default='', help='Address')
@click.option('--course', 'courses', multiple=True, help='Course served by this location (repeatable)')
@with_appcontext
def create_location_cli(name, address, courses):
    try:
        location = location_service.create_location(name, address=address, courses=list(courses))
        commit_or_conflict()
    except StockError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created location: {location.name} (ID: {location.id})")


@click.group('stock')
def stock_group():
    """Ledger inspection commands."""


@stock_group.command('show')
@click.option('--location-id', type=int, help='Location ID (central stock when omitted)')
@click.option('--catalog', type=click.Choice(CATALOGS, case_sensitive=False), default='STATIONERY')
@with_appcontext
def show_stock(location_id, catalog):
    """Print the ledger cells of one location, or central stock."""
    ledger = StockLedger(catalog)

    if location_id is None:
        rows = [
            (p.id, p.name, p.central_stock)
            for p in db.session.query(Product)
            .filter(Product.catalog == ledger.catalog, Product.is_set.is_(False))
            .order_by(Product.name)
            .all()
        ]
        title = f"Central stock ({ledger.catalog})"
    else:
        try:
            location = location_service.get_location(location_id)
        except StockError as e:
            raise click.ClickException(str(e))
        rows = [
            (cell.product_id, cell.product.name if cell.product else "?", cell.quantity)
            for cell in ledger.location_cells(location.id)
        ]
        title = f"{location.name} ({ledger.catalog})"

    click.echo(f"\n{title}")
    click.echo("=" * 60)
    if not rows:
        click.echo("No stock.")
        return
    for product_id, name, quantity in rows:
        click.echo(f"{product_id:<6} {name:<40} {quantity:>8}")


@click.group('audits')
def audits_group():
    """Audit approval commands."""


@audits_group.command('pending')
@with_appcontext
def pending_audits():
    logs = audit_service.list_audit_logs(status=audit_service.AUDIT_STATUS_PENDING)
    if not logs:
        click.echo("No pending audits.")
        return

    click.echo(f"{'ID':<6} {'Product':<30} {'Location':<10} {'Before':>8} {'After':>8}  By")
    for log in logs:
        product_name = log.product.name if log.product else str(log.product_id)
        where = str(log.location_id) if log.location_id else "central"
        click.echo(
            f"{log.id:<6} {product_name:<30} {where:<10} {log.before_quantity:>8} {log.after_quantity:>8}  {log.created_by}"
        )


@audits_group.command('approve')
@click.argument('audit_log_id', type=int)
@click.option('--by', 'approved_by', default='System', help='Approver name')
@with_appcontext
def approve_audit_cli(audit_log_id, approved_by):
    try:
        log = audit_service.approve_audit(audit_log_id, approved_by=approved_by)
        commit_or_conflict()
    except StockError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Audit {log.id} approved: product {log.product_id} set to {log.after_quantity}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(audits_group)
