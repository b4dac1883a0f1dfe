# Overview: Flask CLI command groups for demo bootstrap and till inspection.

# backend/oficina/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Shop bootstrap:
# - python -m flask shop init-demo [--name "Oficina Demo"]
#   Idempotent: creates tables, one establishment, staff users (one per role),
#   a client with a vehicle and a small product/service catalog.
#
# Cash session inspection:
# - python -m flask cash sessions [--establishment-id 1] [--status OPEN] [--limit 20]
#   List recent cash sessions with totals and differences.
# - python -m flask cash open-status --establishment-id 1
#   Show the open session of an establishment, if any.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Establishment, User, Client, Vehicle, CatalogItem, CashSession
from .money import format_brl


DEMO_STAFF = [
    ("Alice Admin", "admin@oficina.local", "Administrator"),
    ("Gabriel Manager", "manager@oficina.local", "Manager"),
    ("Ana Attendant", "attendant@oficina.local", "Attendant"),
    ("Marcos Mechanic", "mechanic@oficina.local", "Mechanic"),
    ("Paula Assistant", "assistant@oficina.local", "Assistant Mechanic"),
]

DEMO_CATALOG = [
    ("product", "Engine oil 5W30 (1L)", 4590),
    ("product", "Oil filter", 3250),
    ("product", "Brake pads (front)", 18900),
    ("service", "Oil change", 8000),
    ("service", "Brake inspection", 12000),
]


@click.group('shop')
def shop_group():
    """Shop bootstrap commands."""


@shop_group.command('init-demo')
@click.option('--name', 'establishment_name', default='Oficina Demo', help='Establishment name')
@with_appcontext
def init_demo(establishment_name):
    """
    Seed a demo establishment.

    Creates (when missing):
    - Establishment
    - One user per role (Administrator, Manager, Attendant, Mechanic, Assistant Mechanic)
    - A client with one vehicle
    - A few catalog products and services
    """
    click.echo("START Initializing demo shop...")
    db.create_all()

    establishment = db.session.query(Establishment).filter_by(name=establishment_name).first()
    if not establishment:
        establishment = Establishment(name=establishment_name, is_active=True)
        db.session.add(establishment)
        db.session.commit()
        click.echo(f"PASS Created establishment: {establishment.name} (ID: {establishment.id})")
    else:
        click.echo(f"PASS Using existing establishment: {establishment.name} (ID: {establishment.id})")

    click.echo("\nUSERS Creating staff...")
    for name, email, role in DEMO_STAFF:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        db.session.add(User(
            establishment_id=establishment.id,
            name=name,
            email=email,
            role=role,
            is_active=True,
        ))
        click.echo(f"PASS Created user: {name} ({email}) with role '{role}'")
    db.session.commit()

    client = db.session.query(Client).filter_by(establishment_id=establishment.id, name="Demo Client").first()
    if not client:
        client = Client(establishment_id=establishment.id, name="Demo Client", phone="+55 11 90000-0000")
        db.session.add(client)
        db.session.commit()
        db.session.add(Vehicle(
            establishment_id=establishment.id,
            client_id=client.id,
            plate="ABC1D23",
            make="Fiat",
            model="Uno",
        ))
        db.session.commit()
        click.echo(f"PASS Created client '{client.name}' with vehicle ABC1D23")

    click.echo("\nLIST Creating catalog...")
    for kind, name, price_cents in DEMO_CATALOG:
        exists = db.session.query(CatalogItem).filter_by(establishment_id=establishment.id, name=name).first()
        if exists:
            continue
        db.session.add(CatalogItem(
            establishment_id=establishment.id,
            kind=kind,
            name=name,
            price_cents=price_cents,
            is_active=True,
        ))
        click.echo(f"PASS {kind:<8} {name} ({format_brl(price_cents)})")
    db.session.commit()

    click.echo("\n" + "="*60)
    click.echo("DONE Demo shop ready")
    click.echo("="*60)
    click.echo("Send the acting user's id in the X-User-Id header.")


@click.group('cash')
def cash_group():
    """Cash session inspection commands."""


@cash_group.command('sessions')
@click.option('--establishment-id', type=int, help='Filter by establishment ID')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(establishment_id, status, limit):
    """
    List cash sessions, newest first.

    Example:
        flask cash sessions
        flask cash sessions --establishment-id 1 --status CLOSED
    """
    query = db.session.query(CashSession)

    if establishment_id:
        query = query.filter_by(establishment_id=establishment_id)

    if status:
        query = query.filter_by(status=status)

    sessions = query.order_by(CashSession.opened_at.desc()).limit(limit).all()

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Est':<5} {'Opened by':<18} {'Status':<8} {'Opened':<20} {'Balance':<16} {'Revenue':<16} {'Difference'}")
    click.echo("="*110)

    for session in sessions:
        opener = session.opened_by.name if session.opened_by else "Unknown"
        difference = "-" if session.difference_cents is None else format_brl(session.difference_cents)
        click.echo(
            f"{session.id:<5} {session.establishment_id:<5} {opener[:18]:<18} {session.status:<8} "
            f"{str(session.opened_at)[:19]:<20} {format_brl(session.balance_cents):<16} "
            f"{format_brl(session.revenue_cents):<16} {difference}"
        )

    click.echo("="*110 + "\n")


@cash_group.command('open-status')
@click.option('--establishment-id', type=int, required=True, help='Establishment ID')
@with_appcontext
def open_status_cli(establishment_id):
    """Show the open cash session of an establishment."""
    from .services.cash_service import get_open_session

    session = get_open_session(establishment_id)
    if not session:
        click.echo(f"No open cash session for establishment {establishment_id}.")
        return

    click.echo(f"Open cash session {session.id} (opened {str(session.opened_at)[:19]})")
    click.echo(f"   Opening:  {format_brl(session.opening_cents)}")
    click.echo(f"   Entries:  {format_brl(session.entries_cents)}")
    click.echo(f"   Exits:    {format_brl(session.exits_cents)}")
    click.echo(f"   Balance:  {format_brl(session.balance_cents)}")
    click.echo(f"   Revenue:  {format_brl(session.revenue_cents)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
    app.cli.add_command(cash_group)
