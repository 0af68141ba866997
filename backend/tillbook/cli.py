# Overview: Flask CLI command groups for bootstrap and catalog setup.

# backend/tillbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to tillbook (PowerShell: $env:FLASK_APP="tillbook").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--outlet "Main Outlet"] [--gst-rate 8]
#   Idempotent bootstrap: creates tables, the default outlet, the settings row and default staff.
#
# Staff:
# - python -m flask staff create --username manager --password "Password123!" --role manager
#   Create a staff account (prompts if options are omitted).
# - python -m flask staff list
#
# Catalog:
# - python -m flask catalog add-product --name "Coconut Oil 1L" --price 45.00 --stock 20
#   Add a product (use --untracked for services that never hold stock).

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Outlet, Product, Staff, StoreSettings
from .services import auth_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--outlet', 'outlet_name', default='Main Outlet', help='Default outlet name')
@click.option('--gst-rate', default='0', help='GST rate in percent for the default outlet')
@click.option('--currency', default='MVR', help='Outlet currency code')
@with_appcontext
def init_system(outlet_name, gst_rate, currency):
    """Create tables, the default outlet, settings and default staff."""
    click.echo("START Initializing tillbook...")
    db.create_all()

    settings = db.session.get(StoreSettings, 1)
    if settings is None:
        outlet = Outlet(name=outlet_name, currency=currency, gst_rate=Decimal(gst_rate))
        db.session.add(outlet)
        db.session.flush()
        settings = StoreSettings(id=1, current_outlet_id=outlet.id, gst_rate=Decimal(gst_rate), currency=currency)
        db.session.add(settings)
        db.session.commit()
        click.echo(f"PASS Created outlet: {outlet.name} (ID: {outlet.id}, GST {outlet.gst_rate}%)")
    else:
        click.echo("PASS Settings already present")

    default_password = "Password123!"
    for username, role in (("admin", "admin"), ("manager", "manager"), ("cashier", "cashier")):
        try:
            auth_service.create_staff(username, default_password, role=role)
            click.echo(f"PASS Created staff: {username} ({role})")
        except DomainError as e:
            db.session.rollback()
            click.echo(f"WARN  {e.message}, skipping...")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin / manager / cashier -> {default_password}")


@click.group('staff')
def staff_group():
    """Staff account commands."""


@staff_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(sorted(auth_service.ROLE_RANKS)), default='cashier')
@click.option('--email', default=None)
@with_appcontext
def create_staff(username, password, role, email):
    try:
        staff = auth_service.create_staff(username, password, role=role, email=email)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created staff: {staff.username} ({staff.role}, ID: {staff.id})")


@staff_group.command('list')
@with_appcontext
def list_staff():
    rows = db.session.query(Staff).order_by(Staff.id).all()
    if not rows:
        click.echo("No staff found.")
        return
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active'}")
    for s in rows:
        click.echo(f"{s.id:<5} {s.username:<20} {s.role:<10} {'yes' if s.is_active else 'no'}")


@click.group('catalog')
def catalog_group():
    """Catalog commands."""


@catalog_group.command('add-product')
@click.option('--name', required=True)
@click.option('--price', required=True)
@click.option('--stock', type=int, default=0)
@click.option('--sku', default=None)
@click.option('--category', default=None)
@click.option('--untracked', is_flag=True, help='Never check or move stock for this product')
@with_appcontext
def add_product(name, price, stock, sku, category, untracked):
    if stock < 0:
        raise click.ClickException("stock cannot be negative")
    product = Product(
        name=name,
        price=Decimal(price),
        stock=stock,
        sku=sku,
        category=category,
        track_inventory=not untracked,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock {product.stock})")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(catalog_group)
