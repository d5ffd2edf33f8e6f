# Overview: Flask CLI command groups for bootstrap, demo data, and ledger inspection.

# backend/scanpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to scanpos (PowerShell: $env:FLASK_APP="scanpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; existing data is kept).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load a small demo catalog with opening stock and a few sales.
#
# Stock ledger:
# - python -m flask stock reconcile
#   List products whose current_stock differs from the sum of their movements.
#   Exits with status 1 when any drift is found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Supplier, Product
from .services import catalog_service
from .services.products_service import create_product
from .services.reporting_service import reconcile_ledger
from .services.stock_service import sell_stock
from .services.calculations import cents_to_str


DEMO_CATEGORIES = ["Beverages", "Snacks", "Household"]

DEMO_SUPPLIERS = [
    {"name": "Northwind Distribution", "email": "orders@northwind.local", "phone": "555-0100"},
    {"name": "Acme Wholesale", "email": "sales@acme.local", "phone": "555-0199"},
]

# (barcode, title, name, cost, price, tax bps, opening stock, min stock, category, supplier)
DEMO_PRODUCTS = [
    ("7501055300075", "Cola 600ml", "Cola soft drink 600ml bottle", 850, 1500, 1600, 48, 12, "Beverages", "Northwind Distribution"),
    ("7501000111206", "Mineral Water 1L", "Sparkling mineral water 1L", 600, 1200, 1600, 36, 12, "Beverages", "Northwind Distribution"),
    ("7501011123588", "Potato Chips 45g", "Salted potato chips 45g bag", 700, 1800, 1600, 30, 10, "Snacks", "Acme Wholesale"),
    ("7500435126021", "Chocolate Bar", "Milk chocolate bar 40g", 900, 2000, 1600, 5, 8, "Snacks", "Acme Wholesale"),
    ("7501025403027", "Dish Soap 750ml", "Lemon dish soap 750ml", 2100, 3900, 1600, 12, 4, "Household", "Acme Wholesale"),
]

# (barcode, quantity)
DEMO_SALES = [
    ("7501055300075", 6),
    ("7501011123588", 3),
    ("7501055300075", 2),
    ("7500435126021", 1),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load a demo catalog through the normal service layer.

    Existing rows (matched by name or barcode) are left alone, so the command
    can be re-run. Opening stock and sales go through the stock engine, so
    the ledger stays consistent.
    """
    db.create_all()

    categories = {}
    for name in DEMO_CATEGORIES:
        existing = db.session.query(Category).filter_by(name=name).first()
        categories[name] = existing or catalog_service.create_entry("category", patch={"name": name})

    suppliers = {}
    for data in DEMO_SUPPLIERS:
        existing = db.session.query(Supplier).filter_by(name=data["name"]).first()
        suppliers[data["name"]] = existing or catalog_service.create_entry("supplier", patch=dict(data))

    created = 0
    for barcode, title, name, cost, price, tax, stock, min_stock, category, supplier in DEMO_PRODUCTS:
        if db.session.query(Product.id).filter_by(barcode=barcode).first():
            click.echo(f"WARN  Product {barcode} already exists, skipping...")
            continue
        create_product(
            patch={
                "barcode": barcode,
                "title": title,
                "name": name,
                "cost_price_cents": cost,
                "sale_price_cents": price,
                "tax_rate_bps": tax,
                "current_stock": stock,
                "min_stock": min_stock,
                "category_id": categories[category].id,
                "supplier_id": suppliers[supplier].id,
            },
            created_by="seed-demo",
        )
        created += 1
        click.echo(f"PASS Created product: {title} ({barcode}) stock={stock}")

    if created:
        for barcode, quantity in DEMO_SALES:
            _, sale = sell_stock(product_ref=barcode, quantity=quantity, created_by="seed-demo")
            click.echo(f"PASS Sale #{sale.id}: {quantity} x {barcode} total={cents_to_str(sale.total_cents)}")

    click.echo(f"DONE Demo data loaded ({created} new product(s)).")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@with_appcontext
def reconcile():
    """Compare current_stock with the movement ledger for every product."""
    drifted = reconcile_ledger()
    if not drifted:
        click.echo("PASS All products match the stock ledger.")
        return

    click.echo(f"FAIL {len(drifted)} product(s) out of sync:")
    for row in drifted:
        click.echo(
            f"   #{row['product_id']} {row['barcode']}: "
            f"current_stock={row['current_stock']} ledger={row['ledger_stock']} drift={row['drift']:+d}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
