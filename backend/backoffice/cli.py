# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "backoffice:create_app" (PowerShell: $env:FLASK_APP="backoffice:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a few demo products and a customer (opening stock goes through the movement log).
#
# Inventory inspection:
# - python -m flask inventory reconcile [--product-id 3]
#   Compare stock counters with the movement log; exits 1 on any discrepancy.
# - python -m flask inventory low-stock
#   List active products at or below their minimum threshold.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, products_service, customer_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Idempotently create demo catalogue data."""
    demo_products = [
        {"name": "Beras 5kg", "price_cents": 7500000, "unit": "sak", "category": "Sembako", "barcode": "8991000000011", "stock_quantity": 40},
        {"name": "Minyak Goreng 1L", "price_cents": 1800000, "unit": "botol", "category": "Sembako", "barcode": "8991000000028", "stock_quantity": 60},
        {"name": "Gula Pasir 1kg", "price_cents": 1600000, "unit": "kg", "category": "Sembako", "barcode": "8991000000035", "stock_quantity": 8},
    ]

    created = 0
    for patch in demo_products:
        if products_service.get_product_by_barcode(patch["barcode"]) is not None:
            continue
        products_service.create_product(patch=dict(patch))
        created += 1

    if not customer_service.list_customers():
        customer_service.create_customer(patch={"name": "Walk-in Regular", "phone": None, "address": None})

    click.echo(f"PASS Seeded {created} product(s).")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Only check this product')
@with_appcontext
def reconcile(product_id):
    """Verify stock_quantity == SUM(stock_movements.quantity) for every product."""
    discrepancies = inventory_service.reconcile_stock(product_id)

    if not discrepancies:
        click.echo("PASS Stock counters match the movement log.")
        return

    for d in discrepancies:
        current_app.logger.warning(
            "Stock discrepancy for product %s: counter=%s movements=%s difference=%s",
            d["product_id"], d["stock_quantity"], d["movement_total"], d["difference"],
        )
        click.echo(
            f"FAIL product {d['product_id']}: counter={d['stock_quantity']} "
            f"movements={d['movement_total']} difference={d['difference']}"
        )
    raise click.exceptions.Exit(1)


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or below their minimum stock threshold."""
    products = inventory_service.list_low_stock_products()
    if not products:
        click.echo("No low-stock products.")
        return

    click.echo(f"\n{'ID':<5} {'Name':<30} {'Stock':>7} {'Min':>5}")
    click.echo("=" * 50)
    for p in products:
        click.echo(f"{p.id:<5} {p.name:<30} {p.stock_quantity:>7} {p.min_stock_threshold:>5}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
