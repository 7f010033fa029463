# Overview: Flask CLI command group for bootstrap and shift inspection.

# backend/brewpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app brewpos brewpos <command> [options]
#
# - python -m flask --app brewpos brewpos init-db
#   Create all tables (idempotent). Use Flask-Migrate ("flask db ...") for schema changes.
# - python -m flask --app brewpos brewpos reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask --app brewpos brewpos seed-catalog
#   Add the starter coffee menu (skips products that already exist).
# - python -m flask --app brewpos brewpos shifts --status closed --limit 20
#   List recent shifts with their reconciliation.
# - python -m flask --app brewpos brewpos stock-attention
#   List counted products that are sold out or running low.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, ProductVariant
from .services import shift_service, stock_service


# name, category, price, starting stock (None = not counted), [(group, option, delta), ...]
STARTER_CATALOG = [
    ("Americano", "Coffee", "95.00", None, [("Size", "Regular", "0.00"), ("Size", "Large", "20.00"), ("Add-on", "Extra Shot", "30.00")]),
    ("Cafe Latte", "Coffee", "120.00", None, [("Size", "Regular", "0.00"), ("Size", "Large", "25.00"), ("Milk", "Oat Milk", "35.00")]),
    ("Spanish Latte", "Coffee", "140.00", None, [("Size", "Regular", "0.00"), ("Size", "Large", "25.00")]),
    ("Matcha Latte", "Non-Coffee", "150.00", None, [("Milk", "Oat Milk", "35.00")]),
    ("Chocolate", "Non-Coffee", "110.00", None, []),
    ("Butter Croissant", "Pastry", "85.00", 24, []),
]


@click.group('brewpos')
def brewpos_group():
    """Bootstrap and inspection commands."""


@brewpos_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@brewpos_group.command('reset-db')
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

    click.echo("PASS Database reset complete. Run 'seed-catalog' to add products.")


@brewpos_group.command('seed-catalog')
@with_appcontext
def seed_catalog():
    """Add the starter menu. Products are matched by name; existing ones are left alone."""
    created = 0
    for name, category, price, stock, variants in STARTER_CATALOG:
        if db.session.query(Product).filter_by(name=name).first():
            click.echo(f"SKIP {name} already exists")
            continue
        product = Product(
            name=name,
            category=category,
            price=Decimal(price),
            is_available=True,
            track_stock=stock is not None,
            stock_quantity=stock,
        )
        for group_name, option, delta in variants:
            product.variants.append(ProductVariant(
                group_name=group_name,
                name=option,
                price_delta=Decimal(delta),
                is_active=True,
            ))
        db.session.add(product)
        created += 1

    db.session.commit()
    click.echo(f"PASS Seeded {created} product(s).")


@brewpos_group.command('shifts')
@click.option('--status', type=click.Choice(['active', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(status, limit):
    """
    List recent shifts.

    Example:
        flask brewpos shifts
        flask brewpos shifts --status closed
    """
    shifts, _ = shift_service.list_shifts(status=status, per_page=limit)

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Location':<10} {'Status':<8} {'Opened':<20} {'Float':>10} {'Cash sales':>12} {'Expected':>10} {'Variance':>10} {'Flag'}")
    click.echo("="*110)

    for shift in shifts:
        expected = f"{shift.expected_cash:.2f}" if shift.expected_cash is not None else "-"
        variance = f"{shift.variance:+.2f}" if shift.variance is not None else "-"
        flag = "DISCREPANT" if shift.is_discrepant else ""

        click.echo(f"{shift.id:<5} {shift.location:<10} {shift.status.value:<8} "
                   f"{str(shift.opened_at)[:19]:<20} {shift.opening_cash_float:>10.2f} "
                   f"{shift.cash_sales_total:>12.2f} {expected:>10} {variance:>10} {flag}")

    click.echo("="*110 + "\n")


@brewpos_group.command('stock-attention')
@with_appcontext
def stock_attention_cli():
    """List counted products that are sold out or at their low-stock threshold."""
    products = stock_service.products_needing_attention()

    if not products:
        click.echo("PASS All counted products are stocked.")
        return

    click.echo(f"{'ID':<5} {'Product':<30} {'On hand':>8} {'Threshold':>10} {'State'}")
    for product in products:
        state = "SOLD OUT" if product.is_sold_out else "LOW"
        click.echo(f"{product.id:<5} {product.name:<30} {product.stock_quantity or 0:>8} "
                   f"{product.low_stock_threshold:>10} {state}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(brewpos_group)
