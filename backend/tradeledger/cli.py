# backend/tradeledger/cli.py
#
# Operator commands, run through the Flask CLI:
#
# Schema:
# - python -m flask --app tradeledger system init-db
#   Create all tables (development; production uses `flask db upgrade`).
# - python -m flask --app tradeledger system reset-db --yes
#   Drop and recreate every table. Destroys all data.
#
# Inventory:
# - python -m flask --app tradeledger inventory list [--low-stock]
# - python -m flask --app tradeledger inventory stock-in ITEM_ID QTY [--note TEXT]
#
# Ledger audits:
# - python -m flask --app tradeledger ledger balance CUSTOMER_ID
# - python -m flask --app tradeledger ledger verify
#   Replays every item's movements and checks every customer ledger.
#   Exits non-zero when any mismatch is found.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import customer_ledger_service, inventory_service
from .services.errors import LedgerError


@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm that all data will be destroyed')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table."""
    if not yes:
        raise click.UsageError("Refusing to reset the database without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('inventory')
def inventory_group():
    """Inventory inspection and manual stock movements."""


@inventory_group.command('list')
@click.option('--low-stock', is_flag=True, help='Only items at or below their low-stock limit')
@with_appcontext
def list_inventory(low_stock):
    items = inventory_service.list_items(db.session, low_stock_only=low_stock)
    if not items:
        click.echo("No inventory items")
        return

    click.echo(f"{'ID':<6} {'NAME':<30} {'QTY':>8} {'UNIT':<8} {'SELL':>12}")
    click.echo("=" * 68)
    for item in items:
        flag = "  LOW" if item.is_low_stock else ""
        click.echo(
            f"{item.id:<6} {item.name[:30]:<30} {item.quantity:>8} {item.unit:<8} "
            f"{(item.sell_price_cents or 0) / 100:>12.2f}{flag}"
        )


@inventory_group.command('stock-in')
@click.argument('item_id', type=int)
@click.argument('quantity', type=int)
@click.option('--note', default=None, help='Reason for the movement')
@with_appcontext
def stock_in_cli(item_id, quantity, note):
    """Add QUANTITY units to ITEM_ID."""
    try:
        item = inventory_service.stock_in(db.session, item_id=item_id, quantity=quantity, note=note)
    except LedgerError as exc:
        raise click.ClickException(f"{exc.code}: {exc}")
    click.echo(f"PASS {item.name} now at {item.quantity} {item.unit}")


@click.group('ledger')
def ledger_group():
    """Customer balance and ledger audit commands."""


@ledger_group.command('balance')
@click.argument('customer_id', type=int)
@with_appcontext
def ledger_balance(customer_id):
    try:
        balance = customer_ledger_service.get_balance(db.session, customer_id)
    except LedgerError as exc:
        raise click.ClickException(f"{exc.code}: {exc}")
    click.echo(f"Customer {customer_id}: {balance.balance_cents / 100:.2f} ({balance.status})")


@ledger_group.command('verify')
@with_appcontext
def ledger_verify():
    """
    Audit stored state against the append-only history.

    - Every item's quantity must equal the replay of its stock movements.
    - Every customer's ledger sum must equal paid minus total across sales,
      plus advances, minus refunds.
    """
    failures = 0

    click.echo("LIST Replaying inventory movements...")
    for item in inventory_service.list_items(db.session):
        result = inventory_service.reconcile_item(db.session, item.id)
        if not result["consistent"]:
            failures += 1
            click.echo(
                f"FAIL item {item.id}: stored {result['stored_quantity']}, "
                f"replayed {result['replayed_quantity']}"
            )

    click.echo("LIST Checking customer ledgers...")
    for customer in customer_ledger_service.list_customers(db.session):
        result = customer_ledger_service.verify_customer_ledger(db.session, customer.id)
        if not result["consistent"]:
            failures += 1
            click.echo(
                f"FAIL customer {customer.id}: ledger {result['ledger_balance_cents']}, "
                f"expected {result['expected_balance_cents']}"
            )

    if failures:
        click.echo(f"\nFAIL {failures} mismatch(es) found")
        raise SystemExit(1)
    click.echo("\nPASS Inventory and customer ledgers are consistent")


def register_commands(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(ledger_group)
