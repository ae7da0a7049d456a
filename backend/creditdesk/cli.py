# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/creditdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to creditdesk (PowerShell: $env:FLASK_APP="creditdesk").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent; use Flask-Migrate for schema changes).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Demo categories, products and two technical services.
#
# Credit ledger:
# - python -m flask credit list [--all]
#   List technical services with balance and limit.
# - python -m flask credit verify [--id 3] [--fix]
#   Recompute balances from transactions + sales and report (or repair) drift.
# - python -m flask credit history 3 [--limit 20]
#   Raw audit rows for one account (credit_sale rows included), newest first.
# - python -m flask credit purge-account 3 --yes
#   Hard delete an account with ALL of its transactions, sales and history.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Product, TechnicalService
from .services import account_service, history_service

CLI_OPERATOR = "cli"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Seed demo catalog and technical services (idempotent by name)."""
    category = db.session.query(Category).filter_by(name="Spare Parts").first()
    if not category:
        category = Category(name="Spare Parts", slug="spare-parts", profit_margin_bps=2500)
        db.session.add(category)
        db.session.flush()
        click.echo(f"PASS Created category: {category.name} (margin {category.profit_margin_bps} bps)")

    demo_products = [
        ("SP-001", "Compressor Relay", 4000, 6500, 40),
        ("SP-002", "Drain Pump", 12000, 18000, 15),
        ("SP-003", "Door Gasket", None, 3500, 60),
    ]
    for sku, name, cost, price, stock in demo_products:
        if db.session.query(Product).filter_by(sku=sku).first():
            continue
        db.session.add(Product(
            category_id=category.id,
            sku=sku,
            name=name,
            cost_price_cents=cost,
            price_cents=price,
            stock_quantity=stock,
        ))
        click.echo(f"PASS Created product: {sku} {name}")
    db.session.commit()

    demo_services = [
        {"name": "Yilmaz Technical Service", "contact_person": "Ahmet Yilmaz", "tax_number": "1234567890", "credit_limit_cents": 5_000_000},
        {"name": "Demir Repair", "contact_person": "Mehmet Demir", "tax_number": "0987654321", "credit_limit_cents": 3_000_000},
    ]
    for payload in demo_services:
        if db.session.query(TechnicalService).filter_by(name=payload["name"]).first():
            continue
        account = account_service.create_account(payload, created_by=CLI_OPERATOR)
        click.echo(f"PASS Created technical service: {account.name} (ID: {account.id})")


@click.group('credit')
def credit_group():
    """Technical service credit ledger commands."""


@credit_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def list_accounts(include_inactive):
    """List technical services with balances."""
    accounts = account_service.list_accounts(include_inactive=include_inactive)
    if not accounts:
        click.echo("No technical services found.")
        return

    click.echo(f"\n{'ID':<5} {'Name':<32} {'Balance':>12} {'Limit':>12} {'Active':<6}")
    click.echo("-" * 72)
    for a in accounts:
        flag = "" if a.current_balance_cents <= a.credit_limit_cents else " OVER"
        click.echo(
            f"{a.id:<5} {a.name[:32]:<32} {a.current_balance_cents / 100:>12,.2f} "
            f"{a.credit_limit_cents / 100:>12,.2f} {'yes' if a.is_active else 'no':<6}{flag}"
        )


@credit_group.command('verify')
@click.option('--id', 'account_id', type=int, help='Only this technical service')
@click.option('--fix', is_flag=True, help='Overwrite drifted balances with the recomputed value')
@with_appcontext
def verify_balances(account_id, fix):
    """Recompute balances from the ledger and report drift."""
    if account_id is not None:
        ids = [account_id]
    else:
        ids = [a.id for a in account_service.list_accounts(include_inactive=True)]

    drifted = 0
    for service_id in ids:
        result = account_service.verify_balance(service_id, fix=fix, created_by=CLI_OPERATOR)
        if result.is_consistent:
            click.echo(f"PASS #{service_id}: {result.stored_balance_cents} cents")
            continue
        drifted += 1
        status = "FIXED" if result.fixed else "DRIFT"
        click.echo(
            f"{status} #{service_id}: stored={result.stored_balance_cents} "
            f"recomputed={result.recomputed_balance_cents} drift={result.drift_cents}"
        )

    click.echo(f"\n{len(ids)} checked, {drifted} drifted.")
    if drifted and not fix:
        raise SystemExit(1)


@credit_group.command('history')
@click.argument('account_id', type=int)
@click.option('--limit', default=20, show_default=True, help='Rows to show')
@with_appcontext
def show_history(account_id, limit):
    """Print the audit trail of one technical service."""
    if not db.session.get(TechnicalService, account_id):
        raise click.ClickException(f"Technical service {account_id} not found")

    rows = history_service.list_history_rows(account_id)[:limit]
    for row in rows:
        balance = "" if row.new_balance_cents is None else f" -> {row.new_balance_cents}"
        click.echo(f"{row.created_at:%Y-%m-%d %H:%M} {row.action_type:<12} {row.description}{balance}")
    if not rows:
        click.echo("No history.")


@credit_group.command('purge-account')
@click.argument('account_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def purge_account(account_id, yes):
    """
    DANGER: Hard delete a technical service and its whole ledger and audit
    history. Prefer deactivating (DELETE /api/technical-services/<id>).
    """
    account = db.session.get(TechnicalService, account_id)
    if not account:
        raise click.ClickException(f"Technical service {account_id} not found")

    if not yes:
        click.confirm(
            f"WARN This permanently deletes '{account.name}' and ALL of its history. Are you sure?",
            abort=True,
        )

    counts = account_service.purge_account(account_id, created_by=CLI_OPERATOR)
    click.echo(
        f"DELETE Purged technical service {account_id}: "
        f"{counts['transactions']} transactions, {counts['sales']} sales, {counts['history']} history rows"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(credit_group)
