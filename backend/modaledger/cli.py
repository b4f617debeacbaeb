# Overview: Flask CLI command groups for bootstrap, ledger inspection, imports and backups.

# backend/modaledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Delete every product, customer and sale.
#
# Ledger inspection:
# - python -m flask ledger summary [--as-of 2024-05-01]
#   Revenue, received, receivable and overdue count.
# - python -m flask ledger check [--dry-run]
#   Find installment schedules that do not add up to their sale total and fix them.
#
# Catalog import:
# - python -m flask catalog import estoque.csv [--dry-run]
#   Upsert products by sku from a CSV (comma or semicolon) or .xlsx export.
#
# Backups:
# - python -m flask backup export backup.json
# - python -m flask backup restore backup.json --yes

import json

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import backup_service, import_service, integrity_service, reporting_service
from .services.import_schemas import parse_product_rows, parse_product_workbook
from .services.money import from_cents
from .time_utils import parse_iso_date


def _money(cents: int) -> str:
    return f"{from_cents(cents):,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
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

    click.echo("PASS Database reset complete.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """Delete every product, customer and sale."""
    if not yes:
        click.confirm("WARN This will DELETE all products, customers and sales. Are you sure?", abort=True)

    result = backup_service.wipe_all(backup_service.WIPE_CONFIRM_TEXT)
    removed = result["removed"]
    click.echo(
        f"PASS Removed {removed['products']} products, {removed['customers']} customers, "
        f"{removed['sales']} sales."
    )


@click.group('ledger')
def ledger_group():
    """Installment ledger inspection commands."""


@ledger_group.command('summary')
@click.option('--as-of', 'as_of', help='Reference date (YYYY-MM-DD); defaults to today')
@with_appcontext
def ledger_summary(as_of):
    """Print the dashboard totals."""
    try:
        today = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("use YYYY-MM-DD", param_hint="--as-of")

    data = reporting_service.dashboard_summary(today=today)
    summary = data["summary"]
    click.echo("\n" + "=" * 48)
    click.echo(f"{'Revenue':<24} {_money(summary['total_revenue_cents']):>20}")
    click.echo(f"{'Received':<24} {_money(summary['total_paid_cents']):>20}")
    click.echo(f"{'Receivable':<24} {_money(summary['total_receivable_cents']):>20}")
    click.echo(f"{'Overdue installments':<24} {summary['overdue_count']:>20}")
    click.echo("=" * 48)
    counts = data["counts"]
    click.echo(f"{counts['products']} products, {counts['customers']} customers, {counts['sales']} sales\n")


@ledger_group.command('check')
@click.option('--dry-run', is_flag=True, help='Report issues without fixing them')
@with_appcontext
def ledger_check(dry_run):
    """Find and correct sales whose installments do not add up to the total."""
    report = integrity_service.check_ledger(fix=not dry_run)
    click.echo(f"Checked {report.checked_sales} sales.")
    if not report.issues:
        click.echo("PASS No integrity issues found.")
        return
    for issue in report.issues:
        click.echo(f"WARN  {issue} {issue.details}")
    if dry_run:
        click.echo(f"{len(report.issues)} issue(s) found; run without --dry-run to fix.")
    else:
        click.echo(f"PASS {len(report.issues)} issue(s) corrected.")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--dry-run', is_flag=True, help='Only show what would change')
@with_appcontext
def catalog_import(path, dry_run):
    """Upsert products by sku from a CSV or .xlsx file."""
    if path.lower().endswith((".xlsx", ".xlsm")):
        with open(path, "rb") as fh:
            parsed = parse_product_workbook(fh)
    else:
        with open(path, encoding="utf-8-sig") as fh:
            parsed = parse_product_rows(fh.read())

    plan = import_service.plan_import(parsed)
    click.echo(
        f"Plan: {plan.added} new, {plan.updated} updated, "
        f"{plan.unchanged} unchanged, {plan.errors} errors"
    )
    for row in plan.error_rows:
        click.echo(f"WARN  {row['error']}")
    if dry_run:
        return

    def progress(processed, total):
        click.echo(f"  {processed}/{total}")

    outcome = import_service.apply_import(parsed, on_progress=progress)
    result = outcome["result"]
    click.echo(result["message"])
    for key in result["failed_keys"]:
        click.echo(f"FAIL  {key}")


@click.group('backup')
def backup_group():
    """Backup export and restore."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def backup_export(path):
    data = backup_service.export_backup()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, ensure_ascii=False, indent=2)
    click.echo(
        f"PASS Exported {len(data['products'])} products, {len(data['customers'])} customers, "
        f"{len(data['sales'])} sales to {path}"
    )


@backup_group.command('restore')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def backup_restore(path, yes):
    """Replace all data with the contents of a backup file."""
    if not yes:
        click.confirm("WARN Restoring replaces ALL current data. Are you sure?", abort=True)

    with open(path, encoding="utf-8") as fh:
        try:
            payload = json.load(fh)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Not a JSON file: {e}")

    try:
        result = backup_service.restore_backup(payload, confirm=True)
    except LedgerError as e:
        raise click.ClickException(str(e))

    restored = result["restored"]
    click.echo(
        f"PASS Restored {restored['products']} products, {restored['customers']} customers, "
        f"{restored['sales']} sales."
    )
    for issue in result["integrity"]["issues"]:
        click.echo(f"WARN  {issue['message']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(backup_group)
