# Overview: Flask CLI command groups for MDR billing jobs and ledger maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app posledger <group> <command> [options]
#
# MDR billing (schedule generate on the 1st, escalate daily):
# - python -m flask --app posledger billing generate
#   Create last month's MDR invoices for every tenant with fee-bearing sales. Idempotent.
# - python -m flask --app posledger billing escalate
#   Move overdue invoices to past_due, and long-overdue ones to suspended.
# - python -m flask --app posledger billing list --tenant-id 1 [--status unpaid]
#   List a tenant's invoices.
# - python -m flask --app posledger billing pay --tenant-id 1 --billing-id 3
#   Record payment of an invoice (applies the late penalty when due).
#
# Ledger:
# - python -m flask --app posledger ledger init-coa --tenant-id 1
#   Seed the default chart of accounts (skips codes that already exist).
# - python -m flask --app posledger ledger process-outbox [--limit 100]
#   Post pending sale/refund journals; retries failed rows until max attempts.
# - python -m flask --app posledger ledger trial-balance --tenant-id 1
#   Print the trial balance from current account balances.

import click
from flask.cli import with_appcontext

from .errors import SettlementError
from .services import accounting_service, billing_service, journal_service


@click.group('billing')
def billing_group():
    """MDR billing jobs."""


@billing_group.command('generate')
@with_appcontext
def billing_generate_cli():
    """Generate MDR invoices for the previous month."""
    created = billing_service.generate_monthly_billings()
    for bill in created:
        click.echo(
            f"PASS tenant={bill.tenant_id} month={bill.billing_month} "
            f"transactions={bill.total_transactions} fee={bill.total_fee}"
        )
    click.echo(f"Created {len(created)} invoices.")


@billing_group.command('escalate')
@with_appcontext
def billing_escalate_cli():
    """Escalate overdue invoices."""
    counts = billing_service.escalate_overdue_billings()
    click.echo(f"past_due: {counts['past_due']}, suspended: {counts['suspended']}")


@billing_group.command('list')
@click.option('--tenant-id', type=int, required=True)
@click.option('--status', default=None, help='unpaid | past_due | suspended | paid')
@with_appcontext
def billing_list_cli(tenant_id, status):
    """List invoices for a tenant."""
    bills = billing_service.list_billings(tenant_id, status=status)
    if not bills:
        click.echo("No invoices found.")
        return
    for bill in bills:
        click.echo(
            f"{bill.id:>5}  {bill.billing_month}  {bill.status:<10} "
            f"fee={bill.total_fee} penalty={bill.penalty_fee}"
        )


@billing_group.command('pay')
@click.option('--tenant-id', type=int, required=True)
@click.option('--billing-id', type=int, required=True)
@with_appcontext
def billing_pay_cli(tenant_id, billing_id):
    """Mark an invoice paid."""
    try:
        bill = billing_service.pay_billing(tenant_id, billing_id)
    except SettlementError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Paid invoice {bill.id}: amount={bill.amount_paid} (penalty {bill.penalty_fee})")


@click.group('ledger')
def ledger_group():
    """Accounting ledger maintenance."""


@ledger_group.command('init-coa')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def ledger_init_coa_cli(tenant_id):
    """Seed the default chart of accounts for a tenant."""
    try:
        created = accounting_service.initialize_default_coa(tenant_id)
    except SettlementError as e:
        raise click.ClickException(e.message)
    click.echo(f"Created {len(created)} accounts for tenant {tenant_id}.")


@ledger_group.command('process-outbox')
@click.option('--limit', type=int, default=100, show_default=True)
@click.option('--tenant-id', type=int, default=None)
@with_appcontext
def ledger_process_outbox_cli(limit, tenant_id):
    """Post pending journals from the outbox."""
    counts = journal_service.process_journal_outbox(limit=limit, tenant_id=tenant_id)
    click.echo(
        f"posted: {counts['posted']}, skipped: {counts['skipped']}, "
        f"failed: {counts['failed']}, pending: {counts['pending']}"
    )


@ledger_group.command('trial-balance')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def ledger_trial_balance_cli(tenant_id):
    """Print the trial balance."""
    report = accounting_service.trial_balance(tenant_id)
    for row in report["accounts"]:
        click.echo(f"{row['code']:<6} {row['name']:<32} {row['debit']:>15} {row['credit']:>15}")
    click.echo("-" * 72)
    click.echo(f"{'TOTAL':<39} {report['total_debit']:>15} {report['total_credit']:>15}")
    click.echo("BALANCED" if report["is_balanced"] else "NOT BALANCED")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(billing_group)
    app.cli.add_command(ledger_group)
