# Overview: Pytest coverage for the billing and ledger CLI commands.

from datetime import datetime
from decimal import Decimal

from posledger.models import ChartOfAccount, TenantBilling, Transaction
from posledger.services import billing_service


class TestLedgerCommands:
    def test_init_coa(self, app, db_session, tenant_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "init-coa", "--tenant-id", str(tenant_a.id)])

        assert result.exit_code == 0
        assert "Created 19 accounts" in result.output
        assert db_session.query(ChartOfAccount).filter_by(tenant_id=tenant_a.id).count() == 19

    def test_trial_balance(self, app, db_session, tenant_a, coa_a):
        result = app.test_cli_runner().invoke(args=["ledger", "trial-balance", "--tenant-id", str(tenant_a.id)])

        assert result.exit_code == 0
        assert "Kas" in result.output
        assert "BALANCED" in result.output

    def test_process_outbox_with_nothing_pending(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["ledger", "process-outbox"])

        assert result.exit_code == 0
        assert "posted: 0" in result.output


class TestBillingCommands:
    def test_generate(self, app, db_session, tenant_a, outlet_a, monkeypatch):
        db_session.add(Transaction(
            tenant_id=tenant_a.id,
            outlet_id=outlet_a.id,
            cashier_id=1,
            transaction_number="TXN-1",
            subtotal=Decimal("25000"),
            total_amount=Decimal("25000"),
            total_fee=Decimal("300"),
            created_at=datetime(2026, 2, 10, 5, 0),
        ))
        db_session.commit()
        monkeypatch.setattr(billing_service, "billing_now", lambda: datetime(2026, 3, 1, 8, 0))

        result = app.test_cli_runner().invoke(args=["billing", "generate"])

        assert result.exit_code == 0
        assert "Created 1 invoices." in result.output
        assert db_session.query(TenantBilling).filter_by(billing_month="02-2026").count() == 1

    def test_pay_unknown_bill_fails(self, app, db_session, tenant_a):
        result = app.test_cli_runner().invoke(
            args=["billing", "pay", "--tenant-id", str(tenant_a.id), "--billing-id", "999"],
        )

        assert result.exit_code != 0
        assert "billing invoice not found" in result.output
