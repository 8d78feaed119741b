# Overview: Pytest coverage for the double-entry accounting ledger and its reports.

from decimal import Decimal

import pytest

from posledger.errors import ConflictError, NotFoundError, UnbalancedJournalError, ValidationError
from posledger.models import ChartOfAccount, JournalEntry
from posledger.models.accounting import ACCOUNT_TYPE_EXPENSE, SUBTYPE_CASH, SUBTYPE_SALES, SUBTYPE_TAX
from posledger.services import accounting_service
from posledger.services.accounting_service import JournalLine


class TestChartOfAccounts:
    def test_default_coa_seeded(self, db_session, tenant_a):
        created = accounting_service.initialize_default_coa(tenant_a.id)

        codes = {a.code for a in created}
        assert {"1000", "1100", "2200", "4100", "5400"} <= codes
        assert all(a.is_system for a in created)
        assert all(a.balance == 0 for a in created)

    def test_default_coa_is_idempotent(self, db_session, tenant_a):
        first = accounting_service.initialize_default_coa(tenant_a.id)
        second = accounting_service.initialize_default_coa(tenant_a.id)

        assert len(first) == len(accounting_service.DEFAULT_CHART_OF_ACCOUNTS)
        assert second == []
        assert db_session.query(ChartOfAccount).filter_by(tenant_id=tenant_a.id).count() == len(first)

    def test_system_accounts_by_subtype(self, db_session, tenant_a, coa_a):
        accounts = accounting_service.find_system_accounts(tenant_a.id)

        assert accounts[SUBTYPE_CASH].code == "1100"
        assert accounts[SUBTYPE_SALES].code == "4100"
        assert accounts[SUBTYPE_TAX].code == "2200"
        assert accounting_service.find_account_by_subtype(tenant_a.id, "nonexistent") is None

    def test_create_account(self, db_session, tenant_a, coa_a):
        account = accounting_service.create_account(
            tenant_a.id,
            code="5500",
            name="Beban MDR",
            account_type=ACCOUNT_TYPE_EXPENSE,
            parent_id=coa_a["5000"].id,
        )
        assert account.is_system is False
        assert account.parent_id == coa_a["5000"].id

    def test_duplicate_code_conflicts(self, db_session, tenant_a, coa_a):
        with pytest.raises(ConflictError):
            accounting_service.create_account(tenant_a.id, code="1100", name="Kas 2", account_type="asset")

    def test_invalid_account_type(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            accounting_service.create_account(tenant_a.id, code="9000", name="X", account_type="magic")

    def test_same_code_allowed_in_other_tenant(self, db_session, tenant_a, tenant_b, coa_a):
        created = accounting_service.initialize_default_coa(tenant_b.id)
        assert len(created) == len(accounting_service.DEFAULT_CHART_OF_ACCOUNTS)


class TestJournalValidation:
    def test_requires_two_lines(self, db_session, tenant_a, coa_a):
        with pytest.raises(UnbalancedJournalError):
            accounting_service.create_journal(
                tenant_a.id,
                [JournalLine(account_id=coa_a["1100"].id, debit=Decimal("100"))],
            )

    def test_unbalanced_rejected(self, db_session, tenant_a, coa_a):
        with pytest.raises(UnbalancedJournalError):
            accounting_service.create_journal(tenant_a.id, [
                JournalLine(account_id=coa_a["1100"].id, debit=Decimal("100")),
                JournalLine(account_id=coa_a["4100"].id, credit=Decimal("90")),
            ])
        assert db_session.query(JournalEntry).count() == 0

    def test_line_with_both_sides_rejected(self, db_session, tenant_a, coa_a):
        with pytest.raises(UnbalancedJournalError):
            accounting_service.create_journal(tenant_a.id, [
                JournalLine(account_id=coa_a["1100"].id, debit=Decimal("100"), credit=Decimal("100")),
                JournalLine(account_id=coa_a["4100"].id, credit=Decimal("100")),
                JournalLine(account_id=coa_a["4100"].id, debit=Decimal("100")),
            ])

    def test_negative_amount_rejected(self, db_session, tenant_a, coa_a):
        with pytest.raises(UnbalancedJournalError):
            accounting_service.create_journal(tenant_a.id, [
                JournalLine(account_id=coa_a["1100"].id, debit=Decimal("-100")),
                JournalLine(account_id=coa_a["4100"].id, credit=Decimal("-100")),
            ])

    def test_unbalanced_is_a_validation_error(self):
        assert issubclass(UnbalancedJournalError, ValidationError)

    def test_account_of_other_tenant_rejected(self, db_session, tenant_a, tenant_b, coa_a):
        foreign = accounting_service.initialize_default_coa(tenant_b.id)[0]
        with pytest.raises(NotFoundError):
            accounting_service.create_journal(tenant_a.id, [
                JournalLine(account_id=coa_a["1100"].id, debit=Decimal("100")),
                JournalLine(account_id=foreign.id, credit=Decimal("100")),
            ])


class TestPostingAndBalances:
    def _post_sale(self, tenant_id, coa, total="11000", subtotal="10000", tax="1000", number=None):
        return accounting_service.create_journal(
            tenant_id,
            [
                JournalLine(account_id=coa["1100"].id, debit=Decimal(total)),
                JournalLine(account_id=coa["4100"].id, credit=Decimal(subtotal)),
                JournalLine(account_id=coa["2200"].id, credit=Decimal(tax)),
            ],
            entry_number=number,
            description="Manual sale",
        )

    def test_balances_move_by_normal_side(self, db_session, tenant_a, coa_a):
        entry = self._post_sale(tenant_a.id, coa_a)

        assert entry.total_debit == entry.total_credit == Decimal("11000")
        assert len(entry.lines) == 3

        cash = db_session.get(ChartOfAccount, coa_a["1100"].id)
        sales = db_session.get(ChartOfAccount, coa_a["4100"].id)
        tax = db_session.get(ChartOfAccount, coa_a["2200"].id)
        assert cash.balance == Decimal("11000")
        assert sales.balance == Decimal("10000")
        assert tax.balance == Decimal("1000")

    def test_increment_is_cumulative(self, db_session, tenant_a, coa_a):
        self._post_sale(tenant_a.id, coa_a)
        self._post_sale(tenant_a.id, coa_a)

        db_session.expire_all()
        assert db_session.get(ChartOfAccount, coa_a["1100"].id).balance == Decimal("22000")

    def test_duplicate_entry_number_conflicts(self, db_session, tenant_a, coa_a):
        self._post_sale(tenant_a.id, coa_a, number="JRN-MAN-1")
        with pytest.raises(ConflictError):
            self._post_sale(tenant_a.id, coa_a, number="JRN-MAN-1")

        db_session.expire_all()
        assert db_session.get(ChartOfAccount, coa_a["1100"].id).balance == Decimal("11000")

    def test_increment_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            accounting_service.increment_account_balance(999999, Decimal("1"))

    def test_get_and_list_journals(self, db_session, tenant_a, tenant_b, coa_a):
        entry = self._post_sale(tenant_a.id, coa_a)
        self._post_sale(tenant_a.id, coa_a)

        assert accounting_service.get_journal(tenant_a.id, entry.id).id == entry.id
        with pytest.raises(NotFoundError):
            accounting_service.get_journal(tenant_b.id, entry.id)

        entries, total = accounting_service.list_journals(tenant_a.id, per_page=1)
        assert total == 2
        assert len(entries) == 1

        entries, total = accounting_service.list_journals(tenant_b.id)
        assert (entries, total) == ([], 0)


class TestReports:
    def test_trial_balance_balances(self, db_session, tenant_a, coa_a):
        accounting_service.create_journal(tenant_a.id, [
            JournalLine(account_id=coa_a["1100"].id, debit=Decimal("27000")),
            JournalLine(account_id=coa_a["4100"].id, credit=Decimal("25000")),
            JournalLine(account_id=coa_a["2200"].id, credit=Decimal("2000")),
        ])

        report = accounting_service.trial_balance(tenant_a.id)

        assert report["total_debit"] == Decimal("27000")
        assert report["total_credit"] == Decimal("27000")
        assert report["is_balanced"] is True
        rows = {row["code"]: row for row in report["accounts"]}
        assert rows["1100"]["debit"] == Decimal("27000")
        assert rows["4100"]["credit"] == Decimal("25000")

    def test_profit_loss_and_balance_sheet(self, db_session, tenant_a, coa_a):
        accounting_service.create_journal(tenant_a.id, [
            JournalLine(account_id=coa_a["1100"].id, debit=Decimal("27000")),
            JournalLine(account_id=coa_a["4100"].id, credit=Decimal("25000")),
            JournalLine(account_id=coa_a["2200"].id, credit=Decimal("2000")),
        ])
        accounting_service.create_journal(tenant_a.id, [
            JournalLine(account_id=coa_a["5300"].id, debit=Decimal("4000")),
            JournalLine(account_id=coa_a["1100"].id, credit=Decimal("4000")),
        ])

        pl = accounting_service.profit_loss(tenant_a.id)
        assert pl["total_revenue"] == Decimal("25000")
        assert pl["total_expense"] == Decimal("4000")
        assert pl["net_income"] == Decimal("21000")

        bs = accounting_service.balance_sheet(tenant_a.id)
        assert bs["total_assets"] == Decimal("23000")
        assert bs["total_liabilities"] == Decimal("2000")
        assert bs["current_earnings"] == Decimal("21000")
        assert bs["is_balanced"] is True
