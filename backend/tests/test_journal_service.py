# Overview: Pytest coverage for outbox-based journal posting of sales and refunds.

from decimal import Decimal

from posledger.models import ChartOfAccount, JournalEntry, JournalOutbox, Transaction
from posledger.models.accounting import (
    JOURNAL_SOURCE_POS_SALE,
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_POSTED,
    OUTBOX_STATUS_SKIPPED,
)
from posledger.services import journal_service


def _sale(db_session, tenant, outlet, number="TXN-20260305-00001", subtotal="25000", tax="2000"):
    tx = Transaction(
        tenant_id=tenant.id,
        outlet_id=outlet.id,
        cashier_id=1,
        transaction_number=number,
        subtotal=Decimal(subtotal),
        tax_amount=Decimal(tax),
        total_amount=Decimal(subtotal) + Decimal(tax),
    )
    db_session.add(tx)
    db_session.flush()
    return tx


class TestSalePosting:
    def test_pending_row_posts_balanced_journal(self, db_session, tenant_a, outlet_a, coa_a):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        result = journal_service.process_outbox_entry(row.id)

        assert result.status == OUTBOX_STATUS_POSTED
        assert result.attempts == 1
        entry = db_session.get(JournalEntry, result.journal_entry_id)
        assert entry.entry_number == "JRN-SALE-TXN-20260305-00001"
        assert entry.total_debit == entry.total_credit == Decimal("27000")
        assert entry.reference_id == tx.id

        db_session.expire_all()
        assert db_session.get(ChartOfAccount, coa_a["1100"].id).balance == Decimal("27000")
        assert db_session.get(ChartOfAccount, coa_a["4100"].id).balance == Decimal("25000")
        assert db_session.get(ChartOfAccount, coa_a["2200"].id).balance == Decimal("2000")

    def test_no_tax_line_when_untaxed(self, db_session, tenant_a, outlet_a, coa_a):
        tx = _sale(db_session, tenant_a, outlet_a, subtotal="5000", tax="0")
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        result = journal_service.process_outbox_entry(row.id)

        entry = db_session.get(JournalEntry, result.journal_entry_id)
        assert len(entry.lines) == 2

    def test_missing_accounts_marks_skipped(self, db_session, tenant_a, outlet_a):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        result = journal_service.process_outbox_entry(row.id)

        assert result.status == OUTBOX_STATUS_SKIPPED
        assert db_session.query(JournalEntry).count() == 0

    def test_processing_twice_posts_once(self, db_session, tenant_a, outlet_a, coa_a):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        journal_service.process_outbox_entry(row.id)
        journal_service.process_outbox_entry(row.id)

        assert db_session.query(JournalEntry).count() == 1


class TestOutboxWorker:
    def test_worker_drains_pending_rows(self, db_session, tenant_a, outlet_a, coa_a):
        for n in range(3):
            tx = _sale(db_session, tenant_a, outlet_a, number=f"TXN-20260305-0000{n}")
            journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        counts = journal_service.process_journal_outbox()

        assert counts[OUTBOX_STATUS_POSTED] == 3
        assert db_session.query(JournalOutbox).filter_by(status=OUTBOX_STATUS_PENDING).count() == 0

    def test_failure_retried_then_failed(self, app, db_session, tenant_a, outlet_a, coa_a, monkeypatch):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()
        row_id = row.id

        def _boom(*args, **kwargs):
            from posledger.errors import PersistenceError
            raise PersistenceError("ledger unavailable")

        monkeypatch.setattr(journal_service, "post_journal", _boom)
        monkeypatch.setitem(app.config, "JOURNAL_OUTBOX_MAX_ATTEMPTS", 2)

        first = journal_service.process_outbox_entry(row_id)
        assert first.status == OUTBOX_STATUS_PENDING
        assert first.attempts == 1
        assert "ledger unavailable" in first.last_error

        second = journal_service.process_outbox_entry(row_id)
        assert second.status == OUTBOX_STATUS_FAILED
        assert second.attempts == 2

        # Failed rows are not picked up again
        assert journal_service.process_journal_outbox()[OUTBOX_STATUS_POSTED] == 0

    def test_deferred_mode_leaves_rows_pending(self, app, db_session, tenant_a, outlet_a, coa_a, monkeypatch):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()

        monkeypatch.setitem(app.config, "JOURNAL_POSTING_MODE", "deferred")
        assert journal_service.dispatch_journal_outbox([row.id]) is None

        assert db_session.get(JournalOutbox, row.id).status == OUTBOX_STATUS_PENDING

    def test_thread_mode_posts_in_background(self, app, db_session, tenant_a, outlet_a, coa_a, monkeypatch):
        tx = _sale(db_session, tenant_a, outlet_a)
        row = journal_service.enqueue_journal(tx, JOURNAL_SOURCE_POS_SALE)
        db_session.commit()
        row_id = row.id

        monkeypatch.setitem(app.config, "JOURNAL_POSTING_MODE", "thread")
        worker = journal_service.dispatch_journal_outbox([row_id])

        assert worker is not None
        worker.join(timeout=10)
        assert not worker.is_alive()

        db_session.expire_all()
        posted = db_session.get(JournalOutbox, row_id)
        assert posted.status == OUTBOX_STATUS_POSTED
        assert posted.last_error is None

        entries = db_session.query(JournalEntry).all()
        assert len(entries) == 1
        assert entries[0].id == posted.journal_entry_id
        assert entries[0].total_debit == entries[0].total_credit == Decimal("27000")
