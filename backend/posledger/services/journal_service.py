"""
Journal posting for POS transactions via an outbox.

WHY: A sale must not wait on (or fail because of) the accounting ledger, but
a committed sale must never silently lose its journal either. Checkout and
refund write a JournalOutbox row in the same DB transaction as the
Transaction; this module turns pending rows into balanced JournalEntries.

DELIVERY:
- dispatch_journal_outbox() runs right after the checkout commit, detached
  from the caller according to JOURNAL_POSTING_MODE:
    thread   - background daemon thread with its own app context (default)
    inline   - same thread, after commit; failures are logged, never raised
    deferred - nothing; the worker picks the rows up
- process_journal_outbox() is the retrying worker (`flask ledger process-outbox`).
  A row is retried until JOURNAL_OUTBOX_MAX_ATTEMPTS, then marked failed.

POSTING RULES:
- pos_sale:   Dr Cash (total) / Cr Sales (subtotal) / Cr Tax payable (tax)
- pos_refund: Dr Sales / Dr Tax payable / Cr Cash (absolute refund amounts)
- Missing system accounts (cash, sales, and tax when tax > 0) -> skipped.
"""

from __future__ import annotations

import threading

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import NotFoundError, SettlementError
from ..models import JournalOutbox, Transaction
from ..models.accounting import (
    JOURNAL_SOURCE_POS_REFUND,
    JOURNAL_SOURCE_POS_SALE,
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_POSTED,
    OUTBOX_STATUS_SKIPPED,
    SUBTYPE_CASH,
    SUBTYPE_SALES,
    SUBTYPE_TAX,
)
from ..money import ZERO, to_money
from ..time_utils import utcnow
from .accounting_service import JournalLine, find_system_accounts, post_journal
from .concurrency import lock_for_update, run_with_retry

POSTING_MODE_THREAD = "thread"
POSTING_MODE_INLINE = "inline"
POSTING_MODE_DEFERRED = "deferred"


def enqueue_journal(transaction: Transaction, source: str) -> JournalOutbox:
    """Add a pending outbox row in the caller's DB transaction (no commit)."""
    row = JournalOutbox(
        tenant_id=transaction.tenant_id,
        transaction_id=transaction.id,
        source=source,
        status=OUTBOX_STATUS_PENDING,
        attempts=0,
    )
    db.session.add(row)
    db.session.flush()
    return row


def build_sale_lines(transaction: Transaction, accounts: dict) -> list[JournalLine] | None:
    """Journal lines for a sale, or None when the required accounts are missing."""
    cash = accounts.get(SUBTYPE_CASH)
    sales = accounts.get(SUBTYPE_SALES)
    tax = accounts.get(SUBTYPE_TAX)

    subtotal = to_money(transaction.subtotal)
    tax_amount = to_money(transaction.tax_amount)
    total = to_money(transaction.total_amount)

    if cash is None or sales is None:
        return None
    if tax_amount > 0 and tax is None:
        return None

    lines = [
        JournalLine(account_id=cash.id, debit=total, description="Cash received"),
        JournalLine(account_id=sales.id, credit=subtotal, description="Sales revenue"),
    ]
    if tax_amount > 0:
        lines.append(JournalLine(account_id=tax.id, credit=tax_amount, description="Tax payable"))
    return lines


def build_refund_lines(transaction: Transaction, accounts: dict) -> list[JournalLine] | None:
    """Reversal of build_sale_lines() for a refund (amounts stored negated)."""
    cash = accounts.get(SUBTYPE_CASH)
    sales = accounts.get(SUBTYPE_SALES)
    tax = accounts.get(SUBTYPE_TAX)

    subtotal = abs(to_money(transaction.subtotal))
    tax_amount = abs(to_money(transaction.tax_amount))
    total = abs(to_money(transaction.total_amount))

    if cash is None or sales is None:
        return None
    if tax_amount > 0 and tax is None:
        return None

    lines = [JournalLine(account_id=sales.id, debit=subtotal, description="Sales returned")]
    if tax_amount > 0:
        lines.append(JournalLine(account_id=tax.id, debit=tax_amount, description="Tax payable reversed"))
    lines.append(JournalLine(account_id=cash.id, credit=total, description="Cash refunded"))
    return lines


_LINE_BUILDERS = {
    JOURNAL_SOURCE_POS_SALE: (build_sale_lines, "JRN-SALE", "Auto journal for sale"),
    JOURNAL_SOURCE_POS_REFUND: (build_refund_lines, "JRN-REFUND", "Auto journal for refund"),
}


def _post_outbox_row(row: JournalOutbox) -> None:
    transaction = db.session.get(Transaction, row.transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {row.transaction_id} not found")

    builder, prefix, label = _LINE_BUILDERS[row.source]

    if to_money(transaction.total_amount) == ZERO:
        row.status = OUTBOX_STATUS_SKIPPED
        row.last_error = "nothing to post for a zero-value transaction"
        return

    lines = builder(transaction, find_system_accounts(row.tenant_id))
    if lines is None:
        row.status = OUTBOX_STATUS_SKIPPED
        row.last_error = "required system accounts missing"
        current_app.logger.info(
            "Journal skipped for %s: tenant %s has no cash/sales/tax accounts",
            transaction.transaction_number,
            row.tenant_id,
        )
        return

    entry = post_journal(
        row.tenant_id,
        lines,
        entry_number=f"{prefix}-{transaction.transaction_number}",
        entry_date=transaction.created_at or utcnow(),
        description=f"{label} {transaction.transaction_number}",
        source=row.source,
        reference_type="transaction",
        reference_id=transaction.id,
        outlet_id=transaction.outlet_id,
        created_by_user_id=transaction.cashier_id,
    )
    row.status = OUTBOX_STATUS_POSTED
    row.journal_entry_id = entry.id


def process_outbox_entry(outbox_id: int) -> JournalOutbox | None:
    """
    Post one pending outbox row.

    Never raises for posting failures: the error is logged and stored on the
    row, and the row stays pending until it runs out of attempts.
    """
    max_attempts = current_app.config.get("JOURNAL_OUTBOX_MAX_ATTEMPTS", 5)

    def _op():
        row = lock_for_update(db.session.query(JournalOutbox).filter_by(id=outbox_id)).first()
        if row is None or row.status != OUTBOX_STATUS_PENDING:
            return row
        row.attempts += 1
        _post_outbox_row(row)
        row.processed_at = utcnow()
        db.session.commit()
        return row

    try:
        return run_with_retry(_op)
    except (SQLAlchemyError, SettlementError) as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to post journal for outbox row %s", outbox_id)
        return _record_failure(outbox_id, exc, max_attempts)


def _record_failure(outbox_id: int, exc: Exception, max_attempts: int) -> JournalOutbox | None:
    try:
        row = db.session.get(JournalOutbox, outbox_id)
        if row is None:
            return None
        row.attempts += 1
        row.last_error = str(exc)[:1000]
        if row.attempts >= max_attempts:
            row.status = OUTBOX_STATUS_FAILED
            row.processed_at = utcnow()
            current_app.logger.error(
                "Journal outbox row %s failed permanently after %s attempts",
                outbox_id,
                row.attempts,
            )
        db.session.commit()
        return row
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record journal outbox failure for row %s", outbox_id)
        return None


def process_journal_outbox(limit: int = 100, tenant_id: int | None = None) -> dict:
    """Drain pending outbox rows (oldest first). Returns counts per outcome."""
    q = db.session.query(JournalOutbox.id).filter_by(status=OUTBOX_STATUS_PENDING)
    if tenant_id is not None:
        q = q.filter_by(tenant_id=tenant_id)
    ids = [row_id for (row_id,) in q.order_by(JournalOutbox.id.asc()).limit(limit)]

    counts = {
        OUTBOX_STATUS_POSTED: 0,
        OUTBOX_STATUS_SKIPPED: 0,
        OUTBOX_STATUS_FAILED: 0,
        OUTBOX_STATUS_PENDING: 0,
    }
    for outbox_id in ids:
        row = process_outbox_entry(outbox_id)
        if row is not None:
            counts[row.status] = counts.get(row.status, 0) + 1
    return counts


def _run_detached(app, outbox_ids: list[int]) -> None:
    with app.app_context():
        try:
            for outbox_id in outbox_ids:
                process_outbox_entry(outbox_id)
        except Exception:
            app.logger.exception("Detached journal posting crashed for outbox rows %s", outbox_ids)


def dispatch_journal_outbox(outbox_ids: list[int]) -> threading.Thread | None:
    """Post freshly committed outbox rows without blocking the caller."""
    if not outbox_ids:
        return None

    mode = current_app.config.get("JOURNAL_POSTING_MODE", POSTING_MODE_THREAD)
    if mode == POSTING_MODE_DEFERRED:
        return None

    if mode == POSTING_MODE_INLINE:
        for outbox_id in outbox_ids:
            process_outbox_entry(outbox_id)
        return None

    app = current_app._get_current_object()
    worker = threading.Thread(
        target=_run_detached,
        args=(app, list(outbox_ids)),
        name="journal-outbox",
        daemon=True,
    )
    worker.start()
    return worker
