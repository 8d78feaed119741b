"""
MDR Billing Service: monthly aggregation, checkout gate, payment, escalation.

WHY: Non-cash payments carry an MDR fee that the platform collects from the
merchant once a month. Unpaid invoices progressively restrict the merchant:
after the due day (the 7th) checkout is blocked until the invoice is paid,
and long-overdue invoices suspend the account.

LIFECYCLE (TenantBilling.status):
    unpaid    -> past_due | paid | suspended
    past_due  -> paid | suspended
    suspended -> paid
    paid      (terminal)

IDEMPOTENCY:
- generate_monthly_billings() creates at most one row per tenant and month
  (unique constraint on tenant_id + billing_month). Re-running it, or two
  runs racing, never double-charges.

DAY RULES use the billing timezone (BILLING_TIMEZONE), not UTC, so "the 7th"
means the merchant's 7th.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BillingBlockedError, ConflictError, NotFoundError
from ..models import TenantBilling, Transaction
from ..models.billing import (
    BILLING_STATUS_PAID,
    BILLING_STATUS_PAST_DUE,
    BILLING_STATUS_SUSPENDED,
    BILLING_STATUS_UNPAID,
    OUTSTANDING_STATUSES,
)
from ..models.sales import TRANSACTION_STATUS_COMPLETED, TRANSACTION_TYPE_SALE
from ..money import ZERO, to_money
from ..time_utils import local_now, local_to_utc, month_bounds, months_between, previous_month, utcnow
from .concurrency import lock_for_update, run_with_retry

SUSPENDED_MESSAGE = (
    "akun anda ditangguhkan karena menunggak tagihan MDR lebih dari 1 bulan. "
    "Harap segera melunasi tagihan"
)
PAST_DUE_MESSAGE = (
    "akses Kasir (POS) dibekukan sementara karena ada Tagihan MDR yang melewati "
    "jatuh tempo (Tanggal 7). Harap bayar tagihan di menu Tagihan MDR"
)


def _billing_tz() -> str:
    return current_app.config.get("BILLING_TIMEZONE", "Asia/Jakarta")


def billing_now() -> datetime:
    """Current wall-clock time in the billing timezone."""
    return local_now(_billing_tz())


def _due_day() -> int:
    return current_app.config.get("BILLING_DUE_DAY", 7)


def _penalty_rate() -> Decimal:
    return Decimal(str(current_app.config.get("BILLING_PENALTY_RATE", "0.10")))


def format_billing_month(month: int, year: int) -> str:
    return f"{month:02d}-{year:04d}"


def is_late(bill: TenantBilling, now: datetime) -> bool:
    """past_due, or unpaid and the due day of the current month has passed."""
    if bill.status == BILLING_STATUS_PAST_DUE:
        return True
    return bill.status == BILLING_STATUS_UNPAID and now.day > _due_day()


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate_fees_by_month(month: int, year: int) -> list[dict]:
    """
    Completed sales with a non-zero MDR fee in the month, grouped by tenant.

    The month is the billing-timezone calendar month; created_at is stored
    in UTC, so the bounds are converted before filtering.

    Returns [{"tenant_id", "total_transactions", "total_fee"}].
    """
    start, end = (local_to_utc(bound, _billing_tz()) for bound in month_bounds(month, year))
    rows = (
        db.session.query(
            Transaction.tenant_id,
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.total_fee), 0),
        )
        .filter(
            Transaction.type == TRANSACTION_TYPE_SALE,
            Transaction.status == TRANSACTION_STATUS_COMPLETED,
            Transaction.total_fee != 0,
            Transaction.created_at >= start,
            Transaction.created_at < end,
        )
        .group_by(Transaction.tenant_id)
        .order_by(Transaction.tenant_id)
        .all()
    )
    return [
        {"tenant_id": tenant_id, "total_transactions": int(count), "total_fee": to_money(total)}
        for tenant_id, count, total in rows
    ]


def get_bill_for_month(tenant_id: int, billing_month: str) -> TenantBilling | None:
    return db.session.query(TenantBilling).filter_by(tenant_id=tenant_id, billing_month=billing_month).first()


def generate_monthly_billings(now: datetime | None = None) -> list[TenantBilling]:
    """
    Create MDR invoices for the calendar month before `now`.

    E.g. run on Feb 1st, it bills January ("01-YYYY"). Tenants that already
    have an invoice for that month are skipped. Returns the invoices created
    by this run.
    """
    now = now or billing_now()
    month, year = previous_month(now)
    billing_month = format_billing_month(month, year)

    created = []
    for agg in aggregate_fees_by_month(month, year):
        if get_bill_for_month(agg["tenant_id"], billing_month) is not None:
            continue

        bill = TenantBilling(
            tenant_id=agg["tenant_id"],
            billing_month=billing_month,
            total_transactions=agg["total_transactions"],
            total_fee=agg["total_fee"],
            penalty_fee=ZERO,
            status=BILLING_STATUS_UNPAID,
        )
        try:
            with db.session.begin_nested():
                db.session.add(bill)
        except IntegrityError:
            # A concurrent run created it first
            current_app.logger.info(
                "Billing for tenant %s month %s already exists; skipped",
                agg["tenant_id"],
                billing_month,
            )
            continue
        created.append(bill)

    db.session.commit()
    current_app.logger.info("Generated %s MDR invoices for %s", len(created), billing_month)
    return created


# =============================================================================
# CHECKOUT GATE
# =============================================================================

def list_billings(tenant_id: int, status: str | None = None) -> list[TenantBilling]:
    q = db.session.query(TenantBilling).filter_by(tenant_id=tenant_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(TenantBilling.created_at.desc(), TenantBilling.id.desc()).all()


def list_all_billings(status: str | None = None, page: int = 1, per_page: int = 50) -> tuple[list[TenantBilling], int]:
    q = db.session.query(TenantBilling)
    if status is not None:
        q = q.filter_by(status=status)
    total = q.count()
    page = max(page, 1)
    bills = (
        q.order_by(TenantBilling.created_at.desc(), TenantBilling.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return bills, total


def check_checkout_allowed(tenant_id: int, now: datetime | None = None) -> None:
    """
    Raise BillingBlockedError if the tenant may not use checkout.

    - any suspended invoice blocks unconditionally
    - any past_due invoice, or unpaid invoice after the due day, blocks
    """
    now = now or billing_now()
    outstanding = (
        db.session.query(TenantBilling)
        .filter(
            TenantBilling.tenant_id == tenant_id,
            TenantBilling.status.in_(OUTSTANDING_STATUSES),
        )
        .order_by(TenantBilling.id.asc())
        .all()
    )

    # Suspension wins over lateness regardless of row order
    for bill in outstanding:
        if bill.status == BILLING_STATUS_SUSPENDED:
            raise BillingBlockedError(SUSPENDED_MESSAGE, reason=BILLING_STATUS_SUSPENDED, billing_id=bill.id)

    for bill in outstanding:
        if is_late(bill, now):
            raise BillingBlockedError(PAST_DUE_MESSAGE, reason=BILLING_STATUS_PAST_DUE, billing_id=bill.id)


def is_checkout_allowed(tenant_id: int, now: datetime | None = None) -> bool:
    try:
        check_checkout_allowed(tenant_id, now=now)
    except BillingBlockedError:
        return False
    return True


# =============================================================================
# PAYMENT & ESCALATION
# =============================================================================

def _lock_bill(billing_id: int) -> TenantBilling | None:
    return lock_for_update(db.session.query(TenantBilling).filter_by(id=billing_id)).first()


def pay_billing(tenant_id: int, billing_id: int, now: datetime | None = None) -> TenantBilling:
    """
    Settle an MDR invoice.

    Lateness is re-evaluated first: a late invoice without a penalty gets a
    penalty of BILLING_PENALTY_RATE x total_fee and moves to past_due before
    the payment is accepted. The bill row is locked, so two concurrent
    payments cannot both apply the penalty.

    Raises:
        NotFoundError: unknown bill or bill of another tenant
        ConflictError: bill already paid
    """
    now = now or billing_now()

    def _op():
        bill = _lock_bill(billing_id)
        if bill is None or bill.tenant_id != tenant_id:
            raise NotFoundError("billing invoice not found", details={"billing_id": billing_id})

        if bill.status == BILLING_STATUS_PAID:
            raise ConflictError("billing is already paid", details={"billing_id": billing_id})

        if is_late(bill, now) and to_money(bill.penalty_fee) == ZERO:
            bill.penalty_fee = to_money(to_money(bill.total_fee) * _penalty_rate())
            bill.status = BILLING_STATUS_PAST_DUE

        bill.status = BILLING_STATUS_PAID
        bill.amount_paid = to_money(bill.total_fee) + to_money(bill.penalty_fee)
        bill.paid_at = utcnow()
        db.session.commit()
        return bill

    try:
        return run_with_retry(_op)
    except (NotFoundError, ConflictError):
        db.session.rollback()
        raise


def suspend_billing(billing_id: int) -> TenantBilling:
    """Manual escalation of an outstanding invoice to suspended."""
    def _op():
        bill = _lock_bill(billing_id)
        if bill is None:
            raise NotFoundError("billing invoice not found", details={"billing_id": billing_id})
        if bill.status == BILLING_STATUS_PAID:
            raise ConflictError("cannot suspend a paid billing", details={"billing_id": billing_id})
        if bill.status != BILLING_STATUS_SUSPENDED:
            bill.status = BILLING_STATUS_SUSPENDED
            bill.suspended_at = utcnow()
        db.session.commit()
        return bill

    try:
        return run_with_retry(_op)
    except (NotFoundError, ConflictError):
        db.session.rollback()
        raise


def escalate_overdue_billings(now: datetime | None = None) -> dict:
    """
    Scheduled escalation.

    - unpaid invoices past the due day of the month after their billing
      month become past_due
    - outstanding invoices more than one month past that due date become
      suspended
    """
    now = now or billing_now()
    current = (now.month, now.year)

    def _op():
        counts = {BILLING_STATUS_PAST_DUE: 0, BILLING_STATUS_SUSPENDED: 0}
        bills = lock_for_update(
            db.session.query(TenantBilling).filter(
                TenantBilling.status.in_((BILLING_STATUS_UNPAID, BILLING_STATUS_PAST_DUE))
            )
        ).all()
        for bill in bills:
            # Invoice for month M is due on the due day of month M+1
            months_after_due = months_between(bill.period, current) - 1
            past_due_day = months_after_due > 0 or (months_after_due == 0 and now.day > _due_day())
            if not past_due_day:
                continue

            if months_after_due > 1 or (months_after_due == 1 and now.day > _due_day()):
                bill.status = BILLING_STATUS_SUSPENDED
                bill.suspended_at = utcnow()
                counts[BILLING_STATUS_SUSPENDED] += 1
            elif bill.status == BILLING_STATUS_UNPAID:
                bill.status = BILLING_STATUS_PAST_DUE
                counts[BILLING_STATUS_PAST_DUE] += 1
        db.session.commit()
        return counts

    counts = run_with_retry(_op)
    current_app.logger.info(
        "Billing escalation: %s past_due, %s suspended",
        counts[BILLING_STATUS_PAST_DUE],
        counts[BILLING_STATUS_SUSPENDED],
    )
    return counts
