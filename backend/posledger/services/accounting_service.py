"""
Accounting Ledger Service

Chart of accounts, balanced journal entries, and report projections.

INVARIANTS:
- Every JournalEntry satisfies sum(debit) == sum(credit) > 0, checked on
  every write.
- A journal line carries exactly one positive side (debit xor credit).
- ChartOfAccount.balance changes only through posting, via a single
  `balance = balance + delta` UPDATE (no read-modify-write).
- Entries are immutable. Corrections are new entries.

BALANCE DIRECTION:
- asset, expense (debit-normal):            delta = debit - credit
- liability, equity, revenue (credit-normal): delta = credit - debit

Reports (trial balance, profit & loss, balance sheet) are projections of the
current balances; they hold no state of their own.
"""

from __future__ import annotations

import secrets
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..errors import ConflictError, NotFoundError, UnbalancedJournalError, ValidationError
from ..models import ChartOfAccount, JournalEntry, JournalEntryLine
from ..models.accounting import (
    ACCOUNT_TYPES,
    ACCOUNT_TYPE_ASSET,
    ACCOUNT_TYPE_EQUITY,
    ACCOUNT_TYPE_EXPENSE,
    ACCOUNT_TYPE_LIABILITY,
    ACCOUNT_TYPE_REVENUE,
    DEBIT_NORMAL_TYPES,
    JOURNAL_SOURCE_MANUAL,
    SUBTYPE_BANK,
    SUBTYPE_CASH,
    SUBTYPE_COGS,
    SUBTYPE_INVENTORY,
    SUBTYPE_PAYABLE,
    SUBTYPE_RECEIVABLE,
    SUBTYPE_SALES,
    SUBTYPE_TAX,
)
from ..money import ZERO, to_money
from ..time_utils import utcnow
from .concurrency import run_with_retry


@dataclass(frozen=True)
class JournalLine:
    """Input line for create_journal(). Exactly one of debit/credit is positive."""
    account_id: int
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None


# (code, name, type, sub_type)
DEFAULT_CHART_OF_ACCOUNTS = (
    ("1000", "Aset", ACCOUNT_TYPE_ASSET, None),
    ("1100", "Kas", ACCOUNT_TYPE_ASSET, SUBTYPE_CASH),
    ("1200", "Bank", ACCOUNT_TYPE_ASSET, SUBTYPE_BANK),
    ("1300", "Piutang Usaha", ACCOUNT_TYPE_ASSET, SUBTYPE_RECEIVABLE),
    ("1400", "Persediaan", ACCOUNT_TYPE_ASSET, SUBTYPE_INVENTORY),
    ("2000", "Kewajiban", ACCOUNT_TYPE_LIABILITY, None),
    ("2100", "Hutang Usaha", ACCOUNT_TYPE_LIABILITY, SUBTYPE_PAYABLE),
    ("2200", "Hutang Pajak", ACCOUNT_TYPE_LIABILITY, SUBTYPE_TAX),
    ("3000", "Modal", ACCOUNT_TYPE_EQUITY, None),
    ("3100", "Modal Disetor", ACCOUNT_TYPE_EQUITY, None),
    ("3200", "Laba Ditahan", ACCOUNT_TYPE_EQUITY, None),
    ("4000", "Pendapatan", ACCOUNT_TYPE_REVENUE, None),
    ("4100", "Penjualan", ACCOUNT_TYPE_REVENUE, SUBTYPE_SALES),
    ("4200", "Pendapatan Lain-lain", ACCOUNT_TYPE_REVENUE, None),
    ("5000", "Beban", ACCOUNT_TYPE_EXPENSE, None),
    ("5100", "Harga Pokok Penjualan", ACCOUNT_TYPE_EXPENSE, SUBTYPE_COGS),
    ("5200", "Beban Gaji", ACCOUNT_TYPE_EXPENSE, None),
    ("5300", "Beban Sewa", ACCOUNT_TYPE_EXPENSE, None),
    ("5400", "Beban Operasional", ACCOUNT_TYPE_EXPENSE, None),
)


# =============================================================================
# CHART OF ACCOUNTS
# =============================================================================

def initialize_default_coa(tenant_id: int) -> list[ChartOfAccount]:
    """
    Seed the standard chart of accounts for a tenant.

    Safe to call repeatedly (idempotent by account code). Returns only the
    accounts created by this call.
    """
    existing_codes = {
        code for (code,) in db.session.query(ChartOfAccount.code).filter_by(tenant_id=tenant_id)
    }
    created = []
    for code, name, account_type, sub_type in DEFAULT_CHART_OF_ACCOUNTS:
        if code in existing_codes:
            continue
        account = ChartOfAccount(
            tenant_id=tenant_id,
            code=code,
            name=name,
            type=account_type,
            sub_type=sub_type,
            is_system=True,
            balance=ZERO,
        )
        db.session.add(account)
        created.append(account)
    db.session.commit()
    return created


def create_account(
    tenant_id: int,
    *,
    code: str,
    name: str,
    account_type: str,
    sub_type: str | None = None,
    parent_id: int | None = None,
) -> ChartOfAccount:
    """Create a custom (non-system) account with a zero balance."""
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"invalid account type: {account_type}")
    if not code or not name:
        raise ValidationError("code and name are required")
    if parent_id is not None:
        parent = db.session.get(ChartOfAccount, parent_id)
        if parent is None or parent.tenant_id != tenant_id:
            raise NotFoundError(f"Account {parent_id} not found")

    account = ChartOfAccount(
        tenant_id=tenant_id,
        code=code,
        name=name,
        type=account_type,
        sub_type=sub_type,
        parent_id=parent_id,
        is_system=False,
        balance=ZERO,
    )
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Account code {code} already exists")
    return account


def get_chart_of_accounts(tenant_id: int) -> list[ChartOfAccount]:
    return (
        db.session.query(ChartOfAccount)
        .filter_by(tenant_id=tenant_id)
        .order_by(ChartOfAccount.code.asc())
        .all()
    )


def find_system_accounts(tenant_id: int) -> dict[str, ChartOfAccount]:
    """Active accounts keyed by sub_type (first by code wins)."""
    by_subtype: dict[str, ChartOfAccount] = {}
    for account in get_chart_of_accounts(tenant_id):
        if account.sub_type and account.is_active and account.sub_type not in by_subtype:
            by_subtype[account.sub_type] = account
    return by_subtype


def find_account_by_subtype(tenant_id: int, sub_type: str) -> ChartOfAccount | None:
    return find_system_accounts(tenant_id).get(sub_type)


def increment_account_balance(account_id: int, delta: Decimal) -> None:
    """Atomic `balance = balance + delta`; never read-then-write."""
    result = db.session.execute(
        update(ChartOfAccount)
        .where(ChartOfAccount.id == account_id)
        .values(balance=ChartOfAccount.balance + to_money(delta))
    )
    if not result.rowcount:
        raise NotFoundError(f"Account {account_id} not found")


# =============================================================================
# JOURNALS
# =============================================================================

def validate_journal_lines(lines: list[JournalLine]) -> tuple[Decimal, Decimal]:
    """
    Check the balance contract and return (total_debit, total_credit).

    Raises:
        UnbalancedJournalError: on any violation
    """
    if len(lines) < 2:
        raise UnbalancedJournalError("journal entry needs at least two lines")

    total_debit = ZERO
    total_credit = ZERO
    for index, line in enumerate(lines):
        debit = to_money(line.debit)
        credit = to_money(line.credit)
        if debit < 0 or credit < 0:
            raise UnbalancedJournalError(
                "journal line amounts cannot be negative",
                details={"line": index},
            )
        if (debit > 0) == (credit > 0):
            raise UnbalancedJournalError(
                "journal line must have either a debit or a credit",
                details={"line": index},
            )
        total_debit += debit
        total_credit += credit

    if total_debit != total_credit:
        raise UnbalancedJournalError(
            "journal entry is not balanced",
            details={"total_debit": str(total_debit), "total_credit": str(total_credit)},
        )
    return total_debit, total_credit


def _balance_delta(account: ChartOfAccount, debit: Decimal, credit: Decimal) -> Decimal:
    if account.type in DEBIT_NORMAL_TYPES:
        return debit - credit
    return credit - debit


def generate_entry_number(prefix: str = "JRN-MAN") -> str:
    return f"{prefix}-{utcnow():%Y%m%d}-{secrets.randbelow(100000):05d}"


def post_journal(
    tenant_id: int,
    lines: list[JournalLine],
    *,
    entry_number: str | None = None,
    entry_date: datetime | None = None,
    description: str | None = None,
    source: str = JOURNAL_SOURCE_MANUAL,
    reference_type: str | None = None,
    reference_id: int | None = None,
    outlet_id: int | None = None,
    created_by_user_id: int | None = None,
) -> JournalEntry:
    """Core journal write without retry or commit.

    Inserts the entry and its lines and applies account balance deltas in the
    caller's DB transaction.
    """
    total_debit, total_credit = validate_journal_lines(lines)

    account_ids = {line.account_id for line in lines}
    accounts = {
        account.id: account
        for account in db.session.query(ChartOfAccount).filter(ChartOfAccount.id.in_(account_ids))
    }
    for account_id in account_ids:
        account = accounts.get(account_id)
        if account is None or account.tenant_id != tenant_id:
            raise NotFoundError(f"Account {account_id} not found")

    entry = JournalEntry(
        tenant_id=tenant_id,
        outlet_id=outlet_id,
        entry_number=entry_number or generate_entry_number(),
        entry_date=entry_date or utcnow(),
        description=description,
        source=source,
        reference_type=reference_type,
        reference_id=reference_id,
        status="posted",
        total_debit=total_debit,
        total_credit=total_credit,
        created_by_user_id=created_by_user_id,
    )
    deltas: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for line in lines:
        debit = to_money(line.debit)
        credit = to_money(line.credit)
        entry.lines.append(JournalEntryLine(
            account_id=line.account_id,
            description=line.description,
            debit=debit,
            credit=credit,
        ))
        deltas[line.account_id] += _balance_delta(accounts[line.account_id], debit, credit)

    db.session.add(entry)
    db.session.flush()

    for account_id, delta in deltas.items():
        if delta:
            increment_account_balance(account_id, delta)

    return entry


def create_journal(tenant_id: int, lines: list[JournalLine], **kwargs) -> JournalEntry:
    """Validate, post and commit a journal entry (manual postings)."""
    def _op():
        try:
            entry = post_journal(tenant_id, lines, **kwargs)
            db.session.commit()
        except (ValidationError, NotFoundError):
            db.session.rollback()
            raise
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("journal entry number already used")
        return entry

    return run_with_retry(_op)


def get_journal(tenant_id: int, journal_id: int) -> JournalEntry:
    entry = (
        db.session.query(JournalEntry)
        .options(selectinload(JournalEntry.lines))
        .filter_by(id=journal_id)
        .first()
    )
    if entry is None or entry.tenant_id != tenant_id:
        raise NotFoundError(f"Journal {journal_id} not found")
    return entry


def list_journals(
    tenant_id: int,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[JournalEntry], int]:
    q = db.session.query(JournalEntry).filter_by(tenant_id=tenant_id)
    if start_date is not None:
        q = q.filter(JournalEntry.entry_date >= start_date)
    if end_date is not None:
        q = q.filter(JournalEntry.entry_date <= end_date)

    total = q.count()
    page = max(page, 1)
    entries = (
        q.options(selectinload(JournalEntry.lines))
        .order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return entries, total


# =============================================================================
# REPORTS
# =============================================================================

def _active_accounts(tenant_id: int, types: tuple[str, ...] | None = None) -> list[ChartOfAccount]:
    q = db.session.query(ChartOfAccount).filter_by(tenant_id=tenant_id, is_active=True)
    if types is not None:
        q = q.filter(ChartOfAccount.type.in_(types))
    return q.order_by(ChartOfAccount.code.asc()).all()


def _report_row(account: ChartOfAccount) -> dict:
    return {
        "id": account.id,
        "code": account.code,
        "name": account.name,
        "type": account.type,
        "sub_type": account.sub_type,
        "balance": to_money(account.balance),
    }


def trial_balance(tenant_id: int) -> dict:
    """
    All active accounts with their balance placed in a debit or credit column.

    A positive balance sits on the account's normal side; a negative balance
    flips to the other column.
    """
    rows = []
    total_debit = ZERO
    total_credit = ZERO
    for account in _active_accounts(tenant_id):
        balance = to_money(account.balance)
        debit = credit = ZERO
        if account.is_debit_normal:
            debit, credit = (balance, ZERO) if balance >= 0 else (ZERO, -balance)
        else:
            credit, debit = (balance, ZERO) if balance >= 0 else (ZERO, -balance)
        row = _report_row(account)
        row.update(debit=debit, credit=credit)
        rows.append(row)
        total_debit += debit
        total_credit += credit

    return {
        "accounts": rows,
        "total_debit": total_debit,
        "total_credit": total_credit,
        "is_balanced": total_debit == total_credit,
    }


def profit_loss(tenant_id: int) -> dict:
    revenue = _active_accounts(tenant_id, (ACCOUNT_TYPE_REVENUE,))
    expenses = _active_accounts(tenant_id, (ACCOUNT_TYPE_EXPENSE,))
    total_revenue = sum((to_money(a.balance) for a in revenue), ZERO)
    total_expense = sum((to_money(a.balance) for a in expenses), ZERO)
    return {
        "revenue": [_report_row(a) for a in revenue],
        "expenses": [_report_row(a) for a in expenses],
        "total_revenue": total_revenue,
        "total_expense": total_expense,
        "net_income": total_revenue - total_expense,
    }


def balance_sheet(tenant_id: int) -> dict:
    """
    Assets vs liabilities + equity.

    Period earnings are not closed into equity here, so current net income
    is reported alongside equity and included in the balance check.
    """
    assets = _active_accounts(tenant_id, (ACCOUNT_TYPE_ASSET,))
    liabilities = _active_accounts(tenant_id, (ACCOUNT_TYPE_LIABILITY,))
    equity = _active_accounts(tenant_id, (ACCOUNT_TYPE_EQUITY,))

    total_assets = sum((to_money(a.balance) for a in assets), ZERO)
    total_liabilities = sum((to_money(a.balance) for a in liabilities), ZERO)
    total_equity = sum((to_money(a.balance) for a in equity), ZERO)
    current_earnings = profit_loss(tenant_id)["net_income"]

    return {
        "assets": [_report_row(a) for a in assets],
        "liabilities": [_report_row(a) for a in liabilities],
        "equity": [_report_row(a) for a in equity],
        "total_assets": total_assets,
        "total_liabilities": total_liabilities,
        "total_equity": total_equity,
        "current_earnings": current_earnings,
        "is_balanced": total_assets == total_liabilities + total_equity + current_earnings,
    }
