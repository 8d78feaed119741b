from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

ACCOUNT_TYPE_ASSET = "asset"
ACCOUNT_TYPE_LIABILITY = "liability"
ACCOUNT_TYPE_EQUITY = "equity"
ACCOUNT_TYPE_REVENUE = "revenue"
ACCOUNT_TYPE_EXPENSE = "expense"

ACCOUNT_TYPES = (
    ACCOUNT_TYPE_ASSET,
    ACCOUNT_TYPE_LIABILITY,
    ACCOUNT_TYPE_EQUITY,
    ACCOUNT_TYPE_REVENUE,
    ACCOUNT_TYPE_EXPENSE,
)

# Accounts whose balance grows with debits; the rest grow with credits
DEBIT_NORMAL_TYPES = (ACCOUNT_TYPE_ASSET, ACCOUNT_TYPE_EXPENSE)

SUBTYPE_CASH = "cash"
SUBTYPE_BANK = "bank"
SUBTYPE_RECEIVABLE = "receivable"
SUBTYPE_PAYABLE = "payable"
SUBTYPE_INVENTORY = "inventory"
SUBTYPE_COGS = "cogs"
SUBTYPE_SALES = "sales"
SUBTYPE_TAX = "tax"

JOURNAL_SOURCE_POS_SALE = "pos_sale"
JOURNAL_SOURCE_POS_REFUND = "pos_refund"
JOURNAL_SOURCE_INVENTORY = "inventory"
JOURNAL_SOURCE_MANUAL = "manual"

OUTBOX_STATUS_PENDING = "pending"
OUTBOX_STATUS_POSTED = "posted"
OUTBOX_STATUS_SKIPPED = "skipped"
OUTBOX_STATUS_FAILED = "failed"


class ChartOfAccount(db.Model):
    """
    Tenant-scoped ledger account.

    balance is a running projection of posted journal lines in the account's
    normal direction. It is only changed by accounting_service through an
    atomic `balance = balance + delta` UPDATE, never assigned directly.
    """
    __tablename__ = "chart_of_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_coa_tenant_code"),
        db.Index("ix_coa_tenant_subtype", "tenant_id", "sub_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=True)

    code = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(50), nullable=False)
    sub_type = db.Column(db.String(50), nullable=True)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("ChartOfAccount", remote_side=[id], backref=db.backref("children", lazy=True))

    @property
    def is_debit_normal(self) -> bool:
        return self.type in DEBIT_NORMAL_TYPES

    def __repr__(self) -> str:
        return f"<ChartOfAccount id={self.id} code={self.code!r} type={self.type} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "parent_id": self.parent_id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "sub_type": self.sub_type,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "balance": money_str(self.balance),
            "created_at": to_utc_z(self.created_at),
        }

class JournalEntry(db.Model):
    """
    Balanced double-entry journal header.

    IMMUTABLE: entries are never edited; corrections are new entries
    (e.g. a pos_refund entry reversing a pos_sale entry).
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "entry_number", name="uq_journal_tenant_entry_number"),
        db.Index("ix_journal_tenant_date", "tenant_id", "entry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)

    entry_number = db.Column(db.String(64), nullable=False)
    entry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(50), nullable=True, index=True)

    reference_type = db.Column(db.String(50), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="posted")
    total_debit = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_credit = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "JournalEntryLine",
        backref="journal_entry",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "outlet_id": self.outlet_id,
            "entry_number": self.entry_number,
            "entry_date": to_utc_z(self.entry_date),
            "description": self.description,
            "source": self.source,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "status": self.status,
            "total_debit": money_str(self.total_debit),
            "total_credit": money_str(self.total_credit),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }

class JournalEntryLine(db.Model):
    __tablename__ = "journal_entry_lines"
    __table_args__ = (
        db.CheckConstraint("debit >= 0 AND credit >= 0", name="ck_journal_lines_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("chart_of_accounts.id"), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    debit = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    credit = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    account = db.relationship("ChartOfAccount")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "journal_entry_id": self.journal_entry_id,
            "account_id": self.account_id,
            "description": self.description,
            "debit": money_str(self.debit),
            "credit": money_str(self.credit),
        }

class JournalOutbox(db.Model):
    """
    Pending journal posting for a sale or refund.

    Written in the same DB transaction as the Transaction it references, so a
    committed sale always has a durable record of the journal it still owes.
    journal_service drains pending rows (detached after checkout, or from the
    `flask ledger process-outbox` worker).
    """
    __tablename__ = "journal_outbox"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "source", name="uq_journal_outbox_tx_source"),
        db.Index("ix_journal_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False)
    source = db.Column(db.String(50), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=OUTBOX_STATUS_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    transaction = db.relationship("Transaction")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_id": self.transaction_id,
            "source": self.source,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "journal_entry_id": self.journal_entry_id,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
        }
