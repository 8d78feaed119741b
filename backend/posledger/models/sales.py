from __future__ import annotations

from ..extensions import db
from ..money import money_str, quantity_str
from ..time_utils import to_utc_z

TRANSACTION_TYPE_SALE = "sale"
TRANSACTION_TYPE_REFUND = "refund"
TRANSACTION_TYPE_VOID = "void"

TRANSACTION_STATUS_PENDING = "pending"
TRANSACTION_STATUS_COMPLETED = "completed"
TRANSACTION_STATUS_VOIDED = "voided"
TRANSACTION_STATUS_REFUNDED = "refunded"


class Transaction(db.Model):
    """
    Posted POS transaction (sale or refund).

    Core monetary fields are written once at checkout and never edited.
    Only status (-> refunded/voided) and the reprint counters change later.

    INVARIANTS:
    - total = subtotal + tax
    - refund rows carry the exact negation of the original's monetary fields
      and link back via original_transaction_id

    MDR fields: gateway_fee is owed to the payment processor, platform_fee is
    retained by the platform, total_fee is what the merchant is billed
    monthly, net_profit = total - total_fee.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_tenant_status_created", "tenant_id", "status", "created_at"),
        db.Index("ix_transactions_outlet_created", "outlet_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    # Human-readable number (e.g., "TXN-20260105-04821")
    transaction_number = db.Column(db.String(50), nullable=False, unique=True)

    type = db.Column(db.String(20), nullable=False, default=TRANSACTION_TYPE_SALE)
    status = db.Column(db.String(20), nullable=False, default=TRANSACTION_STATUS_COMPLETED, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    # Primary (first) payment method; drives the MDR computation
    payment_method = db.Column(db.String(50), nullable=True)
    fee_rate_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    fee_rate_flat = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    gateway_fee = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    platform_fee = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_fee = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    net_profit = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    refund_reason = db.Column(db.Text, nullable=True)
    original_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    reprint_count = db.Column(db.Integer, nullable=False, default=0)
    last_reprint_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )
    payments = db.relationship(
        "TransactionPayment",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionPayment.id",
    )
    original_transaction = db.relationship("Transaction", remote_side=[id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} number={self.transaction_number!r} type={self.type} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "outlet_id": self.outlet_id,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "transaction_number": self.transaction_number,
            "type": self.type,
            "status": self.status,
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "total_amount": money_str(self.total_amount),
            "payment_method": self.payment_method,
            "fee_rate_percent": money_str(self.fee_rate_percent),
            "fee_rate_flat": money_str(self.fee_rate_flat),
            "gateway_fee": money_str(self.gateway_fee),
            "platform_fee": money_str(self.platform_fee),
            "total_fee": money_str(self.total_fee),
            "net_profit": money_str(self.net_profit),
            "notes": self.notes,
            "refund_reason": self.refund_reason,
            "original_transaction_id": self.original_transaction_id,
            "reprint_count": self.reprint_count,
            "last_reprint_at": to_utc_z(self.last_reprint_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data

class TransactionItem(db.Model):
    """Priced line on a transaction. Snapshot of catalog data at checkout time."""
    __tablename__ = "transaction_items"

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Numeric(15, 2), nullable=False)
    # base price + variant additional price + modifier total
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    modifiers = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_name": self.variant_name,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "modifiers": self.modifiers or [],
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }

class TransactionPayment(db.Model):
    """
    Tender applied to a transaction.

    Split payments are multiple rows; only the first one determines MDR.
    """
    __tablename__ = "transaction_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(50), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    reference_number = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="completed")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "payment_method": self.payment_method,
            "amount": money_str(self.amount),
            "reference_number": self.reference_number,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
