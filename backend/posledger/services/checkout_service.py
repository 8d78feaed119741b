# Overview: Checkout orchestration; prices the cart, persists the sale and fans out to inventory, journal and billing.

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PersistenceError, SettlementError, ValidationError
from ..models import StockDeductionFailure, Transaction, TransactionItem, TransactionPayment
from ..models.accounting import JOURNAL_SOURCE_POS_REFUND, JOURNAL_SOURCE_POS_SALE
from ..models.inventory import MOVEMENT_SALE
from ..models.sales import (
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_REFUNDED,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
)
from ..money import ZERO, to_money, to_quantity
from ..time_utils import utcnow
from .billing_service import billing_now, check_checkout_allowed
from .catalog_service import find_product, find_variant
from .concurrency import lock_for_update, run_with_retry
from .fee_service import compute_fee, normalize_channel
from .inventory_service import apply_stock_delta
from .journal_service import dispatch_journal_outbox, enqueue_journal
from .tenant_service import require_outlet_in_tenant, scoped_query

"""
Checkout Invariants (authoritative)

Posting:
- A sale is persisted as one unit: Transaction + items + payments + the
  pending JournalOutbox row commit together or not at all.
- total_amount = subtotal + tax_amount; sum(payments) >= total_amount.
- Fee fields come from the FIRST payment's method applied to the subtotal.

Side effects:
- Stock is deducted per line inside a savepoint. A failing line is logged
  and recorded as StockDeductionFailure; the sale still commits.
- The journal is posted after commit by the outbox dispatcher, so ledger
  problems never fail a sale.

Refund:
- A refund is a new Transaction(type=refund) whose monetary fields are the
  exact negation of the original's; the original moves to refunded.
- Already-billed MDR fees are not reversed.
"""

TRANSACTION_NUMBER_PREFIX = "TXN"
REFUND_NUMBER_PREFIX = "REF"
REFERENCE_TYPE_TRANSACTION = "transaction"

_NUMBER_ATTEMPTS = 10


# =============================================================================
# REQUESTS
# =============================================================================

@dataclass
class Modifier:
    name: str
    price: Decimal = ZERO

    def to_dict(self) -> dict:
        return {"name": self.name, "price": str(to_money(self.price))}


@dataclass
class CheckoutItem:
    product_id: int
    quantity: Decimal
    variant_id: int | None = None
    modifiers: list[Modifier] = field(default_factory=list)
    notes: str | None = None


@dataclass
class PaymentRequest:
    method: str
    amount: Decimal
    reference: str | None = None


@dataclass
class CheckoutRequest:
    outlet_id: int
    items: list[CheckoutItem]
    payments: list[PaymentRequest]
    customer_id: int | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, payload: dict) -> "CheckoutRequest":
        """Build a request from a JSON-shaped dict; malformed input -> ValidationError."""
        if not isinstance(payload, dict):
            raise ValidationError("checkout payload must be an object")

        try:
            items = [
                CheckoutItem(
                    product_id=raw["product_id"],
                    variant_id=raw.get("variant_id"),
                    quantity=raw["quantity"],
                    modifiers=[
                        Modifier(name=mod.get("name", ""), price=to_money(mod.get("price", 0)))
                        for mod in raw.get("modifiers") or []
                    ],
                    notes=raw.get("notes"),
                )
                for raw in payload.get("items") or []
            ]
            payments = [
                PaymentRequest(
                    method=raw.get("method") or raw.get("payment_method") or "",
                    amount=to_money(raw.get("amount")),
                    reference=raw.get("reference") or raw.get("reference_number"),
                )
                for raw in payload.get("payments") or []
            ]
            return cls(
                outlet_id=payload["outlet_id"],
                customer_id=payload.get("customer_id"),
                items=items,
                payments=payments,
                notes=payload.get("notes"),
            )
        except KeyError as exc:
            raise ValidationError(f"missing field: {exc.args[0]}")
        except (AttributeError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed checkout payload: {exc}")


@dataclass
class RefundRequest:
    transaction_id: int
    reason: str


# =============================================================================
# VALIDATION & PRICING
# =============================================================================

def validate_request(request: CheckoutRequest) -> None:
    """Structural checks that need no database access. Normalizes item quantities."""
    if not request.items:
        raise ValidationError("items must not be empty")
    if not request.payments:
        raise ValidationError("payments must not be empty")

    for idx, item in enumerate(request.items):
        try:
            item.quantity = to_quantity(item.quantity)
        except ValueError:
            raise ValidationError("quantity must be a number", details={"item": idx})
        if item.quantity <= ZERO:
            raise ValidationError("quantity must be positive", details={"item": idx})
        for mod in item.modifiers:
            if to_money(mod.price) < ZERO:
                raise ValidationError("modifier price must not be negative", details={"item": idx})

    for idx, payment in enumerate(request.payments):
        if not normalize_channel(payment.method):
            raise ValidationError("payment method is required", details={"payment": idx})
        if to_money(payment.amount) <= ZERO:
            raise ValidationError("payment amount must be positive", details={"payment": idx})


def _price_line(tenant_id: int, item: CheckoutItem) -> TransactionItem:
    product = find_product(tenant_id, item.product_id)
    if not product.is_active:
        raise ValidationError(
            f"product is not active: {product.name}",
            details={"product_id": product.id},
        )

    unit_price = to_money(product.base_price)
    variant_name = None
    if item.variant_id is not None:
        variant = find_variant(product, item.variant_id)
        unit_price += to_money(variant.additional_price)
        variant_name = variant.name

    unit_price += sum((to_money(mod.price) for mod in item.modifiers), ZERO)

    subtotal = to_money(unit_price * item.quantity)
    tax_amount = to_money(subtotal * to_money(product.tax_rate) / Decimal(100))

    return TransactionItem(
        product_id=product.id,
        variant_id=item.variant_id,
        product_name=product.name,
        variant_name=variant_name,
        quantity=item.quantity,
        unit_price=unit_price,
        subtotal=subtotal,
        tax_amount=tax_amount,
        modifiers=[mod.to_dict() for mod in item.modifiers],
        notes=item.notes,
    )


def _generate_number(prefix: str, now: datetime) -> str:
    """`PREFIX-YYYYMMDD-NNNNN`, random suffix, unique across transactions."""
    for _ in range(_NUMBER_ATTEMPTS):
        candidate = f"{prefix}-{now:%Y%m%d}-{secrets.randbelow(100000):05d}"
        exists = db.session.query(Transaction.id).filter_by(transaction_number=candidate).first()
        if exists is None:
            return candidate
    raise PersistenceError("could not allocate a unique transaction number")


def _record_stock_failure(transaction: Transaction, item: TransactionItem, delta: Decimal, exc: Exception) -> None:
    current_app.logger.warning(
        "Stock update failed for %s product=%s variant=%s delta=%s: %s",
        transaction.transaction_number,
        item.product_id,
        item.variant_id,
        delta,
        exc,
    )
    db.session.add(StockDeductionFailure(
        tenant_id=transaction.tenant_id,
        transaction_id=transaction.id,
        outlet_id=transaction.outlet_id,
        product_id=item.product_id,
        variant_id=item.variant_id,
        quantity_delta=delta,
        error=str(exc)[:1000],
    ))


def _apply_line_stock(transaction: Transaction, sign: int, note: str) -> int:
    """Move stock for every tracked line; returns the number of failed lines."""
    failures = 0
    for item in transaction.items:
        if item.product is not None and not item.product.track_stock:
            continue
        delta = sign * item.quantity
        try:
            with db.session.begin_nested():
                apply_stock_delta(
                    outlet_id=transaction.outlet_id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    delta=delta,
                    movement_type=MOVEMENT_SALE,
                    note=note,
                    actor_user_id=transaction.cashier_id,
                    reference_type=REFERENCE_TYPE_TRANSACTION,
                    reference_id=transaction.id,
                )
        except (SQLAlchemyError, SettlementError) as exc:
            failures += 1
            _record_stock_failure(transaction, item, delta, exc)
    return failures


# =============================================================================
# CHECKOUT
# =============================================================================

def checkout(tenant_id: int, cashier_id: int, request: CheckoutRequest, now: datetime | None = None) -> Transaction:
    """
    Price, validate and post a POS sale.

    `now` is the billing-timezone wall clock; it drives the billing gate and
    the date in the transaction number.

    Raises:
        ValidationError: malformed cart, inactive product, short payment
        BillingBlockedError: overdue or suspended MDR invoice
        NotFoundError: outlet, product or variant not in this tenant
        PersistenceError: store failure (rolled back)
    """
    validate_request(request)
    now = now or billing_now()

    def _op():
        check_checkout_allowed(tenant_id, now=now)
        require_outlet_in_tenant(request.outlet_id, tenant_id)

        lines = [_price_line(tenant_id, item) for item in request.items]
        subtotal = sum((line.subtotal for line in lines), ZERO)
        tax_amount = sum((line.tax_amount for line in lines), ZERO)
        total = subtotal + tax_amount

        paid = sum((to_money(p.amount) for p in request.payments), ZERO)
        if paid < total:
            raise ValidationError(
                "insufficient payment",
                details={"total": str(total), "paid": str(paid)},
            )

        primary_method = normalize_channel(request.payments[0].method)
        fee = compute_fee(primary_method, subtotal)

        transaction = Transaction(
            tenant_id=tenant_id,
            outlet_id=request.outlet_id,
            cashier_id=cashier_id,
            customer_id=request.customer_id,
            transaction_number=_generate_number(TRANSACTION_NUMBER_PREFIX, now),
            type=TRANSACTION_TYPE_SALE,
            status=TRANSACTION_STATUS_COMPLETED,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=total,
            payment_method=primary_method,
            fee_rate_percent=fee.rate_percent,
            fee_rate_flat=fee.rate_flat,
            gateway_fee=fee.gateway_fee,
            platform_fee=fee.platform_fee,
            total_fee=fee.total_fee,
            net_profit=total - fee.total_fee,
            notes=request.notes,
            created_at=utcnow(),
        )
        transaction.items = lines
        transaction.payments = [
            TransactionPayment(
                payment_method=normalize_channel(p.method),
                amount=to_money(p.amount),
                reference_number=p.reference,
            )
            for p in request.payments
        ]
        db.session.add(transaction)
        db.session.flush()

        _apply_line_stock(transaction, -1, f"Sale {transaction.transaction_number}")
        outbox = enqueue_journal(transaction, JOURNAL_SOURCE_POS_SALE)
        db.session.commit()
        return transaction, outbox.id

    try:
        transaction, outbox_id = run_with_retry(_op)
    except SettlementError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Checkout failed for tenant %s", tenant_id)
        raise PersistenceError("failed to save transaction", details={"error": str(exc)})

    current_app.logger.info(
        "Checkout %s tenant=%s total=%s fee=%s",
        transaction.transaction_number,
        tenant_id,
        transaction.total_amount,
        transaction.total_fee,
    )
    dispatch_journal_outbox([outbox_id])
    return transaction


# =============================================================================
# REFUND / REPRINT / QUERIES
# =============================================================================

def _negate(value) -> Decimal:
    return -to_money(value)


def refund(tenant_id: int, cashier_id: int, transaction_id: int, reason: str, now: datetime | None = None) -> Transaction:
    """
    Refund a completed sale in full.

    Raises:
        NotFoundError: unknown transaction or another tenant's
        ConflictError: already refunded, not a sale, or not completed
    """
    now = now or billing_now()

    def _op():
        original = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if original is None or original.tenant_id != tenant_id:
            raise NotFoundError("transaction not found", details={"transaction_id": transaction_id})
        if original.status == TRANSACTION_STATUS_REFUNDED:
            raise ConflictError("transaction already refunded", details={"transaction_id": transaction_id})
        if original.type != TRANSACTION_TYPE_SALE or original.status != TRANSACTION_STATUS_COMPLETED:
            raise ConflictError(
                "only completed sales can be refunded",
                details={"transaction_id": transaction_id, "type": original.type, "status": original.status},
            )

        refund_tx = Transaction(
            tenant_id=tenant_id,
            outlet_id=original.outlet_id,
            cashier_id=cashier_id,
            customer_id=original.customer_id,
            transaction_number=_generate_number(REFUND_NUMBER_PREFIX, now),
            type=TRANSACTION_TYPE_REFUND,
            status=TRANSACTION_STATUS_COMPLETED,
            subtotal=_negate(original.subtotal),
            tax_amount=_negate(original.tax_amount),
            total_amount=_negate(original.total_amount),
            payment_method=original.payment_method,
            fee_rate_percent=original.fee_rate_percent,
            fee_rate_flat=original.fee_rate_flat,
            gateway_fee=_negate(original.gateway_fee),
            platform_fee=_negate(original.platform_fee),
            total_fee=_negate(original.total_fee),
            net_profit=_negate(original.net_profit),
            refund_reason=reason,
            original_transaction_id=original.id,
            created_at=utcnow(),
        )
        refund_tx.items = [
            TransactionItem(
                product_id=item.product_id,
                variant_id=item.variant_id,
                product_name=item.product_name,
                variant_name=item.variant_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=_negate(item.subtotal),
                tax_amount=_negate(item.tax_amount),
                modifiers=list(item.modifiers or []),
                notes=item.notes,
            )
            for item in original.items
        ]
        refund_tx.payments = [
            TransactionPayment(
                payment_method=payment.payment_method,
                amount=_negate(payment.amount),
                reference_number=payment.reference_number,
            )
            for payment in original.payments
        ]
        original.status = TRANSACTION_STATUS_REFUNDED
        db.session.add(refund_tx)
        db.session.flush()

        _apply_line_stock(refund_tx, 1, f"Refund {refund_tx.transaction_number}")
        outbox = enqueue_journal(refund_tx, JOURNAL_SOURCE_POS_REFUND)
        db.session.commit()
        return refund_tx, outbox.id

    try:
        refund_tx, outbox_id = run_with_retry(_op)
    except SettlementError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Refund failed for transaction %s", transaction_id)
        raise PersistenceError("failed to save refund", details={"error": str(exc)})

    dispatch_journal_outbox([outbox_id])
    return refund_tx


def get_transaction(tenant_id: int, transaction_id: int) -> Transaction:
    transaction = scoped_query(Transaction, tenant_id).filter(Transaction.id == transaction_id).first()
    if transaction is None:
        raise NotFoundError("transaction not found", details={"transaction_id": transaction_id})
    return transaction


def reprint(tenant_id: int, transaction_id: int) -> Transaction:
    """Count a receipt reprint."""
    def _op():
        transaction = lock_for_update(
            scoped_query(Transaction, tenant_id).filter(Transaction.id == transaction_id)
        ).first()
        if transaction is None:
            raise NotFoundError("transaction not found", details={"transaction_id": transaction_id})
        transaction.reprint_count = (transaction.reprint_count or 0) + 1
        transaction.last_reprint_at = utcnow()
        db.session.commit()
        return transaction

    try:
        return run_with_retry(_op)
    except SettlementError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Reprint failed for transaction %s", transaction_id)
        raise PersistenceError("failed to record reprint", details={"error": str(exc)})


def list_transactions(
    tenant_id: int,
    outlet_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Transaction], int]:
    q = scoped_query(Transaction, tenant_id)
    if outlet_id is not None:
        q = q.filter(Transaction.outlet_id == outlet_id)
    total = q.count()
    page = max(page, 1)
    transactions = (
        q.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return transactions, total


def refund_from_request(tenant_id: int, cashier_id: int, request: RefundRequest, now: datetime | None = None) -> Transaction:
    if not (request.reason or "").strip():
        raise ValidationError("refund reason is required")
    return refund(tenant_id, cashier_id, request.transaction_id, request.reason.strip(), now=now)
