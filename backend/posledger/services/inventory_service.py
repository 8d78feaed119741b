# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/posledger/services/inventory_service.py

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..money import ZERO, to_quantity
from ..models import InventoryLevel, InventoryMovement, Outlet, Product
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_TYPES
from .concurrency import begin_write_lock, lock_for_update, run_with_retry
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- InventoryLevel.quantity is the current on-hand per outlet/product/variant.
- Every change to quantity appends exactly one InventoryMovement in the same
  DB transaction. Movements are append-only (no updates/deletes).

Concurrency:
- Relative changes (sales, refunds, adjustments) are a single
  `quantity = quantity + delta` UPDATE; concurrent checkouts never lose updates.
- Absolute sets (stock takes) lock the level row (BEGIN IMMEDIATE on SQLite)
  and compute the movement delta from the locked value.

Negative stock:
- Quantity may go negative. POS sales are never refused for stock; a
  negative level shows up in find_low_stock for follow-up.
"""


def _level_filter(outlet_id: int, product_id: int, variant_id: int | None) -> list:
    clauses = [
        InventoryLevel.outlet_id == outlet_id,
        InventoryLevel.product_id == product_id,
    ]
    if variant_id is None:
        clauses.append(InventoryLevel.variant_id.is_(None))
    else:
        clauses.append(InventoryLevel.variant_id == variant_id)
    return clauses


def _ensure_outlet_product(outlet_id: int, product_id: int) -> Outlet:
    outlet = db.session.get(Outlet, outlet_id)
    if outlet is None:
        raise NotFoundError(f"Outlet {outlet_id} not found")
    product = db.session.get(Product, product_id)
    if product is None or product.tenant_id != outlet.tenant_id:
        raise NotFoundError(f"product not found: {product_id}")
    return outlet


def _validate_quantity(value, *, field: str, allow_zero: bool) -> Decimal:
    try:
        quantity = to_quantity(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if not allow_zero and quantity == ZERO:
        raise ValidationError(f"{field} must be non-zero")
    return quantity


def _record_movement(
    *,
    outlet_id: int,
    product_id: int,
    variant_id: int | None,
    movement_type: str,
    quantity_delta: Decimal,
    note: str | None,
    actor_user_id: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> InventoryMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"invalid movement type: {movement_type}")
    movement = InventoryMovement(
        outlet_id=outlet_id,
        product_id=product_id,
        variant_id=variant_id,
        type=movement_type,
        quantity_delta=quantity_delta,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        created_by_user_id=actor_user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _increment_level(outlet_id: int, product_id: int, variant_id: int | None, delta: Decimal) -> None:
    """Atomic relative change; creates the level row on first touch."""
    stmt = (
        update(InventoryLevel)
        .where(*_level_filter(outlet_id, product_id, variant_id))
        .values(quantity=InventoryLevel.quantity + delta)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        return

    try:
        with db.session.begin_nested():
            db.session.add(InventoryLevel(
                outlet_id=outlet_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=delta,
            ))
    except IntegrityError:
        # Another writer created the row first; fall back to the increment
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise


def apply_stock_delta(
    *,
    outlet_id: int,
    product_id: int,
    variant_id: int | None,
    delta: Decimal | int,
    movement_type: str,
    note: str | None = None,
    actor_user_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> InventoryMovement:
    """Core relative-change logic without retry or commit.

    Called by adjust_stock() and by checkout/refund inside their own
    DB transaction (one savepoint per line).
    """
    delta = _validate_quantity(delta, field="delta", allow_zero=False)
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"invalid movement type: {movement_type}")
    _increment_level(outlet_id, product_id, variant_id, delta)
    return _record_movement(
        outlet_id=outlet_id,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity_delta=delta,
        note=note,
        actor_user_id=actor_user_id,
        reference_type=reference_type,
        reference_id=reference_id,
    )


def adjust_stock(
    outlet_id: int,
    product_id: int,
    variant_id: int | None,
    delta: Decimal | int,
    note: str | None = None,
    actor_user_id: int | None = None,
    *,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> InventoryMovement:
    """Apply a relative stock change (+/-) and record the movement."""
    def _op():
        _ensure_outlet_product(outlet_id, product_id)
        movement = apply_stock_delta(
            outlet_id=outlet_id,
            product_id=product_id,
            variant_id=variant_id,
            delta=delta,
            movement_type=movement_type,
            note=note,
            actor_user_id=actor_user_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        db.session.commit()
        return movement

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


def set_stock(
    outlet_id: int,
    product_id: int,
    variant_id: int | None,
    quantity: Decimal | int,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> InventoryMovement:
    """
    Set the absolute stock value and record the movement.

    The level row is locked before it is read, so the recorded delta
    (new - old) is exact even with concurrent sales on the same product.
    """
    quantity = _validate_quantity(quantity, field="quantity", allow_zero=True)
    if quantity < 0:
        raise ValidationError("quantity cannot be negative")

    def _op():
        begin_write_lock()
        _ensure_outlet_product(outlet_id, product_id)

        level = lock_for_update(
            db.session.query(InventoryLevel).filter(*_level_filter(outlet_id, product_id, variant_id))
        ).first()

        old_quantity = level.quantity if level is not None else ZERO
        if level is None:
            level = InventoryLevel(
                outlet_id=outlet_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
            )
            db.session.add(level)
        else:
            level.quantity = quantity

        movement = _record_movement(
            outlet_id=outlet_id,
            product_id=product_id,
            variant_id=variant_id,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity_delta=quantity - old_quantity,
            note=f"Set stok: {note or ''}".strip(),
            actor_user_id=actor_user_id,
        )
        db.session.commit()
        return movement

    try:
        return run_with_retry(_op)
    except NotFoundError:
        db.session.rollback()
        raise


def set_min_stock(outlet_id: int, product_id: int, variant_id: int | None, min_stock: Decimal | int) -> InventoryLevel:
    """Configure the low-stock threshold. Does not touch quantity, so no movement."""
    min_stock = _validate_quantity(min_stock, field="min_stock", allow_zero=True)

    def _op():
        _ensure_outlet_product(outlet_id, product_id)
        level = lock_for_update(
            db.session.query(InventoryLevel).filter(*_level_filter(outlet_id, product_id, variant_id))
        ).first()
        if level is None:
            level = InventoryLevel(
                outlet_id=outlet_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=0,
            )
            db.session.add(level)
        level.min_stock = min_stock
        db.session.commit()
        return level

    try:
        return run_with_retry(_op)
    except NotFoundError:
        db.session.rollback()
        raise


def get_stock(outlet_id: int, product_id: int, variant_id: int | None = None) -> Decimal:
    level = db.session.query(InventoryLevel).filter(*_level_filter(outlet_id, product_id, variant_id)).first()
    return level.quantity if level is not None else ZERO


def find_low_stock(outlet_id: int) -> list[InventoryLevel]:
    """Levels at or below their configured minimum."""
    return (
        db.session.query(InventoryLevel)
        .filter(
            InventoryLevel.outlet_id == outlet_id,
            InventoryLevel.quantity <= InventoryLevel.min_stock,
        )
        .order_by(InventoryLevel.product_id, InventoryLevel.id)
        .all()
    )


def list_movements(outlet_id: int, product_id: int | None = None, limit: int = 50) -> list[InventoryMovement]:
    q = db.session.query(InventoryMovement).filter_by(outlet_id=outlet_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    if limit <= 0:
        limit = 50
    return q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc()).limit(limit).all()
