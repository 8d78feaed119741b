from __future__ import annotations

from ..extensions import db
from ..money import quantity_str
from ..time_utils import to_utc_z

MOVEMENT_SALE = "sale"
MOVEMENT_PURCHASE = "purchase"
MOVEMENT_TRANSFER_IN = "transfer_in"
MOVEMENT_TRANSFER_OUT = "transfer_out"
MOVEMENT_ADJUSTMENT = "adjustment"

MOVEMENT_TYPES = (
    MOVEMENT_SALE,
    MOVEMENT_PURCHASE,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_ADJUSTMENT,
)


class InventoryLevel(db.Model):
    """
    Current stock for a product (optionally a variant) at an outlet.

    quantity is only ever changed through inventory_service, with an atomic
    `quantity = quantity + delta` statement or a locked set, and each change
    is paired with exactly one InventoryMovement.
    """
    __tablename__ = "inventory_levels"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "product_id", "variant_id", name="uq_inventory_outlet_product_variant"),
        db.Index("ix_inventory_outlet_low", "outlet_id", "quantity", "min_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    quantity = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    min_stock = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": quantity_str(self.quantity),
            "min_stock": quantity_str(self.min_stock),
            "updated_at": to_utc_z(self.updated_at),
        }

class InventoryMovement(db.Model):
    """
    Append-only audit record of one stock change.

    IMMUTABLE: Never update or delete. quantity_delta is signed
    (sale = negative, refund restore = positive).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_outlet_product_created", "outlet_id", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Numeric(15, 2), nullable=False)

    reference_type = db.Column(db.String(50), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "type": self.type,
            "quantity_delta": quantity_str(self.quantity_delta),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }

class StockDeductionFailure(db.Model):
    """
    Reconciliation record for a stock line that failed during checkout/refund.

    The sale itself stays posted; these rows are the worklist for bringing
    stock truth back in line with sales.
    """
    __tablename__ = "stock_deduction_failures"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, nullable=False)
    variant_id = db.Column(db.Integer, nullable=True)
    quantity_delta = db.Column(db.Numeric(15, 2), nullable=False)
    error = db.Column(db.Text, nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_id": self.transaction_id,
            "outlet_id": self.outlet_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity_delta": quantity_str(self.quantity_delta),
            "error": self.error,
            "resolved_at": to_utc_z(self.resolved_at),
            "created_at": to_utc_z(self.created_at),
        }
