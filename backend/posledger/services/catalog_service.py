# Overview: Read-only catalog port consumed by checkout.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..errors import NotFoundError
from ..models import Product, ProductVariant


def find_product(tenant_id: int, product_id: int) -> Product:
    """
    Load a product with its variants.

    A product owned by another tenant is reported as not found.
    """
    product = (
        db.session.query(Product)
        .options(selectinload(Product.variants))
        .filter_by(id=product_id)
        .first()
    )
    if product is None or product.tenant_id != tenant_id:
        raise NotFoundError(f"product not found: {product_id}", details={"product_id": product_id})
    return product


def find_variant(product: Product, variant_id: int) -> ProductVariant:
    for variant in product.variants:
        if variant.id == variant_id:
            return variant
    raise NotFoundError(
        f"variant not found: {variant_id}",
        details={"product_id": product.id, "variant_id": variant_id},
    )
