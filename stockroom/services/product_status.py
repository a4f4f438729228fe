"""
Status Resolver

Product.status is a pure function of current on-hand quantity and the reorder
threshold. It is persisted after every stock-touching workflow; reads never
re-resolve it lazily.
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import func, select

from stockroom.models import db, Product, ProductStatus, ProductVariant

logger = logging.getLogger(__name__)


def reorder_threshold(product) -> int:
    """reorder_point, falling back to min_stock, falling back to 0. A stored 0 counts."""
    if product.reorder_point is not None:
        return product.reorder_point
    if product.min_stock is not None:
        return product.min_stock
    return 0


def resolve_status(quantity, threshold: Optional[int]) -> str:
    if quantity <= 0:
        return ProductStatus.STOCK_OUT
    if threshold is not None and threshold > 0 and quantity <= threshold:
        return ProductStatus.STOCK_LOW
    return ProductStatus.AVAILABLE


def current_stock_level(product) -> int:
    """Fresh on-hand total from the database, bypassing any loaded variant state."""
    if product.has_variants:
        total = db.session.execute(
            select(func.coalesce(func.sum(ProductVariant.quantity), 0)).where(
                ProductVariant.product_id == product.id,
                ProductVariant.is_active.is_(True),
            )
        ).scalar()
    else:
        total = db.session.execute(
            select(Product.quantity).where(Product.id == product.id)
        ).scalar()
    return int(total or 0)


def refresh_product_status(product) -> str:
    """Re-resolve and assign product.status. The caller commits."""
    quantity = current_stock_level(product)
    threshold = reorder_threshold(product)
    status = resolve_status(quantity, threshold)

    if product.status != status:
        logger.info(
            "Product %s status %s -> %s (quantity=%s, threshold=%s)",
            product.sku, product.status, status, quantity, threshold,
        )
        product.status = status
    return status


def refresh_product_statuses(product_ids: Iterable[str]) -> Dict[str, str]:
    """Refresh every distinct product id given; unknown ids are skipped."""
    results = {}
    for product_id in dict.fromkeys(pid for pid in product_ids if pid):
        product = db.session.get(Product, product_id)
        if product is None:
            logger.warning("Status refresh skipped unknown product %s", product_id)
            continue
        results[product_id] = refresh_product_status(product)
    return results
