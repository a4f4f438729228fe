import logging

from sqlalchemy import func

from stockroom.models import db, InventoryTransaction, Product, ProductVariant

logger = logging.getLogger(__name__)


def validate_ledger_sync(variant_id):
    """Validate that a variant's on-hand quantity equals the sum of its ledger rows."""
    variant = db.session.get(ProductVariant, variant_id)
    if not variant:
        return False, "Variant not found", 0, 0

    ledger_total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(InventoryTransaction.product_variant_id == variant_id)
        .scalar()
    )
    return _compare(f"variant {variant.sku}", int(variant.quantity or 0), int(ledger_total))


def validate_product_ledger_sync(product_id):
    """Same check for a product whose stock is held at product level."""
    product = db.session.get(Product, product_id)
    if not product:
        return False, "Product not found", 0, 0

    ledger_total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.product_variant_id.is_(None),
        )
        .scalar()
    )
    return _compare(f"product {product.sku}", int(product.quantity or 0), int(ledger_total))


def _compare(label, on_hand, ledger_total):
    if on_hand == ledger_total:
        return True, None, on_hand, ledger_total

    logger.error(f"LEDGER SYNC MISMATCH for {label}:")
    logger.error(f"  On hand: {on_hand}")
    logger.error(f"  Ledger total: {ledger_total}")
    logger.error(f"  Difference: {on_hand - ledger_total}")

    error_msg = f"Ledger sync error: on_hand={on_hand}, ledger_total={ledger_total}, diff={on_hand - ledger_total}"
    return False, error_msg, on_hand, ledger_total
