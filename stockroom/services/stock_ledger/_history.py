from stockroom.models import InventoryTransaction, Product
from stockroom.services.exceptions import ValidationError


def list_transactions(*, product_id=None, variant_id=None, organization_id=None, transaction_type=None, limit=None):
    """Ledger rows newest first. At least one of product_id or variant_id is required."""
    if not product_id and not variant_id:
        raise ValidationError("product_id or variant_id is required")

    query = InventoryTransaction.query
    if variant_id:
        query = query.filter(InventoryTransaction.product_variant_id == variant_id)
    if product_id:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if organization_id:
        query = query.join(Product, Product.id == InventoryTransaction.product_id).filter(
            Product.organization_id == organization_id
        )
    if transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type.upper())

    query = query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
