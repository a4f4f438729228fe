from typing import Any, Dict, List

from ..models import db, Product
from .exceptions import NotFoundError
from .permission_service import require_permission
from .variant_aggregator import compute_product_aggregate, format_price_range


def _variant_view(variant) -> Dict[str, Any]:
    return {
        'id': variant.id,
        'name': variant.name,
        'sku': variant.sku,
        'barcode': variant.barcode,
        'size': variant.size,
        'color': variant.color,
        'price': variant.price,
        'cost_price': variant.cost_price,
        'quantity': variant.quantity,
        'is_active': variant.is_active,
    }


class ProductService:
    """Read-side product assembly"""

    @staticmethod
    def get_product_view(product_id: str, user=None) -> Dict[str, Any]:
        """Stored product fields merged with live variant aggregates.

        `status` is always the persisted value; `price` and `quantity` are
        recomputed from active variants on every call for variant-bearing
        products.
        """
        actor = require_permission(user, 'products', 'read')

        product = db.session.get(Product, product_id) if product_id else None
        if product is None or product.organization_id != actor.organization_id:
            raise NotFoundError('Product', product_id)
        return ProductService._build_view(product)

    @staticmethod
    def list_product_views(user=None) -> List[Dict[str, Any]]:
        """Every product of the caller's organization, by name, with the same live aggregates."""
        actor = require_permission(user, 'products', 'read')

        products = (
            Product.query
            .filter_by(organization_id=actor.organization_id)
            .order_by(Product.name, Product.sku)
            .all()
        )
        return [ProductService._build_view(product) for product in products]

    @staticmethod
    def _build_view(product) -> Dict[str, Any]:
        view = {
            'id': product.id,
            'name': product.name,
            'sku': product.sku,
            'description': product.description,
            'category_id': product.category_id,
            'supplier_id': product.supplier_id,
            'default_warehouse_id': product.default_warehouse_id,
            'status': product.status,
            'min_stock': product.min_stock,
            'max_stock': product.max_stock,
            'reorder_point': product.reorder_point,
            'reorder_quantity': product.reorder_quantity,
            'has_variants': product.has_variants,
            'cost_price': product.cost_price,
            'price': product.price,
            'quantity': product.quantity,
            'variants': [_variant_view(v) for v in product.variants],
        }

        if product.has_variants:
            aggregate = compute_product_aggregate(product.variants)
            view.update(aggregate.to_dict())
            view['price_range'] = format_price_range(aggregate.min_price, aggregate.max_price)
        else:
            view.update(min_price=product.price, max_price=product.price)
            view['price_range'] = format_price_range(product.price, product.price)

        return view
