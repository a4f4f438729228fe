"""
Catalog maintenance: products and their variants.

Stock never enters through this module. New products and variants start at
zero and only the ledger moves quantity afterwards.
"""

import logging
import math
import numbers
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models import db, Category, InventoryTransaction, Product, ProductStatus, ProductVariant, Supplier, Warehouse
from .audit_service import AuditAction, AuditService
from .exceptions import InventoryServiceError, NotFoundError, PersistenceError, ValidationError
from .permission_service import require_permission
from .product_status import refresh_product_status

logger = logging.getLogger(__name__)

THRESHOLD_FIELDS = ('min_stock', 'max_stock', 'reorder_point', 'reorder_quantity')
PRODUCT_EDITABLE_FIELDS = (
    'name', 'sku', 'description', 'category_id', 'supplier_id', 'default_warehouse_id',
    'price', 'cost_price', 'status',
) + THRESHOLD_FIELDS
VARIANT_EDITABLE_FIELDS = (
    'name', 'sku', 'barcode', 'price', 'cost_price', 'size', 'color', 'is_active',
    'min_stock', 'max_stock', 'reorder_point',
)
REFERENCE_MODELS = {
    'category_id': Category,
    'supplier_id': Supplier,
    'default_warehouse_id': Warehouse,
}


def _optional_int(value, field_name):
    if value is None or value == '':
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value) or int(value) != value:
        raise ValidationError(f"{field_name} must be a whole number")
    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return int(value)


def _optional_money(value, field_name):
    if value is None or value == '':
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not math.isfinite(amount):
        raise ValidationError(f"{field_name} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return amount


def _required_text(data, field_name):
    value = (data.get(field_name) or '').strip()
    if not value:
        raise ValidationError(f"{field_name} is required")
    return value


class CatalogService:

    @staticmethod
    def create_product(data: Mapping[str, Any], user=None) -> Product:
        actor = require_permission(user, 'products', 'create')

        sku = _required_text(data, 'sku')
        if Product.query.filter_by(sku=sku).first():
            raise ValidationError("SKU already exists")

        product = Product(
            organization_id=actor.organization_id,
            name=_required_text(data, 'name'),
            sku=sku,
            description=data.get('description'),
            price=_optional_money(data.get('price'), 'price') or 0.0,
            cost_price=_optional_money(data.get('cost_price'), 'cost_price'),
            quantity=0,
            has_variants=False,
        )
        for field_name in THRESHOLD_FIELDS:
            setattr(product, field_name, _optional_int(data.get(field_name), field_name))
        for field_name in REFERENCE_MODELS:
            setattr(product, field_name, CatalogService._reference_id(field_name, data.get(field_name), actor))

        db.session.add(product)
        CatalogService._commit(lambda: refresh_product_status(product))

        logger.info(f"Created product {product.sku} for org {actor.organization_id}")
        AuditService.record(
            AuditAction.CREATE, 'Product', product.id,
            new_values={'sku': product.sku, 'name': product.name},
            user=actor, entity_name=product.name,
        )
        return product

    @staticmethod
    def update_product(product_id: str, changes: Mapping[str, Any], user=None) -> Product:
        """Edit catalog fields. Quantity is ledger-owned; status is derived once variants exist."""
        actor = require_permission(user, 'products', 'update')
        product = CatalogService._tenant_product(product_id, actor)

        unknown = set(changes) - set(PRODUCT_EDITABLE_FIELDS)
        if 'quantity' in unknown:
            raise ValidationError("Stock levels change only through purchasing, sales or adjustments")
        if unknown:
            raise ValidationError(f"Unsupported product fields: {', '.join(sorted(unknown))}")
        if 'status' in changes and product.has_variants:
            raise ValidationError("Status is derived from variant stock and cannot be edited")

        old_values = {field_name: getattr(product, field_name) for field_name in changes}

        try:
            if 'sku' in changes:
                sku = _required_text(changes, 'sku')
                if sku != product.sku and Product.query.filter_by(sku=sku).first():
                    raise ValidationError("SKU already exists")
                product.sku = sku
            if 'name' in changes:
                product.name = _required_text(changes, 'name')
            if 'description' in changes:
                product.description = changes['description']
            if 'price' in changes:
                product.price = _optional_money(changes['price'], 'price') or 0.0
            if 'cost_price' in changes:
                product.cost_price = _optional_money(changes['cost_price'], 'cost_price')
            for field_name in THRESHOLD_FIELDS:
                if field_name in changes:
                    setattr(product, field_name, _optional_int(changes[field_name], field_name))
            for field_name in REFERENCE_MODELS:
                if field_name in changes:
                    setattr(product, field_name, CatalogService._reference_id(field_name, changes[field_name], actor))
            if 'status' in changes:
                if changes['status'] not in ProductStatus.ALL:
                    raise ValidationError(f"Status must be one of: {', '.join(ProductStatus.ALL)}")
                product.status = changes['status']
        except InventoryServiceError:
            db.session.rollback()
            raise

        thresholds_changed = any(field_name in changes for field_name in ('min_stock', 'reorder_point'))

        def _finish():
            if product.has_variants or thresholds_changed:
                refresh_product_status(product)

        CatalogService._commit(_finish)

        AuditService.record(
            AuditAction.UPDATE, 'Product', product.id,
            old_values=old_values,
            new_values={field_name: getattr(product, field_name) for field_name in changes},
            user=actor, entity_name=product.name,
        )
        return product

    @staticmethod
    def create_variant(product_id: str, data: Mapping[str, Any], user=None) -> ProductVariant:
        actor = require_permission(user, 'variants', 'create')
        product = CatalogService._tenant_product(product_id, actor)

        if not product.has_variants and product.quantity > 0:
            raise ValidationError(
                f"Product {product.sku} holds {product.quantity} units at product level; "
                "adjust them out before adding variants"
            )

        sku = _required_text(data, 'sku')
        if ProductVariant.query.filter_by(sku=sku).first():
            raise ValidationError("Variant SKU must be unique")
        barcode = (data.get('barcode') or '').strip() or None
        if barcode and ProductVariant.query.filter_by(barcode=barcode).first():
            raise ValidationError("Variant barcode must be unique")

        variant = ProductVariant(
            product=product,
            name=_required_text(data, 'name'),
            sku=sku,
            barcode=barcode,
            quantity=0,
            price=_optional_money(data.get('price'), 'price') or 0.0,
            cost_price=_optional_money(data.get('cost_price'), 'cost_price'),
            is_active=bool(data.get('is_active', True)),
            size=data.get('size'),
            color=data.get('color'),
            min_stock=_optional_int(data.get('min_stock'), 'min_stock'),
            max_stock=_optional_int(data.get('max_stock'), 'max_stock'),
            reorder_point=_optional_int(data.get('reorder_point'), 'reorder_point'),
        )
        product.has_variants = True
        db.session.add(variant)
        CatalogService._commit(lambda: refresh_product_status(product))

        AuditService.record(
            AuditAction.CREATE, 'ProductVariant', variant.id,
            new_values={'sku': variant.sku, 'product_id': product.id},
            user=actor, entity_name=variant.name,
        )
        return variant

    @staticmethod
    def update_variant(variant_id: str, changes: Mapping[str, Any], user=None) -> ProductVariant:
        actor = require_permission(user, 'variants', 'update')
        variant = CatalogService._tenant_variant(variant_id, actor)

        unknown = set(changes) - set(VARIANT_EDITABLE_FIELDS)
        if 'quantity' in unknown:
            raise ValidationError("Variant quantity is managed through purchase order receipts")
        if unknown:
            raise ValidationError(f"Unsupported variant fields: {', '.join(sorted(unknown))}")

        old_values = {field_name: getattr(variant, field_name) for field_name in changes}

        try:
            if 'sku' in changes:
                sku = _required_text(changes, 'sku')
                if sku != variant.sku and ProductVariant.query.filter_by(sku=sku).first():
                    raise ValidationError("Variant SKU must be unique")
                variant.sku = sku
            if 'barcode' in changes:
                barcode = (changes.get('barcode') or '').strip() or None
                if barcode and barcode != variant.barcode and ProductVariant.query.filter_by(barcode=barcode).first():
                    raise ValidationError("Variant barcode must be unique")
                variant.barcode = barcode
            if 'name' in changes:
                variant.name = _required_text(changes, 'name')
            if 'price' in changes:
                variant.price = _optional_money(changes['price'], 'price') or 0.0
            if 'cost_price' in changes:
                variant.cost_price = _optional_money(changes['cost_price'], 'cost_price')
            for field_name in ('size', 'color'):
                if field_name in changes:
                    setattr(variant, field_name, changes[field_name])
            for field_name in ('min_stock', 'max_stock', 'reorder_point'):
                if field_name in changes:
                    setattr(variant, field_name, _optional_int(changes[field_name], field_name))
            if 'is_active' in changes:
                variant.is_active = bool(changes['is_active'])
        except InventoryServiceError:
            db.session.rollback()
            raise

        CatalogService._commit(lambda: refresh_product_status(variant.product))

        AuditService.record(
            AuditAction.UPDATE, 'ProductVariant', variant.id,
            old_values=old_values,
            new_values={field_name: getattr(variant, field_name) for field_name in changes},
            user=actor, entity_name=variant.name,
        )
        return variant

    @staticmethod
    def deactivate_variant(variant_id: str, user=None) -> ProductVariant:
        return CatalogService.update_variant(variant_id, {'is_active': False}, user=user)

    @staticmethod
    def delete_variant(variant_id: str, user=None) -> None:
        """Hard-delete a variant that never moved stock."""
        actor = require_permission(user, 'variants', 'delete')
        variant = CatalogService._tenant_variant(variant_id, actor)
        product = variant.product

        has_history = db.session.query(InventoryTransaction.id).filter_by(product_variant_id=variant.id).first()
        if has_history:
            raise ValidationError(f"Variant {variant.sku} has stock history; deactivate it instead")

        sku = variant.sku
        product.variants.remove(variant)

        def _finish():
            db.session.flush()
            if not product.variants:
                product.has_variants = False
            refresh_product_status(product)

        CatalogService._commit(_finish)
        AuditService.record(
            AuditAction.DELETE, 'ProductVariant', variant_id,
            old_values={'sku': sku, 'product_id': product.id},
            user=actor, entity_name=sku,
        )

    @staticmethod
    def _tenant_product(product_id, actor) -> Product:
        product = db.session.get(Product, product_id) if product_id else None
        if product is None or product.organization_id != actor.organization_id:
            raise NotFoundError('Product', product_id)
        return product

    @staticmethod
    def _tenant_variant(variant_id, actor) -> ProductVariant:
        variant = db.session.get(ProductVariant, variant_id) if variant_id else None
        if variant is None or variant.product.organization_id != actor.organization_id:
            raise NotFoundError('Variant', variant_id)
        return variant

    @staticmethod
    def _reference_id(field_name, value, actor) -> Optional[str]:
        if not value:
            return None
        model = REFERENCE_MODELS[field_name]
        row = db.session.get(model, value)
        if row is None or row.organization_id != actor.organization_id:
            raise NotFoundError(model.__name__, value)
        return row.id

    @staticmethod
    def _commit(before_commit=None) -> None:
        try:
            if before_commit:
                before_commit()
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError("SKU or barcode already exists") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Catalog write failed")
            raise PersistenceError("Failed to save catalog changes") from exc
