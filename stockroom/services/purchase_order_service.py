import logging
import math
import numbers
from typing import Any, Mapping

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models import db, Product, ProductVariant, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus, Supplier
from ..utils.code_generator import generate_po_number
from ..utils.timezone_utils import TimezoneUtils
from .audit_service import AuditAction, AuditService
from .exceptions import NotFoundError, PersistenceError, ValidationError
from .permission_service import require_permission

logger = logging.getLogger(__name__)


class PurchaseOrderService:
    """Purchase order lifecycle outside of receiving: Draft -> Submitted, Received -> Closed."""

    @staticmethod
    def create_purchase_order(data: Mapping[str, Any], user=None) -> PurchaseOrder:
        actor = require_permission(user, 'purchase_orders', 'create')

        raw_items = data.get('items') or []
        if not raw_items:
            raise ValidationError("A purchase order needs at least one line")

        po_number = (data.get('po_number') or '').strip() or generate_po_number()
        if PurchaseOrder.query.filter_by(po_number=po_number).first():
            raise ValidationError(f"Purchase order number {po_number} already exists")

        supplier_id = data.get('supplier_id')
        if supplier_id:
            supplier = db.session.get(Supplier, supplier_id)
            if supplier is None or supplier.organization_id != actor.organization_id:
                raise NotFoundError('Supplier', supplier_id)

        items = [
            PurchaseOrderService._build_item(position, raw, actor)
            for position, raw in enumerate(raw_items, start=1)
        ]

        total_cost = PurchaseOrderService._parse_cost(data.get('total_cost'), "Total cost")
        if total_cost is None:
            total_cost = sum(item.line_total for item in items)
        ordered_at = PurchaseOrderService._parse_date(data.get('ordered_at'), 'order date') or TimezoneUtils.utc_now()
        expected_at = PurchaseOrderService._parse_date(data.get('expected_at'), 'expected date')

        po = PurchaseOrder(
            organization_id=actor.organization_id,
            po_number=po_number,
            supplier_id=supplier_id or None,
            status=PurchaseOrderStatus.DRAFT,
            ordered_at=ordered_at,
            expected_at=expected_at,
            total_cost=total_cost,
            notes=data.get('notes'),
            created_by=actor.id,
            items=items,
        )
        db.session.add(po)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError(f"Purchase order number {po_number} already exists") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Purchase order create failed")
            raise PersistenceError("Failed to create purchase order") from exc

        logger.info(f"Created purchase order {po.po_number} with {len(items)} lines")
        AuditService.record(
            AuditAction.CREATE, 'PurchaseOrder', po.id,
            new_values={'po_number': po.po_number, 'status': po.status, 'total_cost': po.total_cost},
            user=actor, entity_name=po.po_number,
        )
        return po

    @staticmethod
    def submit_purchase_order(po_id: str, user=None) -> PurchaseOrder:
        return PurchaseOrderService._transition(
            po_id, (PurchaseOrderStatus.DRAFT,), PurchaseOrderStatus.SUBMITTED, user,
        )

    @staticmethod
    def close_purchase_order(po_id: str, user=None) -> PurchaseOrder:
        return PurchaseOrderService._transition(
            po_id, (PurchaseOrderStatus.RECEIVED,), PurchaseOrderStatus.CLOSED, user, closed_at=TimezoneUtils.utc_now(),
        )

    @staticmethod
    def _transition(po_id, from_statuses, to_status, user, **extra) -> PurchaseOrder:
        """Forward-only status change, guarded by a conditional update."""
        actor = require_permission(user, 'purchase_orders', 'update')
        po = db.session.get(PurchaseOrder, po_id) if po_id else None
        if po is None or po.organization_id != actor.organization_id:
            raise NotFoundError('Purchase order', po_id)

        old_status = po.status
        if old_status not in from_statuses:
            raise ValidationError(f"Purchase order {po.po_number} is {old_status}; cannot move to {to_status}")

        try:
            result = db.session.execute(
                update(PurchaseOrder)
                .where(PurchaseOrder.id == po.id, PurchaseOrder.status.in_(from_statuses))
                .values(status=to_status, **extra)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.session.rollback()
                raise ValidationError(f"Purchase order {po.po_number} changed status concurrently")
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"Purchase order transition failed for {po_id}")
            raise PersistenceError("Failed to update purchase order") from exc

        db.session.refresh(po)
        AuditService.record(
            AuditAction.UPDATE, 'PurchaseOrder', po.id,
            old_values={'status': old_status},
            new_values={'status': po.status},
            user=actor, entity_name=po.po_number,
        )
        return po

    @staticmethod
    def _parse_cost(value, label):
        if value is None or value == '':
            return None
        if isinstance(value, bool):
            raise ValidationError(f"{label} must be a number")
        try:
            amount = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be a number")
        if not math.isfinite(amount):
            raise ValidationError(f"{label} must be a finite number")
        if amount < 0:
            raise ValidationError(f"{label} cannot be negative")
        return amount

    @staticmethod
    def _parse_date(value, label):
        if value in (None, ''):
            return None
        parsed = TimezoneUtils.parse_iso(value)
        if parsed is None:
            raise ValidationError(f"Invalid {label}: {value}")
        return parsed

    @staticmethod
    def _build_item(position, raw, actor) -> PurchaseOrderItem:
        quantity = raw.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, numbers.Real) or not math.isfinite(quantity) or int(quantity) != quantity or quantity <= 0:
            raise ValidationError(f"Line {position}: quantity must be a positive whole number")

        cost = PurchaseOrderService._parse_cost(raw.get('cost_per_unit'), f"Line {position}: cost per unit")

        product_id = raw.get('product_id')
        variant_id = raw.get('variant_id')
        variant = None
        if variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None or variant.product.organization_id != actor.organization_id:
                raise NotFoundError('Variant', variant_id)
            if product_id and product_id != variant.product_id:
                raise ValidationError(f"Line {position}: variant does not belong to the product")
            product_id = variant.product_id

        if not product_id:
            raise ValidationError(f"Line {position}: a product or variant is required")
        product = db.session.get(Product, product_id)
        if product is None or product.organization_id != actor.organization_id:
            raise NotFoundError('Product', product_id)
        if product.has_variants and variant is None:
            raise ValidationError(f"Line {position}: product {product.sku} has variants; choose one")

        quantity = int(quantity)
        return PurchaseOrderItem(
            product_id=product_id,
            product_variant_id=variant.id if variant else None,
            position=position,
            ordered_quantity=quantity,
            received_quantity=0,
            cost_per_unit=cost,
            line_total=quantity * (cost or 0.0),
        )
