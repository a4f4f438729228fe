from __future__ import annotations

import logging
import math
import numbers
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import db, Customer, Order, OrderItem, Product, ProductVariant, TransactionType
from ..utils.code_generator import generate_order_number
from ..utils.timezone_utils import TimezoneUtils
from .audit_service import AuditAction, AuditService
from .exceptions import (
    InsufficientStockError,
    InventoryServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .permission_service import require_permission
from .product_status import refresh_product_status
from .stock_ledger import apply_delta

logger = logging.getLogger(__name__)

DEFAULT_SALE_SOURCE = 'Operations'


class SaleService:
    """Records a single-line sale and deducts its stock."""

    @staticmethod
    def record_sale(
        customer: Mapping[str, Any],
        product_id: str,
        quantity: int = 1,
        total_amount: float = None,
        variant_id: Optional[str] = None,
        *,
        sale_date=None,
        channel: Optional[str] = None,
        notes: Optional[str] = None,
        user=None,
    ) -> Order:
        """
        Validate stock, then create the order, its line and the SALE ledger
        entry in one transaction. The ledger decrement is conditional on
        quantity, so a sale that loses a race rolls back its order too.
        """
        actor = require_permission(user, 'sales', 'create')

        customer_data = SaleService._validate_customer(customer)
        qty = SaleService._validate_quantity(quantity)
        total = SaleService._validate_amount(total_amount)
        ordered_at = SaleService._validate_sale_date(sale_date)
        if not product_id:
            raise ValidationError("Customer name, product, and total amount are required.")

        product = db.session.get(Product, product_id)
        if product is None or product.organization_id != actor.organization_id:
            raise NotFoundError('Product', product_id)

        try:
            target = SaleService._select_stock_target(product, variant_id, qty)
            customer_row = SaleService._upsert_customer(customer_data, actor)

            unit_price = total / qty
            order = Order(
                organization_id=actor.organization_id,
                order_number=generate_order_number(),
                customer=customer_row,
                status='completed',
                ordered_at=ordered_at,
                fulfilled_at=ordered_at,
                total_amount=total,
                notes=notes or None,
                source=channel or DEFAULT_SALE_SOURCE,
                created_by=actor.id,
            )
            order.items.append(OrderItem(
                product_id=product.id,
                product_variant_id=target.id if isinstance(target, ProductVariant) else None,
                quantity=qty,
                unit_price=unit_price,
                subtotal=total,
            ))
            db.session.add(order)
            db.session.flush()

            apply_delta(
                target,
                -qty,
                TransactionType.SALE,
                order.order_number,
                f"Sold to {customer_data['name']}",
                user_id=actor.id,
                order_id=order.id,
                commit=False,
            )
            refresh_product_status(product)
            db.session.commit()

        except InventoryServiceError as exc:
            db.session.rollback()
            SaleService._audit_failure(actor, customer_data, product_id, total, exc)
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"SALE FAILED: product {product_id}")
            SaleService._audit_failure(actor, customer_data, product_id, total, exc)
            raise PersistenceError("Failed to record sales transaction") from exc

        logger.info(f"SALE RECORDED: {order.order_number} {qty} x {product.sku} to {customer_data['name']}")
        AuditService.record(
            AuditAction.CREATE,
            'Sale',
            order.id,
            new_values={
                'order_number': order.order_number,
                'customer_name': customer_data['name'],
                'product_name': product.name,
                'quantity': qty,
                'total_amount': total,
            },
            user=actor,
            entity_name=f"Sale to {customer_data['name']} - {product.name}",
        )
        return order

    @staticmethod
    def _select_stock_target(product, variant_id, qty):
        """The requested variant, else the first active variant that can cover qty."""
        if variant_id:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != product.id:
                raise NotFoundError('Variant', variant_id)
            if not variant.is_active:
                raise ValidationError(f"Variant {variant.sku} is inactive")
            if variant.quantity < qty:
                raise InsufficientStockError(
                    f"Insufficient stock. Only {variant.quantity} units available.",
                    requested=qty,
                    available=variant.quantity,
                )
            return variant

        if product.has_variants:
            for variant in product.active_variants:
                if variant.quantity >= qty:
                    return variant
            raise InsufficientStockError(
                "Insufficient stock. Please check inventory levels.",
                requested=qty,
                available=max((v.quantity for v in product.active_variants), default=0),
            )

        if product.quantity < qty:
            raise InsufficientStockError(
                f"Insufficient stock. Only {product.quantity} units available.",
                requested=qty,
                available=product.quantity,
            )
        return product

    @staticmethod
    def _upsert_customer(data: Dict[str, Any], actor) -> Customer:
        customer = None
        if data['email']:
            customer = Customer.query.filter_by(
                organization_id=actor.organization_id,
                email=data['email'],
            ).first()

        if customer is None:
            customer = Customer(
                organization_id=actor.organization_id,
                name=data['name'],
                email=data['email'],
                company=data['company'],
                phone=data['phone'],
                created_by=actor.id,
            )
            db.session.add(customer)
            return customer

        customer.name = data['name']
        customer.phone = data['phone'] or customer.phone
        customer.company = data['company'] or customer.company
        return customer

    @staticmethod
    def _validate_customer(customer) -> Dict[str, Any]:
        if not isinstance(customer, Mapping):
            raise ValidationError("Customer details are required.")
        name = (customer.get('name') or '').strip()
        if not name:
            raise ValidationError("Customer name, product, and total amount are required.")
        return {
            'name': name,
            'email': (customer.get('email') or '').strip().lower() or None,
            'company': (customer.get('company') or '').strip() or None,
            'phone': (customer.get('phone') or '').strip() or None,
        }

    @staticmethod
    def _validate_quantity(quantity) -> int:
        if quantity is None:
            return 1
        if isinstance(quantity, bool) or not isinstance(quantity, numbers.Real) or not math.isfinite(quantity) or int(quantity) != quantity:
            raise ValidationError("Quantity must be a whole number.")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        return int(quantity)

    @staticmethod
    def _validate_amount(total_amount) -> float:
        if total_amount is None or isinstance(total_amount, bool):
            raise ValidationError("Customer name, product, and total amount are required.")
        try:
            total = float(total_amount)
        except (TypeError, ValueError):
            raise ValidationError("Total amount must be a number.")
        if not math.isfinite(total):
            raise ValidationError("Total amount must be a finite number.")
        if total <= 0:
            raise ValidationError("Total amount must be greater than zero.")
        return total

    @staticmethod
    def _validate_sale_date(sale_date):
        if sale_date in (None, ''):
            return TimezoneUtils.utc_now()
        parsed = TimezoneUtils.parse_iso(sale_date)
        if parsed is None:
            raise ValidationError(f"Invalid sale date: {sale_date}")
        return parsed

    @staticmethod
    def _audit_failure(actor, customer_data, product_id, total, exc):
        AuditService.record(
            AuditAction.CREATE,
            'Sale',
            status='error',
            user=actor,
            error_message=str(exc),
            details={
                'customer_name': customer_data['name'],
                'product_id': product_id,
                'total_amount': total,
            },
        )
