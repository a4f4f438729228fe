from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..models import db, PurchaseOrder, PurchaseOrderStatus, TransactionType
from ..utils.timezone_utils import TimezoneUtils
from .audit_service import AuditAction, AuditService
from .exceptions import (
    AlreadyReceivedError,
    InventoryServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .permission_service import require_permission
from .product_status import refresh_product_statuses
from .stock_ledger import apply_delta

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReceiptLine:
    item_id: str
    product_id: str
    variant_id: Optional[str]
    quantity: int
    cost_per_unit: Optional[float]


@dataclass
class ReceiptResult:
    purchase_order: PurchaseOrder
    items_received: int
    transactions_created: int
    lines: List[ReceiptLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'purchase_order_id': self.purchase_order.id,
            'po_number': self.purchase_order.po_number,
            'status': self.purchase_order.status,
            'itemsReceived': self.items_received,
            'transactionsCreated': self.transactions_created,
        }


class PurchaseReceivingService:
    """Turns ordered purchase order quantity into on-hand stock."""

    @staticmethod
    def receive_purchase_order(po_id: str, user=None) -> ReceiptResult:
        """
        Receive every outstanding line of a purchase order in full.

        One database transaction covers the status claim, every ledger
        increment, the line updates and the status refresh of each touched
        product. The claim is a conditional update on the current status, so a
        concurrent second receive fails with AlreadyReceivedError and moves no
        stock.
        """
        actor = require_permission(user, 'purchase_orders', 'receive')

        po = db.session.get(PurchaseOrder, po_id) if po_id else None
        if po is None or po.organization_id != actor.organization_id:
            raise NotFoundError('Purchase order', po_id)
        if po.status in PurchaseOrderStatus.TERMINAL:
            raise AlreadyReceivedError(f"Purchase order {po.po_number} is already {po.status.lower()}")

        po_number = po.po_number
        old_values = {'status': po.status, 'received_at': None}
        logger.info(f"RECEIVING: PO {po_number} with {len(po.items)} lines")

        try:
            plan = PurchaseReceivingService._plan_receipt(po)
            received_at = TimezoneUtils.utc_now()

            claimed = db.session.execute(
                update(PurchaseOrder)
                .where(
                    PurchaseOrder.id == po.id,
                    PurchaseOrder.status.in_(PurchaseOrderStatus.RECEIVABLE),
                )
                .values(status=PurchaseOrderStatus.RECEIVED, received_at=received_at)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise AlreadyReceivedError(f"Purchase order {po_number} was received by another request")

            lines = []
            for item, target, product_id, remaining in plan:
                apply_delta(
                    target,
                    remaining,
                    TransactionType.PURCHASE,
                    po_number,
                    f"Received from PO {po_number}",
                    user_id=actor.id,
                    purchase_order_id=po.id,
                    commit=False,
                )
                if item.cost_per_unit is not None:
                    target.cost_price = item.cost_per_unit
                item.received_quantity = item.ordered_quantity

                lines.append(ReceiptLine(
                    item_id=item.id,
                    product_id=product_id,
                    variant_id=item.product_variant_id,
                    quantity=remaining,
                    cost_per_unit=item.cost_per_unit,
                ))

            refresh_product_statuses(line.product_id for line in lines)
            db.session.commit()

        except InventoryServiceError as exc:
            db.session.rollback()
            PurchaseReceivingService._audit_failure(po_id, po_number, actor, exc)
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"RECEIVING FAILED: PO {po_number}")
            PurchaseReceivingService._audit_failure(po_id, po_number, actor, exc)
            raise PersistenceError("Failed to receive purchase order") from exc

        db.session.refresh(po)
        logger.info(f"RECEIVING SUCCESS: PO {po_number}, {len(lines)} lines received")

        AuditService.record(
            AuditAction.UPDATE,
            'PurchaseOrder',
            po.id,
            old_values=old_values,
            new_values={'status': po.status, 'received_at': po.received_at},
            user=actor,
            entity_name=po_number,
            details={'items_received': len(lines), 'transactions_created': len(lines)},
        )
        return ReceiptResult(
            purchase_order=po,
            items_received=len(lines),
            transactions_created=len(lines),
            lines=lines,
        )

    @staticmethod
    def _plan_receipt(po):
        """Validate every outstanding line up front; returns (item, target, product_id, remaining)."""
        plan = []
        for item in po.items:
            remaining = item.remaining_quantity
            if remaining <= 0:
                continue

            if item.product_variant_id:
                target = item.variant
                if target is None or target.product is None:
                    raise ValidationError(f"Line {item.position} references a missing variant")
                if target.product.organization_id != po.organization_id:
                    raise ValidationError(f"Line {item.position} references a variant from another organization")
                if item.product_id and item.product_id != target.product_id:
                    raise ValidationError(f"Line {item.position} variant does not belong to its product")
                product_id = target.product_id
            elif item.product_id:
                target = item.product
                if target is None or target.organization_id != po.organization_id:
                    raise ValidationError(f"Line {item.position} references a missing product")
                if target.has_variants:
                    raise ValidationError(
                        f"Line {item.position}: product {target.sku} has variants; the line must name one"
                    )
                product_id = target.id
            else:
                raise ValidationError(f"Line {item.position} has no product or variant")

            plan.append((item, target, product_id, remaining))
        return plan

    @staticmethod
    def _audit_failure(po_id, po_number, actor, exc):
        AuditService.record(
            AuditAction.UPDATE,
            'PurchaseOrder',
            po_id,
            status='error',
            user=actor,
            entity_name=po_number,
            error_message=str(exc),
        )
