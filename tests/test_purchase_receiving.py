"""
Purchase Receiving Test Suite

Receiving turns ordered purchase order quantity into on-hand stock, one
PURCHASE ledger row per outstanding line, inside a single transaction.
"""

import pytest
from flask_login import login_user
from sqlalchemy import update

from stockroom.models import (
    db,
    AuditLog,
    InventoryTransaction,
    ProductStatus,
    PurchaseOrder,
    PurchaseOrderStatus,
    TransactionType,
)
from stockroom.services.exceptions import (
    AlreadyReceivedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from stockroom.services.purchase_receiving_service import PurchaseReceivingService
from stockroom.services.stock_ledger import validate_ledger_sync


class TestReceivePurchaseOrder:

    def test_full_receipt_scenario(self, admin_user, make_product, make_purchase_order):
        product = make_product("LAPTOP", [{'price': 1200.0}], reorder_point=10)
        variant = product.variants[0]
        po = make_purchase_order("PO-1001", [(variant, 30, 900.0)])

        result = PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert result.items_received == 1
        assert result.transactions_created == 1
        assert variant.quantity == 30
        assert variant.cost_price == 900.0
        assert po.items[0].received_quantity == 30
        assert po.status == PurchaseOrderStatus.RECEIVED
        assert po.received_at is not None
        assert product.status == ProductStatus.AVAILABLE

        txn = InventoryTransaction.query.filter_by(purchase_order_id=po.id).one()
        assert txn.transaction_type == TransactionType.PURCHASE
        assert txn.quantity == 30
        assert txn.reference_code == "PO-1001"
        assert txn.notes == "Received from PO PO-1001"
        assert txn.user_id == admin_user.id

    def test_status_is_recomputed_for_every_touched_product(self, admin_user, make_product, make_purchase_order):
        shirts = make_product("SHIRT", [{'quantity': 0}, {'quantity': 0}], reorder_point=10)
        mugs = make_product("MUG", quantity=0, min_stock=2)
        po = make_purchase_order("PO-1002", [
            (shirts.variants[0], 4, 5.0),
            (shirts.variants[1], 3, 5.0),
            (mugs, 12, 2.0),
        ])

        result = PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert result.transactions_created == 3
        assert shirts.status == ProductStatus.STOCK_LOW
        assert mugs.quantity == 12
        assert mugs.cost_price == 2.0
        assert mugs.status == ProductStatus.AVAILABLE

    def test_second_receive_is_rejected_without_new_transactions(self, admin_user, make_product, make_purchase_order):
        variant = make_product("LAPTOP", [{}]).variants[0]
        po = make_purchase_order("PO-1003", [(variant, 5, 100.0)])
        PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)
        rows_after_first = InventoryTransaction.query.count()

        with pytest.raises(AlreadyReceivedError):
            PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert InventoryTransaction.query.count() == rows_after_first
        assert variant.quantity == 5

    def test_losing_the_status_claim_moves_no_stock(self, admin_user, make_product, make_purchase_order, monkeypatch):
        variant = make_product("LAPTOP", [{}]).variants[0]
        po = make_purchase_order("PO-1009", [(variant, 5, 100.0)])
        plan_receipt = PurchaseReceivingService._plan_receipt

        def plan_then_lose_race(order):
            plan = plan_receipt(order)
            db.session.execute(
                update(PurchaseOrder)
                .where(PurchaseOrder.id == order.id)
                .values(status=PurchaseOrderStatus.RECEIVED)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            return plan

        monkeypatch.setattr(PurchaseReceivingService, '_plan_receipt', staticmethod(plan_then_lose_race))

        with pytest.raises(AlreadyReceivedError, match="another request"):
            PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        db.session.refresh(variant)
        assert variant.quantity == 0
        assert InventoryTransaction.query.filter_by(transaction_type=TransactionType.PURCHASE).count() == 0
        assert all(item.received_quantity == 0 for item in po.items)
        assert AuditLog.query.filter_by(entity_type='PurchaseOrder', status='error').count() == 1

    def test_closed_order_cannot_be_received(self, admin_user, make_product, make_purchase_order):
        variant = make_product("LAPTOP", [{}]).variants[0]
        po = make_purchase_order("PO-1004", [(variant, 5, 100.0)], status=PurchaseOrderStatus.CLOSED)

        with pytest.raises(AlreadyReceivedError):
            PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert variant.quantity == 0

    def test_draft_order_can_be_received(self, admin_user, make_product, make_purchase_order):
        variant = make_product("LAPTOP", [{}]).variants[0]
        po = make_purchase_order("PO-1005", [(variant, 2, None)], status=PurchaseOrderStatus.DRAFT)

        PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert variant.quantity == 2
        assert variant.cost_price is None

    def test_already_received_lines_are_skipped(self, admin_user, make_product, make_purchase_order):
        first = make_product("A", [{}]).variants[0]
        second = make_product("B", [{}]).variants[0]
        po = make_purchase_order("PO-1006", [(first, 5, 1.0), (second, 4, 1.0)])
        po.items[0].received_quantity = 5
        db.session.commit()

        result = PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert result.items_received == 1
        assert first.quantity == 0
        assert second.quantity == 4

    def test_invalid_line_moves_no_stock(self, admin_user, make_product, make_purchase_order):
        good = make_product("A", [{}]).variants[0]
        shirts = make_product("SHIRT", [{}])
        po = make_purchase_order("PO-1007", [(good, 5, 1.0), (shirts, 3, 1.0)])

        with pytest.raises(ValidationError):
            PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        assert good.quantity == 0
        assert po.status == PurchaseOrderStatus.SUBMITTED
        assert InventoryTransaction.query.filter_by(purchase_order_id=po.id).count() == 0
        failure = AuditLog.query.filter_by(entity_type='PurchaseOrder', status='error').one()
        assert "has variants" in failure.error_message

    def test_ledger_stays_in_sync(self, admin_user, make_product, make_purchase_order):
        variant = make_product("A", [{'quantity': 7}]).variants[0]
        po = make_purchase_order("PO-1008", [(variant, 8, 1.0)])

        PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        ok, error, on_hand, _ = validate_ledger_sync(variant.id)
        assert ok, error
        assert on_hand == 15

    def test_success_is_audited(self, admin_user, make_product, make_purchase_order):
        variant = make_product("A", [{}]).variants[0]
        po = make_purchase_order("PO-1009", [(variant, 1, 1.0)])

        PurchaseReceivingService.receive_purchase_order(po.id, user=admin_user)

        entry = AuditLog.query.filter_by(entity_type='PurchaseOrder', entity_id=po.id, status='success').one()
        assert entry.action == 'UPDATE'
        assert entry.old_values == {'status': PurchaseOrderStatus.SUBMITTED, 'received_at': None}
        assert entry.new_values['status'] == PurchaseOrderStatus.RECEIVED
        assert entry.user_id == admin_user.id


class TestReceivingAccess:

    def test_salesperson_is_forbidden(self, sales_user, make_product, make_purchase_order):
        variant = make_product("A", [{}]).variants[0]
        po = make_purchase_order("PO-2001", [(variant, 1, 1.0)])

        with pytest.raises(ForbiddenError):
            PurchaseReceivingService.receive_purchase_order(po.id, user=sales_user)

        assert variant.quantity == 0

    def test_anonymous_is_forbidden(self, app, make_product, make_purchase_order):
        variant = make_product("A", [{}]).variants[0]
        po = make_purchase_order("PO-2002", [(variant, 1, 1.0)])

        with app.test_request_context():
            with pytest.raises(ForbiddenError):
                PurchaseReceivingService.receive_purchase_order(po.id)

    def test_other_tenant_sees_not_found(self, outsider, make_product, make_purchase_order):
        variant = make_product("A", [{}]).variants[0]
        po = make_purchase_order("PO-2003", [(variant, 1, 1.0)])

        with pytest.raises(NotFoundError):
            PurchaseReceivingService.receive_purchase_order(po.id, user=outsider)

    def test_missing_order(self, admin_user):
        with pytest.raises(NotFoundError):
            PurchaseReceivingService.receive_purchase_order("no-such-po", user=admin_user)

    def test_defaults_to_logged_in_user(self, app, admin_user, make_product, make_purchase_order):
        variant = make_product("A", [{}]).variants[0]
        po = make_purchase_order("PO-2004", [(variant, 6, 1.0)])

        with app.test_request_context():
            login_user(admin_user)
            result = PurchaseReceivingService.receive_purchase_order(po.id)

        assert result.to_dict()['itemsReceived'] == 1
        assert variant.quantity == 6
