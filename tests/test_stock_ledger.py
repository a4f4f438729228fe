"""
Stock Ledger Test Suite

Covers the canonical apply_delta entry point: increments, guarded decrements,
direction rules per transaction type, and the append-only ledger table.
"""

import pytest

from stockroom.models import db, InventoryTransaction, ImmutableTransactionError, TransactionType
from stockroom.services.exceptions import InsufficientStockError, ValidationError
from stockroom.services.stock_ledger import (
    apply_delta,
    get_supported_transaction_types,
    list_transactions,
    validate_ledger_sync,
    validate_product_ledger_sync,
)


class TestApplyDelta:

    def test_increment_moves_quantity_and_appends_one_row(self, make_product):
        product = make_product("TEE", [{'price': 10}])
        variant = product.variants[0]

        txn = apply_delta(variant, 12, TransactionType.PURCHASE, "PO-1", "Received from PO PO-1")

        assert variant.quantity == 12
        assert txn.quantity == 12
        assert txn.transaction_type == TransactionType.PURCHASE
        assert txn.product_id == product.id
        assert txn.product_variant_id == variant.id
        assert txn.reference_code == "PO-1"
        assert InventoryTransaction.query.filter_by(product_variant_id=variant.id).count() == 1

    def test_note_defaults_to_operation_message(self, make_product):
        variant = make_product("TEE", [{}]).variants[0]

        txn = apply_delta(variant, 2, TransactionType.RETURN, "RMA-1")

        assert txn.notes == "Returned"

    def test_sale_decrement_within_stock(self, make_product):
        variant = make_product("TEE", [{'quantity': 5}]).variants[0]

        apply_delta(variant, -3, TransactionType.SALE, "SO-1")

        assert variant.quantity == 2

    def test_oversell_is_refused_and_nothing_is_written(self, make_product):
        variant = make_product("TEE", [{'quantity': 5}]).variants[0]
        rows_before = InventoryTransaction.query.count()

        with pytest.raises(InsufficientStockError) as excinfo:
            apply_delta(variant, -10, TransactionType.SALE, "SO-1")

        assert excinfo.value.available == 5
        assert excinfo.value.requested == 10
        assert "Only 5 units available" in excinfo.value.message
        db.session.refresh(variant)
        assert variant.quantity == 5
        assert InventoryTransaction.query.count() == rows_before

    def test_positive_sale_delta_is_refused(self, make_product):
        variant = make_product("TEE", [{}]).variants[0]

        with pytest.raises(ValidationError):
            apply_delta(variant, 4, TransactionType.SALE, "SO-1")

    def test_zero_delta_is_refused(self, make_product):
        variant = make_product("TEE", [{'quantity': 1}]).variants[0]

        with pytest.raises(ValidationError):
            apply_delta(variant, 0, TransactionType.ADJUSTMENT, "ADJ")

    def test_unknown_type_is_refused(self, make_product):
        variant = make_product("TEE", [{'quantity': 1}]).variants[0]

        with pytest.raises(ValidationError):
            apply_delta(variant, 1, "GIFT", "X")

    def test_fractional_quantity_is_refused(self, make_product):
        variant = make_product("TEE", [{'quantity': 1}]).variants[0]

        with pytest.raises(ValidationError):
            apply_delta(variant, 1.5, TransactionType.PURCHASE, "X")

    def test_negative_purchase_requires_compensating_flag(self, make_product):
        variant = make_product("TEE", [{'quantity': 8}]).variants[0]

        with pytest.raises(ValidationError):
            apply_delta(variant, -2, TransactionType.PURCHASE, "PO-1")

        apply_delta(variant, -2, TransactionType.PURCHASE, "PO-1", "Reversal", compensating=True)
        assert variant.quantity == 6

    def test_compensating_delta_still_cannot_go_negative(self, make_product):
        variant = make_product("TEE", [{'quantity': 2}]).variants[0]

        with pytest.raises(InsufficientStockError):
            apply_delta(variant, -3, TransactionType.ADJUSTMENT, "ADJ", compensating=True)

        db.session.refresh(variant)
        assert variant.quantity == 2

    def test_variant_bearing_product_cannot_hold_stock(self, make_product):
        product = make_product("TEE", [{}])

        with pytest.raises(ValidationError):
            apply_delta(product, 5, TransactionType.PURCHASE, "PO-1")

    def test_variantless_product_holds_its_own_stock(self, make_product):
        product = make_product("MUG", quantity=4)

        txn = apply_delta(product, -1, TransactionType.SALE, "SO-1")

        assert product.quantity == 3
        assert txn.product_variant_id is None
        ok, error, on_hand, ledger_total = validate_product_ledger_sync(product.id)
        assert ok, error
        assert on_hand == ledger_total == 3

    def test_uncommitted_delta_is_undone_by_caller_rollback(self, make_product):
        variant = make_product("TEE", [{'quantity': 5}]).variants[0]
        variant_id = variant.id

        apply_delta(variant, 3, TransactionType.PURCHASE, "PO-9", commit=False)
        db.session.rollback()

        assert db.session.get(type(variant), variant_id).quantity == 5
        assert InventoryTransaction.query.filter_by(reference_code="PO-9").count() == 0


class TestLedgerInvariants:

    def test_sum_of_transactions_equals_quantity(self, make_product):
        variant = make_product("TEE", [{'quantity': 10}]).variants[0]
        apply_delta(variant, 7, TransactionType.PURCHASE, "PO-1")
        apply_delta(variant, -4, TransactionType.SALE, "SO-1")
        apply_delta(variant, -13, TransactionType.SALE, "SO-2")
        with pytest.raises(InsufficientStockError):
            apply_delta(variant, -1, TransactionType.SALE, "SO-3")

        ok, error, on_hand, ledger_total = validate_ledger_sync(variant.id)

        assert ok, error
        assert on_hand == ledger_total == 0

    def test_sync_check_reports_drift(self, make_product):
        variant = make_product("TEE", [{'quantity': 3}]).variants[0]
        variant.quantity = 9
        db.session.commit()

        ok, error, on_hand, ledger_total = validate_ledger_sync(variant.id)

        assert not ok
        assert on_hand == 9
        assert ledger_total == 3
        assert "diff=6" in error

    def test_transactions_cannot_be_edited(self, make_product):
        variant = make_product("TEE", [{'quantity': 3}]).variants[0]
        txn = InventoryTransaction.query.filter_by(product_variant_id=variant.id).first()

        txn.notes = "rewritten"
        with pytest.raises(ImmutableTransactionError):
            db.session.flush()
        db.session.rollback()

    def test_transactions_cannot_be_deleted(self, make_product):
        variant = make_product("TEE", [{'quantity': 3}]).variants[0]
        txn = InventoryTransaction.query.filter_by(product_variant_id=variant.id).first()

        db.session.delete(txn)
        with pytest.raises(ImmutableTransactionError):
            db.session.flush()
        db.session.rollback()

    def test_history_is_newest_first(self, make_product):
        variant = make_product("TEE", [{'quantity': 3}]).variants[0]
        apply_delta(variant, 2, TransactionType.PURCHASE, "PO-1")
        apply_delta(variant, -1, TransactionType.SALE, "SO-1")

        history = list_transactions(variant_id=variant.id)

        assert [row.reference_code for row in history] == ["SO-1", "PO-1", "OPENING"]
        assert [row.reference_code for row in list_transactions(variant_id=variant.id, transaction_type='sale')] == ["SO-1"]

    def test_history_requires_a_target(self, app):
        with pytest.raises(ValidationError):
            list_transactions()

    def test_supported_types(self, app):
        assert set(get_supported_transaction_types()) == set(TransactionType.ALL)
