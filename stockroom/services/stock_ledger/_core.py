import logging
import math
import numbers

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from stockroom.models import db, InventoryTransaction, Product, ProductVariant
from stockroom.services.exceptions import (
    InsufficientStockError,
    InventoryServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ._operation_registry import (
    allows_delta,
    get_direction,
    get_operation_config,
    normalize_transaction_type,
    validate_operation_type,
)

logger = logging.getLogger(__name__)


def apply_delta(
    target,
    signed_quantity: int,
    transaction_type: str,
    reference_code: str = None,
    notes: str = None,
    *,
    user_id: str = None,
    purchase_order_id: str = None,
    order_id: str = None,
    compensating: bool = False,
    commit: bool = True,
) -> InventoryTransaction:
    """
    Canonical entry point for ALL stock movements.

    Moves the on-hand quantity of a variant (or of a product without variants)
    by ``signed_quantity`` and appends exactly one InventoryTransaction in the
    same database transaction. Decrements are a conditional UPDATE guarded by
    ``quantity >= n`` so concurrent sales cannot oversell.

    With ``commit=False`` the caller owns the transaction boundary and must
    roll back on error.
    """
    transaction_type = normalize_transaction_type(transaction_type)
    quantity = _coerce_quantity(signed_quantity)

    if not validate_operation_type(transaction_type):
        raise ValidationError(f"Unknown transaction type: {transaction_type or '(blank)'}")
    if quantity == 0:
        raise ValidationError("Stock movements must change quantity")
    if not allows_delta(transaction_type, quantity, compensating=compensating):
        raise ValidationError(
            f"{transaction_type} is {get_direction(transaction_type)} and cannot carry a delta of {quantity:+d}"
            + ("" if quantity > 0 else " unless flagged as compensating")
        )
    notes = notes or get_operation_config(transaction_type)['message']

    logger.info(
        "STOCK LEDGER: %s %+d on %s (ref=%s, compensating=%s)",
        transaction_type, quantity, _describe(target), reference_code, compensating,
    )

    try:
        db.session.flush()
        model, product_id, variant_id = _resolve_target(target)

        if quantity > 0:
            stmt = (
                update(model)
                .where(model.id == target.id)
                .values(quantity=model.quantity + quantity)
            )
        else:
            needed = -quantity
            stmt = (
                update(model)
                .where(model.id == target.id, model.quantity >= needed)
                .values(quantity=model.quantity - needed)
            )

        result = db.session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            available = db.session.execute(select(model.quantity).where(model.id == target.id)).scalar()
            if available is None:
                raise NotFoundError(model.__name__, target.id)
            logger.warning(
                "STOCK LEDGER: refused %s %+d on %s, only %s on hand",
                transaction_type, quantity, _describe(target), available,
            )
            raise InsufficientStockError(
                f"Insufficient stock. Only {available} units available.",
                requested=-quantity,
                available=available,
            )

        db.session.refresh(target, attribute_names=['quantity'])

        transaction = InventoryTransaction(
            transaction_type=transaction_type,
            product_id=product_id,
            product_variant_id=variant_id,
            quantity=quantity,
            reference_code=reference_code,
            notes=notes,
            user_id=user_id,
            purchase_order_id=purchase_order_id,
            order_id=order_id,
        )
        db.session.add(transaction)
        db.session.flush()

        if commit:
            db.session.commit()

    except InventoryServiceError:
        if commit:
            db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        if commit:
            db.session.rollback()
        logger.exception("STOCK LEDGER: persistence failure for %s", _describe(target))
        raise PersistenceError("Failed to record stock movement") from exc

    logger.info("STOCK LEDGER SUCCESS: %s now at %s", _describe(target), target.quantity)
    return transaction


def _coerce_quantity(signed_quantity) -> int:
    if isinstance(signed_quantity, bool) or not isinstance(signed_quantity, numbers.Real):
        raise ValidationError(f"Quantity must be a whole number, got {signed_quantity!r}")
    if not math.isfinite(signed_quantity) or int(signed_quantity) != signed_quantity:
        raise ValidationError(f"Quantity must be a whole number, got {signed_quantity!r}")
    return int(signed_quantity)


def _resolve_target(target):
    """Return (model, product_id, variant_id) for a stock-bearing entity."""
    if isinstance(target, ProductVariant):
        if target.id is None:
            raise ValidationError("Variant must be saved before stock can move")
        return ProductVariant, target.product_id, target.id

    if isinstance(target, Product):
        if target.id is None:
            raise ValidationError("Product must be saved before stock can move")
        if target.has_variants:
            raise ValidationError(
                f"Product {target.sku} tracks stock on its variants; move stock on a variant instead"
            )
        return Product, target.id, None

    raise ValidationError(f"Cannot move stock on {type(target).__name__}")


def _describe(target) -> str:
    sku = getattr(target, 'sku', None)
    return f"{type(target).__name__}({sku or getattr(target, 'id', '?')})"
