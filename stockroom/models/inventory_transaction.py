from sqlalchemy import event

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils
from .mixins import IdentifierMixin


class TransactionType:
    PURCHASE = 'PURCHASE'
    SALE = 'SALE'
    ADJUSTMENT = 'ADJUSTMENT'
    TRANSFER = 'TRANSFER'
    RETURN = 'RETURN'
    OTHER = 'OTHER'

    ALL = (PURCHASE, SALE, ADJUSTMENT, TRANSFER, RETURN, OTHER)


class ImmutableTransactionError(RuntimeError):
    pass


class InventoryTransaction(IdentifierMixin, db.Model):
    """Append-only ledger row for every stock-affecting event."""
    __tablename__ = 'inventory_transaction'

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('product.id'), nullable=False, index=True)
    product_variant_id = db.Column(db.String(36), db.ForeignKey('product_variant.id'), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reference_code = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)
    purchase_order_id = db.Column(db.String(36), db.ForeignKey('purchase_order.id'), nullable=True, index=True)
    order_id = db.Column(db.String(36), db.ForeignKey('order.id'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=TimezoneUtils.utc_now, index=True)

    product = db.relationship('Product')
    variant = db.relationship('ProductVariant')

    __table_args__ = (
        db.CheckConstraint('quantity <> 0', name='ck_inventory_transaction_non_zero'),
        db.Index('idx_inventory_transaction_variant_created', 'product_variant_id', 'created_at'),
    )

    def __repr__(self):
        return f'<InventoryTransaction {self.transaction_type} {self.quantity:+d} {self.reference_code}>'


@event.listens_for(InventoryTransaction, 'before_update')
def _refuse_update(mapper, connection, target):
    raise ImmutableTransactionError(f"Inventory transaction {target.id} is append-only")


@event.listens_for(InventoryTransaction, 'before_delete')
def _refuse_delete(mapper, connection, target):
    raise ImmutableTransactionError(f"Inventory transaction {target.id} cannot be deleted")
