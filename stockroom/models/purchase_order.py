from ..extensions import db
from .mixins import IdentifierMixin, ScopedModelMixin, TimestampMixin


class PurchaseOrderStatus:
    DRAFT = 'Draft'
    SUBMITTED = 'Submitted'
    RECEIVED = 'Received'
    CLOSED = 'Closed'

    # Statuses from which a purchase order may still be received
    RECEIVABLE = (DRAFT, SUBMITTED)
    TERMINAL = (RECEIVED, CLOSED)


class PurchaseOrder(IdentifierMixin, ScopedModelMixin, TimestampMixin, db.Model):
    __tablename__ = 'purchase_order'

    po_number = db.Column(db.String(64), unique=True, nullable=False)
    supplier_id = db.Column(db.String(36), db.ForeignKey('supplier.id'), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PurchaseOrderStatus.DRAFT, index=True)

    ordered_at = db.Column(db.DateTime, nullable=True)
    expected_at = db.Column(db.DateTime, nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)

    total_cost = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    supplier = db.relationship('Supplier')
    items = db.relationship(
        'PurchaseOrderItem',
        back_populates='purchase_order',
        cascade='all, delete-orphan',
        order_by='PurchaseOrderItem.position',
    )

    def __repr__(self):
        return f'<PurchaseOrder {self.po_number} {self.status}>'


class PurchaseOrderItem(IdentifierMixin, db.Model):
    __tablename__ = 'purchase_order_item'

    purchase_order_id = db.Column(db.String(36), db.ForeignKey('purchase_order.id'), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('product.id'), nullable=True)
    product_variant_id = db.Column(db.String(36), db.ForeignKey('product_variant.id'), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    ordered_quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    cost_per_unit = db.Column(db.Float, nullable=True)
    line_total = db.Column(db.Float, nullable=False, default=0.0)

    purchase_order = db.relationship('PurchaseOrder', back_populates='items')
    product = db.relationship('Product')
    variant = db.relationship('ProductVariant')

    __table_args__ = (
        db.CheckConstraint('received_quantity >= 0', name='ck_po_item_received_non_negative'),
        db.CheckConstraint('received_quantity <= ordered_quantity', name='ck_po_item_received_within_ordered'),
    )

    @property
    def remaining_quantity(self) -> int:
        return (self.ordered_quantity or 0) - (self.received_quantity or 0)
