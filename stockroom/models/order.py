from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils
from .mixins import IdentifierMixin, ScopedModelMixin, TimestampMixin


class Customer(IdentifierMixin, ScopedModelMixin, TimestampMixin, db.Model):
    __tablename__ = 'customer'

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, index=True)
    company = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    created_by = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    orders = db.relationship('Order', back_populates='customer', lazy='dynamic')


class Order(IdentifierMixin, ScopedModelMixin, db.Model):
    """A recorded sale. Never edited after creation."""
    __tablename__ = 'order'

    order_number = db.Column(db.String(64), unique=True, nullable=False)
    customer_id = db.Column(db.String(36), db.ForeignKey('customer.id'), nullable=False)
    status = db.Column(db.String(32), nullable=False, default='completed', index=True)
    ordered_at = db.Column(db.DateTime, nullable=False, default=TimezoneUtils.utc_now)
    fulfilled_at = db.Column(db.DateTime, nullable=True)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    source = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    customer = db.relationship('Customer', back_populates='orders')
    items = db.relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    invoice = db.relationship('Invoice', back_populates='order', uselist=False)

    def __repr__(self):
        return f'<Order {self.order_number}>'


class OrderItem(IdentifierMixin, db.Model):
    __tablename__ = 'order_item'

    order_id = db.Column(db.String(36), db.ForeignKey('order.id'), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey('product.id'), nullable=False)
    product_variant_id = db.Column(db.String(36), db.ForeignKey('product_variant.id'), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    subtotal = db.Column(db.Float, nullable=False)

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product')
    variant = db.relationship('ProductVariant')


class InvoiceStatus:
    ISSUED = 'issued'
    PAID = 'paid'
    VOID = 'void'


class Invoice(IdentifierMixin, ScopedModelMixin, db.Model):
    __tablename__ = 'invoice'

    invoice_number = db.Column(db.String(64), unique=True, nullable=False)
    order_id = db.Column(db.String(36), db.ForeignKey('order.id'), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default=InvoiceStatus.ISSUED, index=True)
    issued_at = db.Column(db.DateTime, nullable=False, default=TimezoneUtils.utc_now)
    due_date = db.Column(db.DateTime, nullable=True)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    order = db.relationship('Order', back_populates='invoice')
