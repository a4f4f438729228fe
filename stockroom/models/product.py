from ..extensions import db
from .mixins import IdentifierMixin, ScopedModelMixin, TimestampMixin


class ProductStatus:
    """Lifecycle status persisted on Product.status."""
    AVAILABLE = 'Available'
    STOCK_LOW = 'Stock Low'
    STOCK_OUT = 'Stock Out'

    ALL = (AVAILABLE, STOCK_LOW, STOCK_OUT)


class Category(IdentifierMixin, ScopedModelMixin, db.Model):
    __tablename__ = 'category'

    name = db.Column(db.String(128), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('name', 'organization_id', name='unique_category_name_per_org'),
    )


class Supplier(IdentifierMixin, ScopedModelMixin, db.Model):
    __tablename__ = 'supplier'

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(256), nullable=True)
    phone = db.Column(db.String(32), nullable=True)


class Warehouse(IdentifierMixin, ScopedModelMixin, db.Model):
    __tablename__ = 'warehouse'

    name = db.Column(db.String(128), nullable=False)
    location = db.Column(db.String(256), nullable=True)


class Product(IdentifierMixin, ScopedModelMixin, TimestampMixin, db.Model):
    """Parent product. Stock lives on variants once has_variants is set."""
    __tablename__ = 'product'

    name = db.Column(db.String(128), nullable=False)
    sku = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.String(36), db.ForeignKey('category.id'), nullable=True)
    supplier_id = db.Column(db.String(36), db.ForeignKey('supplier.id'), nullable=True)
    default_warehouse_id = db.Column(db.String(36), db.ForeignKey('warehouse.id'), nullable=True)

    # Derived; written only by the status resolver
    status = db.Column(db.String(32), nullable=False, default=ProductStatus.STOCK_OUT, index=True)

    min_stock = db.Column(db.Integer, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=True)
    reorder_quantity = db.Column(db.Integer, nullable=True)

    has_variants = db.Column(db.Boolean, nullable=False, default=False)

    # Used only while the product has no variants
    price = db.Column(db.Float, nullable=False, default=0.0)
    cost_price = db.Column(db.Float, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    category = db.relationship('Category')
    supplier = db.relationship('Supplier')
    default_warehouse = db.relationship('Warehouse')
    variants = db.relationship(
        'ProductVariant',
        back_populates='product',
        cascade='all, delete-orphan',
        order_by='ProductVariant.created_at',
    )

    __table_args__ = (
        db.CheckConstraint('quantity >= 0', name='ck_product_quantity_non_negative'),
    )

    @property
    def active_variants(self):
        return [variant for variant in self.variants if variant.is_active]

    def __repr__(self):
        return f'<Product {self.sku}>'


class ProductVariant(IdentifierMixin, TimestampMixin, db.Model):
    """Sellable SKU-level sub-entity. quantity is the authoritative on-hand count."""
    __tablename__ = 'product_variant'

    product_id = db.Column(db.String(36), db.ForeignKey('product.id'), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    sku = db.Column(db.String(64), unique=True, nullable=False)
    barcode = db.Column(db.String(128), unique=True, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Float, nullable=False, default=0.0)
    cost_price = db.Column(db.Float, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)

    min_stock = db.Column(db.Integer, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)
    reorder_point = db.Column(db.Integer, nullable=True)

    product = db.relationship('Product', back_populates='variants')

    __table_args__ = (
        db.CheckConstraint('quantity >= 0', name='ck_variant_quantity_non_negative'),
    )

    @property
    def organization_id(self):
        return self.product.organization_id if self.product else None

    def __repr__(self):
        return f'<ProductVariant {self.sku}>'
