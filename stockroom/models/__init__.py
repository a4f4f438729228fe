"""Models package - imports all models for the application"""
from ..extensions import db
from .mixins import ScopedModelMixin, TimestampMixin

# Import in dependency order for table creation
from .models import Organization, User
from .role import Role, UserRoleAssignment
from .product import Category, Supplier, Warehouse, Product, ProductVariant, ProductStatus
from .purchase_order import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from .order import Customer, Order, OrderItem, Invoice, InvoiceStatus
from .inventory_transaction import InventoryTransaction, TransactionType, ImmutableTransactionError
from .audit_log import AuditLog

__all__ = [
    'db',
    'ScopedModelMixin',
    'TimestampMixin',
    'Organization',
    'User',
    'Role',
    'UserRoleAssignment',
    'Category',
    'Supplier',
    'Warehouse',
    'Product',
    'ProductVariant',
    'ProductStatus',
    'PurchaseOrder',
    'PurchaseOrderItem',
    'PurchaseOrderStatus',
    'Customer',
    'Order',
    'OrderItem',
    'Invoice',
    'InvoiceStatus',
    'InventoryTransaction',
    'TransactionType',
    'ImmutableTransactionError',
    'AuditLog',
]
