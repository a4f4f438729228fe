"""
Pytest configuration and shared fixtures for stockroom tests.
"""
from datetime import timedelta

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import (
    Organization,
    Product,
    ProductVariant,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
    TransactionType,
    User,
)
from stockroom.services.permission_service import UserRoles, assign_role, seed_system_roles
from stockroom.services.product_status import refresh_product_status
from stockroom.services.stock_ledger import apply_delta
from stockroom.utils.timezone_utils import TimezoneUtils


@pytest.fixture(scope='function')
def app():
    """Fresh app and in-memory schema per test; the app context stays pushed."""
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
        'GRANT_ADMIN_WHEN_NO_ROLES': True,
        'PERMISSION_CACHE_TTL': 300,
    })

    with app.app_context():
        db.create_all()
        seed_system_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def db_session(app):
    return db.session


def _make_user(org, username, role=None):
    user = User(
        username=username,
        email=f"{username}@example.com",
        first_name=username.title(),
        organization_id=org.id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    if role:
        assign_role(user, role)
    return user


@pytest.fixture
def org(app):
    organization = Organization(name="Main Street Outfitters")
    db.session.add(organization)
    db.session.commit()
    return organization


@pytest.fixture
def other_org(app):
    organization = Organization(name="Rival Goods")
    db.session.add(organization)
    db.session.commit()
    return organization


@pytest.fixture
def admin_user(org):
    return _make_user(org, "admin", UserRoles.ADMIN)


@pytest.fixture
def sales_user(org):
    return _make_user(org, "seller", UserRoles.SALESPERSON)


@pytest.fixture
def roleless_user(org):
    return _make_user(org, "newcomer")


@pytest.fixture
def outsider(other_org):
    return _make_user(other_org, "outsider", UserRoles.ADMIN)


@pytest.fixture
def supplier(org):
    row = Supplier(organization_id=org.id, name="Acme Wholesale")
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def make_product(org):
    """
    Build a product with variants. Opening stock is booked through the ledger
    so the accounting invariant holds from the start.

    variants: sequence of dicts with sku, price, quantity, is_active.
    """
    def _make(sku, variants=(), *, reorder_point=None, min_stock=None, quantity=0, price=0.0, organization=None):
        owner = organization or org
        product = Product(
            organization_id=owner.id,
            name=f"Product {sku}",
            sku=sku,
            reorder_point=reorder_point,
            min_stock=min_stock,
            has_variants=bool(variants),
            price=price,
            quantity=0,
        )
        db.session.add(product)

        base = TimezoneUtils.utc_now()
        created = []
        for index, attrs in enumerate(variants):
            variant = ProductVariant(
                product=product,
                name=attrs.get('name', f"{sku} #{index + 1}"),
                sku=attrs.get('sku', f"{sku}-{index + 1}"),
                price=attrs.get('price', 0.0),
                is_active=attrs.get('is_active', True),
                quantity=0,
                created_at=base + timedelta(seconds=index),
            )
            db.session.add(variant)
            created.append((variant, attrs.get('quantity', 0)))
        db.session.commit()

        for variant, opening in created:
            if opening:
                apply_delta(variant, opening, TransactionType.ADJUSTMENT, 'OPENING')
        if not variants and quantity:
            apply_delta(product, quantity, TransactionType.ADJUSTMENT, 'OPENING')

        refresh_product_status(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def make_purchase_order(org, admin_user):
    """lines: sequence of (target, ordered_quantity, cost_per_unit)."""
    def _make(po_number, lines, *, status=PurchaseOrderStatus.SUBMITTED, organization=None):
        owner = organization or org
        po = PurchaseOrder(
            organization_id=owner.id,
            po_number=po_number,
            status=status,
            created_by=admin_user.id,
        )
        for position, (target, ordered, cost) in enumerate(lines, start=1):
            is_variant = isinstance(target, ProductVariant)
            po.items.append(PurchaseOrderItem(
                product_id=target.product_id if is_variant else target.id,
                product_variant_id=target.id if is_variant else None,
                position=position,
                ordered_quantity=ordered,
                received_quantity=0,
                cost_per_unit=cost,
                line_total=ordered * (cost or 0),
            ))
        db.session.add(po)
        db.session.commit()
        return po

    return _make
