"""
Management commands for stock maintenance
"""
import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, ProductVariant, PurchaseOrder, User


@click.command('seed-roles')
@with_appcontext
def seed_roles_command():
    """Create the admin and salesperson system roles"""
    from .services.permission_service import seed_system_roles

    created = seed_system_roles()
    if not created:
        print("ℹ️  System roles already present.")
        return
    for role in created:
        print(f"✅ Created role: {role.name}")


@click.command('verify-stock-ledger')
@with_appcontext
def verify_stock_ledger_command():
    """Check every on-hand quantity against the sum of its ledger rows"""
    from .services.stock_ledger import validate_ledger_sync, validate_product_ledger_sync

    mismatches = []
    checked = 0
    for (variant_id,) in db.session.query(ProductVariant.id).all():
        checked += 1
        ok, error, _, _ = validate_ledger_sync(variant_id)
        if not ok:
            mismatches.append((variant_id, error))

    for (product_id,) in db.session.query(Product.id).filter(Product.has_variants.is_(False)).all():
        checked += 1
        ok, error, _, _ = validate_product_ledger_sync(product_id)
        if not ok:
            mismatches.append((product_id, error))

    if mismatches:
        for entity_id, error in mismatches:
            print(f"❌ {entity_id}: {error}")
        print(f"❌ {len(mismatches)} of {checked} stock records out of sync.")
        raise SystemExit(1)

    print(f"✅ {checked} stock records match the ledger.")


@click.command('refresh-product-status')
@with_appcontext
def refresh_product_status_command():
    """Re-resolve and persist the status of every product"""
    from .services.product_status import refresh_product_statuses

    product_ids = [product_id for (product_id,) in db.session.query(Product.id).all()]
    try:
        results = refresh_product_statuses(product_ids)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        print(f'❌ Error refreshing product status: {str(e)}')
        raise

    print(f"✅ Refreshed status for {len(results)} products.")


@click.command('receive-po')
@click.argument('po_number')
@click.option('--user', 'username', required=True, help='Username of the receiving user')
@with_appcontext
def receive_po_command(po_number, username):
    """Receive a purchase order by number"""
    from .services.exceptions import InventoryServiceError
    from .services.purchase_receiving_service import PurchaseReceivingService

    user = User.query.filter_by(username=username).first()
    if user is None:
        print(f"❌ User not found: {username}")
        raise SystemExit(1)

    po = PurchaseOrder.query.filter_by(po_number=po_number).first()
    if po is None:
        print(f"❌ Purchase order not found: {po_number}")
        raise SystemExit(1)

    try:
        result = PurchaseReceivingService.receive_purchase_order(po.id, user=user)
    except InventoryServiceError as e:
        print(f"❌ {e.message}")
        raise SystemExit(1)

    print(
        f"✅ Received {po_number}: {result.items_received} lines, "
        f"{result.transactions_created} ledger entries."
    )


def register_commands(app):
    """Register CLI commands"""
    app.cli.add_command(seed_roles_command)
    app.cli.add_command(verify_stock_ledger_command)
    app.cli.add_command(refresh_product_status_command)
    app.cli.add_command(receive_po_command)
