import logging

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models import db, Invoice, InvoiceStatus, Order
from ..utils.code_generator import generate_invoice_number
from ..utils.timezone_utils import TimezoneUtils
from .audit_service import AuditAction, AuditService
from .exceptions import NotFoundError, PersistenceError, ValidationError
from .permission_service import require_permission

logger = logging.getLogger(__name__)

INVOICE_EDITABLE_FIELDS = ('status', 'due_date', 'notes')
INVOICE_TRANSITIONS = {
    InvoiceStatus.ISSUED: (InvoiceStatus.PAID, InvoiceStatus.VOID),
    InvoiceStatus.PAID: (),
    InvoiceStatus.VOID: (),
}


class InvoiceService:

    @staticmethod
    def create_invoice(order_id: str, due_date=None, notes: str = None, user=None) -> Invoice:
        """Issue the single invoice for an order, copying its total."""
        actor = require_permission(user, 'sales', 'create')

        order = db.session.get(Order, order_id) if order_id else None
        if order is None or order.organization_id != actor.organization_id:
            raise NotFoundError('Order', order_id)
        if order.invoice is not None:
            raise ValidationError(f"Order {order.order_number} already has invoice {order.invoice.invoice_number}")

        if due_date in (None, ''):
            due_at = TimezoneUtils.days_from_now(current_app.config.get('INVOICE_DUE_DAYS', 30))
        else:
            due_at = TimezoneUtils.parse_iso(due_date)
            if due_at is None:
                raise ValidationError(f"Invalid due date: {due_date}")

        invoice = Invoice(
            organization_id=order.organization_id,
            invoice_number=generate_invoice_number(),
            order_id=order.id,
            status=InvoiceStatus.ISSUED,
            issued_at=TimezoneUtils.utc_now(),
            due_date=due_at,
            total_amount=order.total_amount,
            currency=current_app.config.get('DEFAULT_CURRENCY', 'USD'),
            notes=notes,
            created_by=actor.id,
        )
        db.session.add(invoice)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ValidationError(f"Order {order_id} already has an invoice") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"Invoice create failed for order {order_id}")
            raise PersistenceError("Failed to create invoice") from exc

        logger.info(f"Issued invoice {invoice.invoice_number} for order {order.order_number}")
        AuditService.record(
            AuditAction.CREATE, 'Invoice', invoice.id,
            new_values={
                'invoice_number': invoice.invoice_number,
                'order_id': order.id,
                'total_amount': invoice.total_amount,
            },
            user=actor, entity_name=invoice.invoice_number,
        )
        return invoice

    @staticmethod
    def update_invoice(invoice_id: str, changes, user=None) -> Invoice:
        """
        Settle or void an issued invoice, or edit its due date and notes.

        Status only moves forward; paid and void invoices keep their due date.
        The write is conditional on the status read here, so two clerks
        settling the same invoice cannot both succeed.
        """
        actor = require_permission(user, 'sales', 'update')

        invoice = db.session.get(Invoice, invoice_id) if invoice_id else None
        if invoice is None or invoice.organization_id != actor.organization_id:
            raise NotFoundError('Invoice', invoice_id)

        unknown = set(changes) - set(INVOICE_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported invoice fields: {', '.join(sorted(unknown))}")

        old_status = invoice.status
        values = {}

        new_status = changes.get('status') or old_status
        if new_status != old_status:
            if new_status not in INVOICE_TRANSITIONS.get(old_status, ()):
                raise ValidationError(f"Invoice {invoice.invoice_number} is {old_status}; cannot move to {new_status}")
            values['status'] = new_status

        if 'due_date' in changes:
            if old_status != InvoiceStatus.ISSUED:
                raise ValidationError(f"Invoice {invoice.invoice_number} is {old_status}; its due date is final")
            due_date = changes['due_date']
            due_at = None
            if due_date not in (None, ''):
                due_at = TimezoneUtils.parse_iso(due_date)
                if due_at is None:
                    raise ValidationError(f"Invalid due date: {due_date}")
            values['due_date'] = due_at

        if 'notes' in changes:
            values['notes'] = changes['notes'] or None

        if not values:
            return invoice

        old_values = {field_name: getattr(invoice, field_name) for field_name in values}
        try:
            result = db.session.execute(
                update(Invoice)
                .where(Invoice.id == invoice.id, Invoice.status == old_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.session.rollback()
                raise ValidationError(f"Invoice {invoice.invoice_number} changed status concurrently")
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception(f"Invoice update failed for {invoice_id}")
            raise PersistenceError("Failed to update invoice") from exc

        db.session.refresh(invoice)
        logger.info(f"Updated invoice {invoice.invoice_number}: {', '.join(sorted(values))}")
        AuditService.record(
            AuditAction.UPDATE, 'Invoice', invoice.id,
            old_values=old_values,
            new_values={field_name: getattr(invoice, field_name) for field_name in values},
            user=actor, entity_name=f"Invoice {invoice.invoice_number}",
        )
        return invoice
