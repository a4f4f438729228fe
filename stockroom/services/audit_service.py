"""
Audit sink.

Best-effort writer for AuditLog rows. A failed audit write is logged and
swallowed so it never aborts or masks the workflow that triggered it.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from stockroom.models import db, AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    CREATE = 'CREATE'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'
    PERMISSION_FALLBACK = 'PERMISSION_FALLBACK'


def _json_safe(value):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return str(value)


class AuditService:

    @staticmethod
    def record(
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        status: str = 'success',
        *,
        user=None,
        entity_name: Optional[str] = None,
        error_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Write one audit row and commit it. Returns False instead of raising."""
        from .permission_service import resolve_actor

        try:
            actor = resolve_actor(user)
            entry = AuditLog(
                user_id=getattr(actor, 'id', None),
                user_name=getattr(actor, 'display_name', None),
                user_email=getattr(actor, 'email', None),
                organization_id=getattr(actor, 'organization_id', None),
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                entity_name=entity_name,
                old_values=_json_safe(old_values),
                new_values=_json_safe(new_values),
                status=status,
                error_message=error_message,
                details=_json_safe(details),
            )
            db.session.add(entry)
            db.session.commit()
            return True
        except Exception:
            db.session.rollback()
            logger.exception("Audit write failed for %s %s:%s", action, entity_type, entity_id)
            return False
