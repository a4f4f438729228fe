import uuid

from stockroom.extensions import db
from stockroom.utils.timezone_utils import TimezoneUtils


def new_id() -> str:
    return str(uuid.uuid4())


class IdentifierMixin:
    """Opaque string primary key."""
    id = db.Column(db.String(36), primary_key=True, default=new_id)


class TimestampMixin:
    """Adds created_at and updated_at timestamps to models"""
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now, onupdate=TimezoneUtils.utc_now, nullable=False)


class ScopedModelMixin:
    organization_id = db.Column(db.String(36), db.ForeignKey('organization.id'), nullable=False, index=True)

