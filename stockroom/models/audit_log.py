from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils
from .mixins import IdentifierMixin


class AuditLog(IdentifierMixin, db.Model):
    __tablename__ = 'audit_log'

    user_id = db.Column(db.String(36), nullable=True, index=True)
    user_name = db.Column(db.String(128), nullable=True)
    user_email = db.Column(db.String(256), nullable=True)
    organization_id = db.Column(db.String(36), nullable=True, index=True)

    action = db.Column(db.String(32), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=True, index=True)
    entity_id = db.Column(db.String(64), nullable=True)
    entity_name = db.Column(db.String(255), nullable=True)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default='success', index=True)
    error_message = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=TimezoneUtils.utc_now, index=True)

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id} {self.status}>'
