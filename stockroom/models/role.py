from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils
from .mixins import IdentifierMixin


class Role(IdentifierMixin, db.Model):
    __tablename__ = 'role'

    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_system_role = db.Column(db.Boolean, default=False)  # System roles cannot be deleted
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    def __repr__(self):
        return f'<Role {self.name}>'


class UserRoleAssignment(IdentifierMixin, db.Model):
    __tablename__ = 'user_role_assignment'

    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    role_id = db.Column(db.String(36), db.ForeignKey('role.id'), nullable=False)
    assigned_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)
    assigned_by = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=True)

    user = db.relationship('User', foreign_keys=[user_id], backref=db.backref('role_assignments', cascade='all, delete-orphan'))
    role = db.relationship('Role', backref='user_assignments')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'role_id', name='unique_user_role'),
    )
