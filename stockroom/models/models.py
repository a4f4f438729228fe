from flask_login import UserMixin

from ..extensions import db
from ..utils.timezone_utils import TimezoneUtils
from .mixins import IdentifierMixin


class Organization(IdentifierMixin, db.Model):
    """A tenant. Every catalog, purchasing and sales row hangs off one."""
    __tablename__ = 'organization'

    name = db.Column(db.String(128), nullable=False)
    contact_email = db.Column(db.String(256))
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)
    is_active = db.Column(db.Boolean, default=True)

    users = db.relationship('User', back_populates='organization', lazy='dynamic')

    def __repr__(self):
        return f'<Organization {self.name}>'


class User(UserMixin, IdentifierMixin, db.Model):
    __tablename__ = 'user'

    username = db.Column(db.String(64), unique=True, nullable=False)
    email = db.Column(db.String(120), nullable=True)
    first_name = db.Column(db.String(64), nullable=True)
    last_name = db.Column(db.String(64), nullable=True)
    organization_id = db.Column(db.String(36), db.ForeignKey('organization.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=TimezoneUtils.utc_now)

    organization = db.relationship('Organization', back_populates='users')

    @property
    def display_name(self):
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or self.username

    def __repr__(self):
        return f'<User {self.username}>'
