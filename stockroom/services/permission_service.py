"""
Permission oracle.

Role/permission matrix with a Flask-Caching backed result cache. Role
assignment changes invalidate the affected user's cached entries through ORM
events, so the TTL is only a backstop.
"""

import logging
from typing import Dict, List, Tuple

from flask import current_app, has_app_context, has_request_context
from flask_login import current_user
from sqlalchemy import event

from stockroom.extensions import cache
from stockroom.models import db, Role, User, UserRoleAssignment
from .exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class UserRoles:
    ADMIN = 'admin'
    SALESPERSON = 'salesperson'


CRUD = ('read', 'create', 'update', 'delete')

# Everything an admin may do; also the universe of cacheable permission keys
RESOURCE_ACTIONS: Dict[str, Tuple[str, ...]] = {
    'products': CRUD,
    'suppliers': CRUD,
    'categories': CRUD,
    'warehouses': CRUD,
    'variants': CRUD,
    'purchase_orders': CRUD + ('receive',),
    'sales': CRUD,
    'customers': CRUD,
}

ROLE_PERMISSIONS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    UserRoles.ADMIN: RESOURCE_ACTIONS,
    UserRoles.SALESPERSON: {
        'products': ('read',),
        'suppliers': ('read',),
        'categories': ('read',),
        'warehouses': ('read',),
        'variants': ('read',),
        'purchase_orders': (),
        'sales': ('read', 'create'),
        'customers': ('read', 'create', 'update'),
    },
}

SYSTEM_ROLE_DESCRIPTIONS = {
    UserRoles.ADMIN: 'Full access to every resource',
    UserRoles.SALESPERSON: 'Reads the catalog, records sales and manages customers',
}


def roles_cache_key(user_id) -> str:
    return f"roles:{user_id}"


def permission_cache_key(user_id, resource: str, action: str) -> str:
    return f"perm:{user_id}:{resource}:{action}"


def _ttl() -> int:
    return int(current_app.config.get('PERMISSION_CACHE_TTL', 300))


def _is_known(resource: str, action: str) -> bool:
    return action in RESOURCE_ACTIONS.get(resource, ())


def resolve_actor(user=None):
    """The explicit user, else the logged-in Flask-Login user, else None."""
    if user is not None:
        return user
    if not has_request_context():
        return None
    actor = current_user._get_current_object()
    if actor is None or not getattr(actor, 'is_authenticated', False):
        return None
    return actor


def get_user_roles(user_id) -> List[str]:
    key = roles_cache_key(user_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    roles = [
        name for (name,) in db.session.query(Role.name)
        .join(UserRoleAssignment, UserRoleAssignment.role_id == Role.id)
        .filter(UserRoleAssignment.user_id == user_id)
        .order_by(Role.name)
        .all()
    ]
    cache.set(key, roles, timeout=_ttl())
    return roles


def has_permission(user_id, resource: str, action: str) -> bool:
    """Can the user perform action on resource? Unknown users are always refused."""
    if not user_id:
        return False

    known = _is_known(resource, action)
    key = permission_cache_key(user_id, resource, action)
    if known:
        cached = cache.get(key)
        if cached is not None:
            return cached

    allowed, cacheable = _evaluate(user_id, resource, action)
    if known and cacheable:
        cache.set(key, allowed, timeout=_ttl())
    return allowed


def _evaluate(user_id, resource: str, action: str) -> Tuple[bool, bool]:
    """(allowed, cacheable). Fallback grants are never cached so each one is audited."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return False, True

    roles = get_user_roles(user_id)
    if not roles:
        if not current_app.config.get('GRANT_ADMIN_WHEN_NO_ROLES', False):
            return False, True
        logger.warning("User %s has no roles assigned. Granting admin access (GRANT_ADMIN_WHEN_NO_ROLES).", user_id)
        _audit_fallback(user, resource, action)
        return True, False

    if UserRoles.ADMIN in roles:
        return True, True

    allowed = any(action in ROLE_PERMISSIONS.get(role_name, {}).get(resource, ()) for role_name in roles)
    return allowed, True


def _audit_fallback(user, resource, action):
    # Commits its own row; permission checks run before a workflow stages writes
    from .audit_service import AuditAction, AuditService

    AuditService.record(
        AuditAction.PERMISSION_FALLBACK,
        'User',
        user.id,
        new_values={'resource': resource, 'action': action, 'granted': True},
        user=user,
        entity_name=user.username,
        details={'reason': 'no roles assigned'},
    )


def require_permission(user, resource: str, action: str):
    """Return the acting user or raise ForbiddenError."""
    actor = resolve_actor(user)
    if actor is None or not getattr(actor, 'is_authenticated', False) or not getattr(actor, 'is_active', False):
        raise ForbiddenError("Authentication required")
    if not has_permission(actor.id, resource, action):
        logger.info("Permission denied: user=%s %s:%s", actor.id, resource, action)
        raise ForbiddenError(f"You don't have permission to {action} {resource.replace('_', ' ')}")
    return actor


def _safe_delete_many(keys) -> None:
    if not keys or not has_app_context():
        return
    try:
        cache.delete_many(*keys)
    except Exception:
        logger.warning("Permission cache invalidation failed", exc_info=True)


def invalidate_user_permissions(user_id) -> None:
    """Drop every cached role and permission entry for the user."""
    keys = [roles_cache_key(user_id)]
    for resource, actions in RESOURCE_ACTIONS.items():
        keys.extend(permission_cache_key(user_id, resource, action) for action in actions)
    _safe_delete_many(keys)


@event.listens_for(UserRoleAssignment, 'after_insert')
@event.listens_for(UserRoleAssignment, 'after_update')
@event.listens_for(UserRoleAssignment, 'after_delete')
def _invalidate_on_role_change(mapper, connection, target):
    invalidate_user_permissions(target.user_id)


def _find_role(role_name: str) -> Role:
    role = Role.query.filter_by(name=role_name).first()
    if role is None:
        raise NotFoundError('Role', role_name)
    return role


def assign_role(user, role_name: str, assigned_by=None) -> UserRoleAssignment:
    if user is None or user.id is None:
        raise ValidationError("A saved user is required")
    role = _find_role(role_name)

    existing = UserRoleAssignment.query.filter_by(user_id=user.id, role_id=role.id).first()
    if existing:
        return existing

    assignment = UserRoleAssignment(
        user_id=user.id,
        role_id=role.id,
        assigned_by=getattr(assigned_by, 'id', None),
    )
    db.session.add(assignment)
    db.session.commit()
    logger.info("Assigned role %s to user %s", role_name, user.id)
    return assignment


def revoke_role(user, role_name: str) -> bool:
    role = _find_role(role_name)
    assignment = UserRoleAssignment.query.filter_by(user_id=user.id, role_id=role.id).first()
    if assignment is None:
        return False
    db.session.delete(assignment)
    db.session.commit()
    logger.info("Revoked role %s from user %s", role_name, user.id)
    return True


def seed_system_roles() -> List[Role]:
    """Create any missing system roles; returns the ones created."""
    created = []
    for name, description in SYSTEM_ROLE_DESCRIPTIONS.items():
        if Role.query.filter_by(name=name).first():
            continue
        role = Role(name=name, description=description, is_system_role=True)
        db.session.add(role)
        created.append(role)
    if created:
        db.session.commit()
    return created
