# Overview: Service-layer operations for roles; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Role, User
from . import session_service
from shopkeep.errors import ConflictError, NotFoundError, ValidationError


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    name = name.strip()
    if len(name) > 64:
        raise ValidationError("name exceeds max length 64")
    return name


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return role


def list_roles() -> list[dict]:
    roles = db.session.query(Role).order_by(Role.id.asc()).all()
    return [r.to_dict(include_users=True) for r in roles]


def create_role(name: str) -> Role:
    name = _clean_name(name)
    if db.session.query(Role).filter_by(name=name).first():
        raise ConflictError("Role already exists")

    role = Role(name=name)
    db.session.add(role)
    db.session.commit()
    return role


def update_role(role_id: int, name: str) -> Role:
    role = get_role(role_id)
    name = _clean_name(name)

    clash = db.session.query(Role).filter(Role.name == name, Role.id != role.id).first()
    if clash:
        raise ConflictError("Role already exists")

    role.name = name
    db.session.commit()
    return role


def delete_role(role_id: int) -> None:
    """Roles still assigned to users cannot be deleted."""
    role = get_role(role_id)

    if db.session.query(User).filter_by(role_id=role.id).first():
        raise ConflictError("Cannot delete role with assigned users")

    db.session.delete(role)
    db.session.commit()


def assign_role(user_id: int, role_id: int) -> User:
    """
    Move a user to another role.

    The user's sessions are revoked so no refresh can mint an access token
    that still carries the previous role name.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    role = get_role(role_id)

    if user.role_id != role.id:
        user.role_id = role.id
        db.session.commit()
        revoked = session_service.revoke_user_sessions(user.id)
        current_app.logger.info(
            "Assigned role %s to user id=%s (%d sessions revoked)", role.name, user.id, revoked
        )
    return user
