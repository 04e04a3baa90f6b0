# Overview: Flask API routes for roles operations; parses input and returns JSON responses.

# backend/shopkeep/routes/roles.py
"""
Role management routes.

Reads require authentication; writes and assignment require an admin role.
Deleting a role that still has users is a 409.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import roles_service
from ..decorators import require_auth, require_admin
from ..errors import ServiceError
from ..validation import require_fields, parse_int

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.get("")
@require_auth
def list_roles_route():
    roles = roles_service.list_roles()
    return jsonify({"roles": roles, "count": len(roles)})


@roles_bp.get("/<int:role_id>")
@require_auth
def get_role_route(role_id: int):
    try:
        role = roles_service.get_role(role_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify(role.to_dict(include_users=True))


@roles_bp.post("")
@require_auth
@require_admin
def create_role_route():
    try:
        data = require_fields(request.get_json(silent=True), "name")
        role = roles_service.create_role(data["name"])
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create role")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "Role created", "data": role.to_dict()}), 201


@roles_bp.put("/<int:role_id>")
@require_auth
@require_admin
def update_role_route(role_id: int):
    try:
        data = require_fields(request.get_json(silent=True), "name")
        role = roles_service.update_role(role_id, data["name"])
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update role")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "Role updated", "data": role.to_dict()})


@roles_bp.delete("/<int:role_id>")
@require_auth
@require_admin
def delete_role_route(role_id: int):
    try:
        roles_service.delete_role(role_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete role")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "Role deleted"})


@roles_bp.post("/assign")
@require_auth
@require_admin
def assign_role_route():
    """
    Move a user to a role.

    Body: {"user_id", "role_id"}. The user's sessions are revoked.
    """
    try:
        data = require_fields(request.get_json(silent=True), "user_id", "role_id")
        user = roles_service.assign_role(
            parse_int(data["user_id"], "user_id", minimum=1),
            parse_int(data["role_id"], "role_id", minimum=1),
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to assign role")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "User role updated", "data": user.to_summary()})
