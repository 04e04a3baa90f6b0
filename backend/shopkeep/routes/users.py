# Overview: Flask API routes for user management; parses input and returns JSON responses.

# backend/shopkeep/routes/users.py
"""
User management routes.

All endpoints require authentication and an admin role (ADMIN_ROLES).
Password hashes never leave the service layer.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service
from ..decorators import require_auth, require_admin
from ..errors import ServiceError, ValidationError
from ..validation import require_fields, parse_int

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"users": users, "count": len(users)})


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Create a user with a role.

    Body: {"name", "email", "password", "role_id"}
    """
    try:
        data = require_fields(request.get_json(silent=True), "name", "email", "password", "role_id")
        for field in ("name", "email", "password"):
            if not isinstance(data[field], str):
                raise ValidationError(f"{field} must be a string")
        user = auth_service.create_user(
            name=data["name"],
            email=data["email"],
            password=data["password"],
            role_id=parse_int(data["role_id"], "role_id", minimum=1),
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "User created", "data": user.to_dict()}), 201


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    if user_id == g.current_user_id:
        return jsonify({"error": "Cannot delete your own account"}), 400

    try:
        auth_service.delete_user(user_id)
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "User deleted"})
