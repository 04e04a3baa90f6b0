# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service


def _request_access_token() -> str | None:
    """Access token from the Authorization header, else from the access cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"])


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user_claims')


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.current_user_claims: decoded access-token claims
    - g.current_user_id: the authenticated user's id
    - g.current_role: the role name carried by the token (may be None)

    Returns 401 if no token is presented or it fails verification.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _request_access_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        claims = session_service.verify_access_token(token)
        if not claims:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user_claims = claims
        g.current_user_id = claims["user_id"]
        g.current_role = claims.get("role")

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require one of the configured ADMIN_ROLES."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        admin_roles = tuple(current_app.config.get("ADMIN_ROLES", ()))
        if g.current_role not in admin_roles:
            return jsonify({
                "error": "Permission denied",
                "message": f"Requires role: {', '.join(admin_roles)}",
            }), 403
        return f(*args, **kwargs)
    return decorated_function
