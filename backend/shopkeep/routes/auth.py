# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/shopkeep/routes/auth.py
"""
Authentication API routes

Tokens travel as HTTP-only cookies:
- access_token  (15 minutes) proves identity to protected routes
- refresh_token (7 days) is exchanged at /refresh for a fresh pair

Token values are never returned in response bodies.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth
from ..errors import ServiceError
from ..validation import require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_auth_cookies(response, tokens: session_service.TokenPair):
    cfg = current_app.config
    common = {
        "httponly": True,
        "secure": bool(cfg.get("COOKIE_SECURE")),
        "samesite": cfg.get("COOKIE_SAMESITE", "Lax"),
        "path": "/",
    }
    response.set_cookie(
        cfg["ACCESS_COOKIE_NAME"],
        tokens.access_token,
        max_age=int(session_service.access_token_ttl().total_seconds()),
        **common,
    )
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        tokens.refresh_token,
        max_age=int(session_service.refresh_token_ttl().total_seconds()),
        **common,
    )
    return response


def _clear_auth_cookies(response):
    cfg = current_app.config
    response.delete_cookie(cfg["ACCESS_COOKIE_NAME"], path="/")
    response.delete_cookie(cfg["REFRESH_COOKIE_NAME"], path="/")
    return response


def _request_refresh_token() -> str | None:
    """Refresh token from its cookie, else from a JSON body (non-browser clients)."""
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if token:
        return token
    data = request.get_json(silent=True) or {}
    token = data.get("refresh_token") if isinstance(data, dict) else None
    return token if isinstance(token, str) else None


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email and password.

    On success sets both auth cookies and returns the user summary.
    """
    try:
        data = require_fields(request.get_json(silent=True), "email", "password")
        result = session_service.login(str(data["email"]), str(data["password"]))
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({
        "success": True,
        "message": "Logged in successfully",
        "data": {"user": result.user},
    })
    return _set_auth_cookies(response, result.tokens)


@auth_bp.post("/logout")
def logout_route():
    """
    Close the session and clear both cookies.

    Always succeeds: logging out without a session is not an error.
    """
    try:
        session_service.logout(_request_refresh_token())
    except Exception:
        current_app.logger.exception("Failed to delete session on logout")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({"success": True, "message": "Logged out successfully"})
    return _clear_auth_cookies(response)


@auth_bp.post("/refresh")
def refresh_route():
    """
    Rotate the refresh token.

    401 when no refresh token is presented; 403 (and cleared cookies) when it
    is invalid, expired, revoked, or already rotated.
    """
    try:
        result = session_service.refresh(_request_refresh_token())
    except ServiceError as e:
        response = jsonify({"error": e.message})
        if e.status_code == 403:
            _clear_auth_cookies(response)
        return response, e.status_code
    except Exception:
        current_app.logger.exception("Failed to refresh session")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({
        "success": True,
        "message": "Session refreshed",
        "data": {"user": result.user},
    })
    return _set_auth_cookies(response, result.tokens)


@auth_bp.get("/verify")
@require_auth
def verify_route():
    """Claims of the presented access token."""
    claims = g.current_user_claims
    return jsonify({
        "valid": True,
        "user": {
            "id": claims["user_id"],
            "email": claims.get("email"),
            "role": claims.get("role"),
        },
    })


@auth_bp.post("/create-super-user")
def create_super_user_route():
    """
    Idempotent bootstrap of the first administrator.

    Disabled (404) unless ALLOW_SUPERUSER_BOOTSTRAP is set.
    """
    if not current_app.config.get("ALLOW_SUPERUSER_BOOTSTRAP"):
        return jsonify({"error": "Not found"}), 404

    try:
        data = require_fields(request.get_json(silent=True), "email", "password")
        user, created = auth_service.ensure_super_user(
            email=str(data["email"]),
            password=str(data["password"]),
            name=data.get("name") if isinstance(data.get("name"), str) else None,
        )
    except ServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to ensure super user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "message": "Super User ensured",
        "data": {"user": user.to_summary(), "created": created},
    }), 201 if created else 200
