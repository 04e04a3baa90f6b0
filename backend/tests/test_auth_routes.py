"""
HTTP tests for /api/auth.

Verifies:
- Login sets HTTP-only access and refresh cookies and never returns tokens in the body
- Refresh rotates the cookies; replaying the old refresh cookie is a 403 that clears both
- Logout clears cookies and succeeds even without a session
- Protected routes accept the access cookie or a Bearer header
- Super-user bootstrap is idempotent and can be disabled
"""

import pytest

from shopkeep.models import Role, User, UserSession

from conftest import TEST_PASSWORD, login, get_access_token, auth_headers


def _set_cookie_headers(response) -> dict:
    """Set-Cookie headers keyed by cookie name."""
    headers = {}
    for header in response.headers.getlist("Set-Cookie"):
        name = header.split("=", 1)[0]
        headers[name] = header
    return headers


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_login_sets_both_cookies(self, client, admin_user):
        resp = login(client, admin_user.email)

        assert resp.status_code == 200
        assert resp.json["success"] is True
        assert resp.json["data"]["user"]["email"] == admin_user.email
        assert resp.json["data"]["user"]["role"] == "SuperAdmin"

        cookies = _set_cookie_headers(resp)
        assert "HttpOnly" in cookies["access_token"]
        assert "Max-Age=900" in cookies["access_token"]
        assert "SameSite=Lax" in cookies["access_token"]
        assert "HttpOnly" in cookies["refresh_token"]
        assert "Max-Age=604800" in cookies["refresh_token"]

    def test_tokens_are_not_in_body(self, client, admin_user):
        resp = login(client, admin_user.email)
        body = resp.get_data(as_text=True)

        assert client.get_cookie("access_token").value not in body
        assert client.get_cookie("refresh_token").value not in body
        assert "password_hash" not in body

    def test_bad_password_is_401(self, client, admin_user):
        resp = login(client, admin_user.email, "wrong-password")
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"
        assert client.get_cookie("access_token") is None

    def test_missing_fields_is_400(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "a@x.com"})
        assert resp.status_code == 400

    def test_non_json_body_is_400(self, client, db_session):
        resp = client.post("/api/auth/login", data="email=a@x.com")
        assert resp.status_code == 400


# =============================================================================
# REFRESH
# =============================================================================


class TestRefresh:

    def test_refresh_rotates_cookies(self, client, admin_user):
        login(client, admin_user.email)
        old_refresh = client.get_cookie("refresh_token").value

        resp = client.post("/api/auth/refresh")

        assert resp.status_code == 200
        assert resp.json["message"] == "Session refreshed"
        new_refresh = client.get_cookie("refresh_token").value
        assert new_refresh != old_refresh

    def test_replayed_refresh_cookie_is_403_and_clears_cookies(self, client, admin_user):
        login(client, admin_user.email)
        old_refresh = client.get_cookie("refresh_token").value
        assert client.post("/api/auth/refresh").status_code == 200

        client.set_cookie("refresh_token", old_refresh)
        resp = client.post("/api/auth/refresh")

        assert resp.status_code == 403
        assert resp.json["error"] == "Session expired"
        assert client.get_cookie("access_token") is None
        assert client.get_cookie("refresh_token") is None

    def test_refresh_without_cookie_is_401(self, client, db_session):
        resp = client.post("/api/auth/refresh")
        assert resp.status_code == 401
        assert resp.json["error"] == "No refresh token"

    def test_refresh_token_in_json_body(self, client, admin_user):
        login(client, admin_user.email)
        token = client.get_cookie("refresh_token").value
        client.delete_cookie("refresh_token")

        resp = client.post("/api/auth/refresh", json={"refresh_token": token})
        assert resp.status_code == 200


# =============================================================================
# LOGOUT
# =============================================================================


class TestLogout:

    def test_logout_clears_cookies_and_session(self, client, admin_user, db_session):
        login(client, admin_user.email)
        assert db_session.query(UserSession).count() == 1

        resp = client.post("/api/auth/logout")

        assert resp.status_code == 200
        assert client.get_cookie("access_token") is None
        assert client.get_cookie("refresh_token") is None
        assert db_session.query(UserSession).count() == 0

    def test_logout_without_session_is_200(self, client, db_session):
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json["success"] is True


# =============================================================================
# VERIFY / PROTECTED ROUTES
# =============================================================================


class TestVerify:

    def test_verify_with_cookie(self, client, admin_user):
        login(client, admin_user.email)
        resp = client.get("/api/auth/verify")

        assert resp.status_code == 200
        assert resp.json["user"] == {
            "id": admin_user.id,
            "email": admin_user.email,
            "role": "SuperAdmin",
        }

    def test_verify_with_bearer_header(self, app, admin_user):
        token = get_access_token(app.test_client(), admin_user.email)

        resp = app.test_client().get("/api/auth/verify", headers=auth_headers(token))
        assert resp.status_code == 200

    def test_verify_without_token_is_401(self, client, db_session):
        assert client.get("/api/auth/verify").status_code == 401

    def test_verify_with_garbage_token_is_401(self, client, db_session):
        resp = client.get("/api/auth/verify", headers=auth_headers("not-a-jwt"))
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/products/low-stock"),
            ("GET", "/api/products/template"),
            ("POST", "/api/products/upload"),
            ("GET", "/api/roles"),
            ("POST", "/api/roles/assign"),
            ("GET", "/api/users"),
            ("POST", "/api/sales"),
            ("GET", "/api/dashboard"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# SUPER-USER BOOTSTRAP
# =============================================================================


class TestCreateSuperUser:

    def test_creates_role_and_user(self, client, db_session):
        resp = client.post(
            "/api/auth/create-super-user",
            json={"email": "Owner@Shop.test", "password": TEST_PASSWORD, "name": "Owner"},
        )

        assert resp.status_code == 201
        assert resp.json["data"]["created"] is True
        assert resp.json["data"]["user"]["role"] == "SuperAdmin"
        assert db_session.query(Role).filter_by(name="SuperAdmin").count() == 1

        assert login(client, "owner@shop.test").status_code == 200

    def test_second_call_only_updates_name(self, client, db_session):
        client.post(
            "/api/auth/create-super-user",
            json={"email": "owner@shop.test", "password": TEST_PASSWORD},
        )
        resp = client.post(
            "/api/auth/create-super-user",
            json={"email": "owner@shop.test", "password": "Another-password1", "name": "Renamed"},
        )

        assert resp.status_code == 200
        assert resp.json["data"]["created"] is False
        assert db_session.query(User).count() == 1
        assert db_session.query(User).one().name == "Renamed"

        # Password is untouched
        assert login(client, "owner@shop.test").status_code == 200
        assert login(client, "owner@shop.test", "Another-password1").status_code == 401

    def test_short_password_is_400(self, client, db_session):
        resp = client.post(
            "/api/auth/create-super-user",
            json={"email": "owner@shop.test", "password": "short"},
        )
        assert resp.status_code == 400
        assert db_session.query(User).count() == 0
        assert db_session.query(Role).count() == 0

    def test_disabled_bootstrap_is_404(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_SUPERUSER_BOOTSTRAP", False)
        resp = client.post(
            "/api/auth/create-super-user",
            json={"email": "owner@shop.test", "password": TEST_PASSWORD},
        )
        assert resp.status_code == 404
