# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Access/Refresh Token Session Management

TOKENS:
- Access token: signed JWT (ACCESS_TOKEN_SECRET), 15 minutes by default.
  Claims: user_id, role, email. Self-contained; verified by signature and
  expiry only, so it cannot be revoked before it expires.
- Refresh token: signed JWT (REFRESH_TOKEN_SECRET), 7 days by default.
  Claims: user_id. Only honoured while a UserSession row holds it, so it is
  revocable.

Both carry a random jti so two tokens minted in the same second differ.

ROTATION:
Every refresh mints a new pair and swaps the session row's token with
    UPDATE sessions SET refresh_token=:new, expires_at=:exp
    WHERE id=:id AND refresh_token=:old
If two requests race on the same refresh token only one UPDATE matches;
the loser gets SessionExpired. A rotated-out token never works again.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from flask import current_app
from jose import jwt
from jose.exceptions import JOSEError

from ..extensions import db
from ..models import User, UserSession, LoginLog
from . import auth_service
from .concurrency import run_with_retry
from shopkeep.errors import InvalidCredentials, MissingToken, SessionExpired
from shopkeep.time_utils import utcnow, to_naive_utc

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime


@dataclass
class LoginResult:
    """Outcome of a successful login or refresh. user is the sanitized summary."""
    user: dict
    tokens: TokenPair


def access_token_ttl() -> timedelta:
    return timedelta(minutes=current_app.config.get("ACCESS_TOKEN_TTL_MINUTES", 15))


def refresh_token_ttl() -> timedelta:
    return timedelta(days=current_app.config.get("REFRESH_TOKEN_TTL_DAYS", 7))


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def _sign(claims: dict, secret: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload.update({
        "iat": now,
        "exp": now + ttl,
        "jti": secrets.token_hex(16),
    })
    return jwt.encode(payload, secret, algorithm=_algorithm())


def _decode(token: str, secret: str, token_type: str) -> dict | None:
    """Claims of a valid token of the given type, else None."""
    if not isinstance(token, str) or not token:
        return None
    try:
        claims = jwt.decode(token, secret, algorithms=[_algorithm()])
    except JOSEError:
        return None
    if claims.get("type") != token_type or "user_id" not in claims:
        return None
    return claims


def issue_tokens(user: User) -> TokenPair:
    """Mint an access/refresh pair for user (no persistence)."""
    access = _sign(
        {
            "user_id": user.id,
            "role": user.role.name if user.role else None,
            "email": user.email,
            "type": ACCESS_TOKEN_TYPE,
        },
        current_app.config["ACCESS_TOKEN_SECRET"],
        access_token_ttl(),
    )
    ttl = refresh_token_ttl()
    refresh = _sign(
        {"user_id": user.id, "type": REFRESH_TOKEN_TYPE},
        current_app.config["REFRESH_TOKEN_SECRET"],
        ttl,
    )
    return TokenPair(access_token=access, refresh_token=refresh, refresh_expires_at=utcnow() + ttl)


def login(email: str, password: str) -> LoginResult:
    """
    Authenticate, open a session for the new refresh token and record the login.

    Raises InvalidCredentials on any credential mismatch.
    """
    try:
        user = auth_service.authenticate(email, password)
    except InvalidCredentials:
        current_app.logger.warning("Failed login attempt for %r", auth_service.normalize_email(email))
        raise

    tokens = issue_tokens(user)
    now = utcnow()

    db.session.add(UserSession(
        user_id=user.id,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.refresh_expires_at,
        created_at=now,
    ))
    db.session.add(LoginLog(user_id=user.id, login_time=now))
    db.session.commit()

    current_app.logger.info("User id=%s logged in", user.id)
    return LoginResult(user=user.to_summary(), tokens=tokens)


def _delete_session_by_token(token: str) -> int:
    deleted = db.session.query(UserSession).filter_by(refresh_token=token).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def refresh(refresh_token: str | None) -> LoginResult:
    """
    Rotate a refresh token.

    Raises:
        MissingToken: no token presented
        SessionExpired: token invalid, unknown, expired, or already rotated
    """
    if not refresh_token or not refresh_token.strip():
        raise MissingToken()

    claims = _decode(refresh_token, current_app.config["REFRESH_TOKEN_SECRET"], REFRESH_TOKEN_TYPE)

    def _op():
        session = db.session.query(UserSession).filter_by(refresh_token=refresh_token).first()

        if (
            claims is None
            or session is None
            or to_naive_utc(session.expires_at) <= utcnow()
            or claims["user_id"] != session.user_id
        ):
            if session is not None:
                _delete_session_by_token(refresh_token)
            raise SessionExpired()

        user = session.user
        tokens = issue_tokens(user)

        swapped = (
            db.session.query(UserSession)
            .filter(
                UserSession.id == session.id,
                UserSession.refresh_token == refresh_token,
            )
            .update(
                {
                    UserSession.refresh_token: tokens.refresh_token,
                    UserSession.expires_at: tokens.refresh_expires_at,
                },
                synchronize_session=False,
            )
        )
        if swapped != 1:
            db.session.rollback()
            current_app.logger.warning("Refresh token for session id=%s was already rotated", session.id)
            raise SessionExpired()

        db.session.commit()
        db.session.expire(session)
        return LoginResult(user=user.to_summary(), tokens=tokens)

    return run_with_retry(_op, label="refresh rotation")


def logout(refresh_token: str | None) -> bool:
    """
    Delete the session holding refresh_token.

    Idempotent: returns False when there was nothing to delete.
    """
    if not refresh_token:
        return False
    deleted = _delete_session_by_token(refresh_token)
    if deleted:
        current_app.logger.info("Session closed by logout")
    return bool(deleted)


def verify_access_token(token: str | None) -> dict | None:
    """
    Decode an access token.

    Returns the claims, or None when the token is missing, malformed, badly
    signed, expired, or not an access token. Never raises.
    """
    return _decode(token, current_app.config["ACCESS_TOKEN_SECRET"], ACCESS_TOKEN_TYPE)


def revoke_user_sessions(user_id: int) -> int:
    """
    Delete every session of a user.

    Outstanding access tokens stay valid until they expire.
    """
    deleted = db.session.query(UserSession).filter_by(user_id=user_id).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_expired_sessions() -> int:
    """
    Delete sessions past their expiry.

    Returns count of sessions deleted. Run periodically (flask sessions cleanup).
    """
    deleted = db.session.query(UserSession).filter(
        UserSession.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    if deleted:
        current_app.logger.info("Removed %d expired sessions", deleted)
    return deleted
