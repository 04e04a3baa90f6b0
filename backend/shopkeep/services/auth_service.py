# Overview: Service-layer operations for credentials; encapsulates business logic and database work.

"""
Credential store: users, password hashing, super-user bootstrap.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum length PASSWORD_MIN_LENGTH (default 8)
- Unknown emails and wrong passwords fail identically (InvalidCredentials),
  and unknown emails still pay for one bcrypt comparison
- Token and session handling lives in session_service.py
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role, UserSession, LoginLog, StockMovement, PriceHistory, Sale
from shopkeep.errors import (
    ValidationError,
    InvalidCredentials,
    NotFoundError,
    ConflictError,
    DuplicateEmail,
)

# Compared against when the email is unknown so both failure paths cost the same.
_DUMMY_HASH = bcrypt.hashpw(b"shopkeep-timing-equalizer", bcrypt.gensalt(rounds=4)).decode("utf-8")

# bcrypt ignores input past 72 bytes; newer releases reject it outright.
BCRYPT_MAX_PASSWORD_BYTES = 72


def validate_password_strength(password: str) -> None:
    min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 8)
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long")
    if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is the constant-time compare primitive. A malformed
    stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate(email: str, password: str) -> User:
    """
    Return the user whose email and password match.

    Raises InvalidCredentials for an unknown email or a wrong password,
    without telling the two apart.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()

    if user is None:
        verify_password(password or "", _DUMMY_HASH)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()

    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users() -> list[dict]:
    users = db.session.query(User).order_by(User.id.asc()).all()
    return [u.to_dict() for u in users]


def create_user(*, name: str, email: str, password: str, role_id: int) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        DuplicateEmail: email already registered
        NotFoundError: role does not exist
        ValidationError: password too short or over 72 bytes
    """
    email = normalize_email(email)

    if db.session.query(User).filter_by(email=email).first():
        raise DuplicateEmail()

    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found")

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role_id=role.id,
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Created user id=%s email=%s role=%s", user.id, user.email, role.name)
    return user


def delete_user(user_id: int) -> None:
    """
    Delete a user together with their sessions and login history.

    Ledger attribution (stock movements, price history) is detached rather
    than deleted. Users with recorded sales cannot be deleted.
    """
    user = get_user(user_id)

    if db.session.query(Sale).filter_by(user_id=user.id).first():
        raise ConflictError("Cannot delete user with recorded sales")

    db.session.query(UserSession).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.query(LoginLog).filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.query(StockMovement).filter_by(user_id=user.id).update(
        {StockMovement.user_id: None}, synchronize_session=False
    )
    db.session.query(PriceHistory).filter_by(user_id=user.id).update(
        {PriceHistory.user_id: None}, synchronize_session=False
    )
    db.session.expire(user)
    db.session.delete(user)
    db.session.commit()

    current_app.logger.info("Deleted user id=%s", user_id)


def ensure_role(name: str) -> Role:
    role = db.session.query(Role).filter_by(name=name).first()
    if role is None:
        role = Role(name=name)
        db.session.add(role)
        db.session.flush()
    return role


def ensure_super_user(*, email: str, password: str, name: str | None = None) -> tuple[User, bool]:
    """
    Idempotent bootstrap of the first administrator.

    - The SuperAdmin role is created if missing.
    - If no user has this email, one is created with the SuperAdmin role.
    - Otherwise only the display name is updated (when given); password and
      role of an existing account are left untouched.

    Returns (user, created).
    """
    email = normalize_email(email)
    if not email:
        raise ValidationError("email is required")

    role_name = current_app.config.get("SUPER_ADMIN_ROLE", "SuperAdmin")

    user = db.session.query(User).filter_by(email=email).first()
    if user is not None:
        ensure_role(role_name)
        if name and name.strip() and user.name != name.strip():
            user.name = name.strip()
        db.session.commit()
        return user, False

    password_hash = hash_password(password)
    role = ensure_role(role_name)
    user = User(
        name=(name or "").strip() or "Super Admin",
        email=email,
        password_hash=password_hash,
        role_id=role.id,
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Bootstrapped super user id=%s email=%s", user.id, user.email)
    return user, True
