# backend/shopkeep/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopkeep.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Token signing. Access and refresh tokens use separate secrets so a leaked
    # access secret cannot mint refresh tokens.
    ACCESS_TOKEN_SECRET = os.environ.get("ACCESS_TOKEN_SECRET", "access-secret-key")
    REFRESH_TOKEN_SECRET = os.environ.get("REFRESH_TOKEN_SECRET", "refresh-secret-key")
    JWT_ALGORITHM = "HS256"
    ACCESS_TOKEN_TTL_MINUTES = int(os.environ.get("ACCESS_TOKEN_TTL_MINUTES", "15"))
    REFRESH_TOKEN_TTL_DAYS = int(os.environ.get("REFRESH_TOKEN_TTL_DAYS", "7"))

    # Cookies carrying the tokens
    ACCESS_COOKIE_NAME = "access_token"
    REFRESH_COOKIE_NAME = "refresh_token"
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)
    COOKIE_SAMESITE = "Lax"

    # Passwords
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LENGTH = int(os.environ.get("PASSWORD_MIN_LENGTH", "8"))

    # Roles allowed to manage users and roles
    SUPER_ADMIN_ROLE = "SuperAdmin"
    ADMIN_ROLES = ("SuperAdmin", "Admin")

    # POST /api/auth/create-super-user is only served while this is on
    ALLOW_SUPERUSER_BOOTSTRAP = _env_bool("ALLOW_SUPERUSER_BOOTSTRAP", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser origins allowed to call the API with credentials
    CORS_ORIGINS = tuple(
        o.strip() for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
        if o.strip()
    )
