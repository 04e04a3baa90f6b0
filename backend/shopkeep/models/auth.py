from __future__ import annotations

from ..extensions import db
from shopkeep.time_utils import to_utc_z


class Role(db.Model):
    """
    Named role a user belongs to (many users per role).

    The role name travels inside the access token, so renaming a role takes
    effect for a user at their next token refresh.
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_roles_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self, include_users: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }
        if include_users:
            data["users"] = [
                {"id": u.id, "name": u.name, "email": u.email}
                for u in sorted(self.users, key=lambda u: u.id)
            ]
        return data


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Email is globally unique and is the login identifier.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role_id", "role_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    role = db.relationship("Role", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_summary(self) -> dict:
        """Identity returned to clients after login. Never includes the hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.name if self.role else None,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role_id": self.role_id,
            "role": self.role.name if self.role else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserSession(db.Model):
    """
    Server-side record of an issued refresh token.

    A refresh token is only honoured while a row holds it. Rotation swaps the
    token value in place with a conditional UPDATE keyed on the old value, so
    of two concurrent refreshes presenting the same token only one matches.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.UniqueConstraint("refresh_token", name="uq_sessions_refresh_token"),
        db.Index("ix_sessions_user_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    refresh_token = db.Column(db.String(512), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }


class LoginLog(db.Model):
    """Append-only login audit trail."""
    __tablename__ = "login_logs"
    __table_args__ = (
        db.Index("ix_login_logs_user_time", "user_id", "login_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    login_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "login_time": to_utc_z(self.login_time),
        }
