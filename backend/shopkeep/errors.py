# Overview: Domain error taxonomy shared by services and routes.

"""
Every failure a caller is expected to handle derives from ServiceError and
carries the HTTP status routes should answer with. Anything else reaching a
route is an internal failure and is logged as such.
"""


class ServiceError(Exception):
    status_code = 500
    default_message = "Service error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid input"


class InvalidCredentials(ServiceError):
    status_code = 401
    default_message = "Invalid credentials"


class MissingToken(ServiceError):
    status_code = 401
    default_message = "No refresh token"


class SessionExpired(ServiceError):
    status_code = 403
    default_message = "Session expired"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ServiceError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    default_message = "Conflict"


class DuplicateSku(ConflictError):
    default_message = "Product with this SKU already exists"


class DuplicateEmail(ConflictError):
    default_message = "User already exists"
