"""
Error taxonomy for the exam portal auth service.

Services raise these; the HTTP layer maps them to ``{"success": false, "message": ...}``
with the error's ``status_code``.
"""

from typing import Optional


class PortalError(Exception):
    """Base class for every error surfaced to API clients."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class AuthenticationError(PortalError):
    """The caller could not be authenticated."""
    status_code = 401
    default_message = "Authentication failed"


class InvalidCredentials(AuthenticationError):
    default_message = "Invalid email or password"


class AccountDeactivated(AuthenticationError):
    default_message = "Account is deactivated"


class InvalidToken(AuthenticationError):
    default_message = "Invalid token"


class TokenExpired(AuthenticationError):
    default_message = "Token expired"


class TokenRevoked(AuthenticationError):
    default_message = "Token has been revoked"


class PrincipalNotFound(AuthenticationError):
    default_message = "Account not found"


class Unauthorized(AuthenticationError):
    default_message = "Access token required"


class DuplicateAccount(PortalError):
    status_code = 409
    default_message = "This email is already in use"


class Forbidden(PortalError):
    status_code = 403
    default_message = "Insufficient permissions"


class ResourceNotFound(PortalError):
    status_code = 404
    default_message = "Resource not found"


class ValidationFailed(PortalError):
    status_code = 400
    default_message = "Validation failed"


class ConfigurationError(PortalError):
    status_code = 500
    default_message = "Authentication is not configured"
