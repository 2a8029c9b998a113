"""
auth/errors.py -- Failure taxonomy for the session flows.

Every flow failure is an AuthError subclass carrying the HTTP status, a
machine-readable code and a client-safe message. api/main.py registers one
exception handler that turns any AuthError into the standard error envelope,
so route handlers never build error responses by hand.

StorageError is deliberately not an AuthError: it is a fatal server-side
failure and is reported as a generic 500.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 400
    code: str = "auth_error"
    message: str = "Authentication failed."
    error_type: str | None = None

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class MissingFields(AuthError):
    code = "missing_fields"
    message = "All fields are required."


class InvalidField(AuthError):
    code = "invalid_field"
    message = "Invalid field value."


class WeakPassword(AuthError):
    code = "weak_password"
    message = "Password must be at least 8 characters long."


class DuplicateUsername(AuthError):
    code = "duplicate_username"
    message = "Username already taken. Please try another one."
    error_type = "unameDupErr"


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    message = "Email already taken. Please try another one."
    error_type = "emailDupErr"


class InvalidCredentials(AuthError):
    # Same status and message for unknown email and wrong password so callers
    # cannot tell which one happened.
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountLocked(AuthError):
    status_code = 423
    code = "account_locked"
    message = "Account is locked due to too many failed login attempts. Please try again later."


class MissingToken(AuthError):
    status_code = 401
    code = "missing_token"
    message = "Refresh token required."


class InvalidOrExpiredToken(AuthError):
    status_code = 403
    code = "invalid_or_expired_token"
    message = "Invalid or expired refresh token."


class InvalidRefreshToken(AuthError):
    status_code = 403
    code = "invalid_refresh_token"
    message = "Invalid refresh token."


class InvalidToken(AuthError):
    status_code = 403
    code = "invalid_token"
    message = "Invalid token."


class StorageError(Exception):
    """Persistence failed in a way the request cannot recover from."""
