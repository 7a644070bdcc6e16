"""
auth/errors.py -- Terminal failure kinds of the auth layer.

Every failure carries a machine-readable code, the HTTP status it maps to and
a human-readable message. api/main.py renders them all through one exception
handler, so route code raises and never builds error responses by hand.

Messages for credential failures are generic. InvalidOrExpired in
particular never says which of the two conditions failed.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations


class AuthError(Exception):
    code: str = "auth_error"
    status_code: int = 400
    message: str = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------


class NoCredential(AuthError):
    code = "no_credential"
    status_code = 401
    message = "You are not logged in, please log in first."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    message = "Invalid or expired token."


class InvalidSignature(InvalidToken):
    message = "Token signature is invalid."


class TokenExpired(InvalidToken):
    message = "Token has expired."


class BadCredentials(InvalidToken):
    code = "bad_credentials"
    message = "Incorrect email or password"


class IdentityGone(AuthError):
    code = "identity_gone"
    status_code = 401
    message = "The user belonging to this token no longer exists."


class StaleCredential(AuthError):
    code = "stale_credential"
    status_code = 401
    message = "User recently changed password, please log in again."


class AuthenticationFailed(AuthError):
    code = "authentication_failed"
    status_code = 401
    message = "Authentication failed."


# ---------------------------------------------------------------------------
# Authorization gate
# ---------------------------------------------------------------------------


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    message = "Forbidden"


# ---------------------------------------------------------------------------
# Password lifecycle
# ---------------------------------------------------------------------------


class WrongPassword(AuthError):
    code = "wrong_password"
    status_code = 401
    message = "Please enter the correct password"


class InvalidOrExpired(AuthError):
    code = "invalid_or_expired"
    status_code = 404
    message = "Token is invalid or expired"


class MailDeliveryFailed(AuthError):
    code = "delivery_error"
    status_code = 500
    message = "There was an error sending the mail."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    message = "no user find with this email, please check your email"


class Conflict(AuthError):
    code = "conflict"
    status_code = 409
    message = "User already exists on given email address"


class ValidationFailed(AuthError):
    code = "validation_error"
    status_code = 400
    message = "Request validation failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail
