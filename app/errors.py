"""Failures raised by the password reset operations.

Every error carries the message shown to the caller and the HTTP status the
API layer answers with. Only ``Unauthorized`` maps to 401; everything else is
a 400 at the protocol level, retryable or not.
"""
from __future__ import annotations


class ResetError(Exception):
    """Base class for password reset failures."""

    status_code: int = 400
    default_message: str = "Unknown error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ResetError):
    """Malformed email, code or request body."""

    default_message = "Invalid request"


class Unauthorized(ResetError):
    """Missing or unrecognized bearer secret."""

    status_code = 401
    default_message = "Invalid authorization token"


class NotRegistered(ResetError):
    """No account exists for the email a code was requested for."""

    default_message = "Email not registered"


class UserNotFound(ResetError):
    """The account disappeared between issuing a code and consuming it."""

    default_message = "User not found"


class NoOutstandingCode(ResetError):
    default_message = "No OTP found for this email. Please request a new one."


class Expired(ResetError):
    default_message = "OTP has expired. Please request a new one."


class Mismatch(ResetError):
    default_message = "Invalid OTP"


class WeakPassword(ResetError):
    default_message = "Password must be at least 8 characters"


class NotifierFailure(ResetError):
    """The email carrying the code could not be sent."""

    default_message = "Email service error"


class CredentialStoreFailure(ResetError):
    """The credential store rejected or failed a lookup or password update."""

    default_message = "Failed to update password"


class LedgerFailure(ResetError):
    """The OTP ledger (database or its lock) was unavailable."""

    default_message = "Database error"
