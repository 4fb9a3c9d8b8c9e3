"""
core/errors.py -- Typed failure taxonomy for credential verification.

Every failure a caller can correct (or wait out) is a subclass of AuthError
carrying a stable machine code and the HTTP status the API layer should use.
The API maps errors by type; nothing ever branches on message text.

Storage and signing failures are NOT AuthErrors. They propagate as whatever
the lower layer raised (e.g. sqlalchemy.exc.OperationalError) and the API
turns them into a generic "retry later" response.

Layer rule: core/ is the kernel -- no imports from api/ or auth/.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base class for recoverable-by-caller authentication failures."""

    status_code: int = 400
    code: str = "auth_error"
    default_message: str = "Authentication failed."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class InvalidCaptcha(AuthError):
    status_code = 400
    code = "invalid_captcha"
    default_message = "Invalid CAPTCHA."


class InvalidOrExpiredOtp(AuthError):
    status_code = 400
    code = "invalid_otp"
    default_message = "Invalid or expired OTP."


class InvalidContact(AuthError):
    """Contact address is not a well-formed mobile number."""

    status_code = 400
    code = "invalid_contact"
    default_message = "Mobile number must be 10 digits starting with 6-9."


class InvalidCredentials(AuthError):
    """Bad secret OR unknown identity -- deliberately indistinguishable."""

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid username or password."


class RoleMismatch(AuthError):
    status_code = 401
    code = "role_mismatch"
    default_message = "Invalid user type."


class MalformedToken(AuthError):
    status_code = 401
    code = "malformed_token"
    default_message = "Token is invalid."


class ExpiredToken(AuthError):
    status_code = 401
    code = "expired_token"
    default_message = "Token has expired."


class AccountInactive(AuthError):
    """Reported distinctly: the caller needs to verify the mobile number."""

    status_code = 403
    code = "account_inactive"
    default_message = "Account is not active. Please verify your mobile number."


class AccountNotFound(AuthError):
    """Only raised on OTP issuance and registration verification."""

    status_code = 404
    code = "not_found"
    default_message = "Mobile number not registered."


class TooManyRequests(AuthError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many OTP requests. Please try again later."
