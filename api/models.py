"""
API request and response models for credgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field names are camelCase on the wire (captchaId, mobileNumber, ...) to match
the existing clients; populate_by_name lets tests and Python callers use the
snake_case names too.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AuthSession, Role

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MOBILE_PATTERN = r"^[6-9]\d{9}$"
OTP_PATTERN = r"^\d{4,10}$"

_REQUEST_CONFIG = ConfigDict(str_strip_whitespace=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CaptchaValidateRequest(BaseModel):
    """Request body for POST /api/v1/auth/captcha/validate."""

    model_config = _REQUEST_CONFIG

    captcha_id: str = Field(alias="captchaId", min_length=1, max_length=36)
    captcha_text: str = Field(alias="captchaText", min_length=1, max_length=16)


class OtpSendRequest(BaseModel):
    """Request body for POST /auth/mobile/send-otp."""

    model_config = _REQUEST_CONFIG

    mobile_number: str = Field(alias="mobileNumber", pattern=MOBILE_PATTERN)
    user_type: Role = Field(alias="userType")


class RegistrationOtpRequest(BaseModel):
    """Request body for POST /auth/registration/send-otp.

    Operators never self-register, so userType defaults to CITIZEN.
    """

    model_config = _REQUEST_CONFIG

    mobile_number: str = Field(alias="mobileNumber", pattern=MOBILE_PATTERN)
    user_type: Role = Field(default=Role.CITIZEN, alias="userType")


class OtpLoginRequest(BaseModel):
    """Request body for POST /auth/mobile/verify-otp."""

    model_config = _REQUEST_CONFIG

    mobile_number: str = Field(alias="mobileNumber", pattern=MOBILE_PATTERN)
    otp: str = Field(pattern=OTP_PATTERN)
    captcha_id: str = Field(alias="captchaId", min_length=1, max_length=36)
    captcha: str = Field(min_length=1, max_length=16)
    user_type: Role = Field(alias="userType")


class PasswordLoginRequest(BaseModel):
    """Request body for POST /auth/password/login. username is a mobile number or email."""

    model_config = _REQUEST_CONFIG

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    captcha_id: str = Field(alias="captchaId", min_length=1, max_length=36)
    captcha: str = Field(min_length=1, max_length=16)
    user_type: Role = Field(alias="userType")


class RefreshRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class RegistrationVerifyRequest(BaseModel):
    """Request body for POST /auth/verify-registration-otp."""

    model_config = _REQUEST_CONFIG

    mobile_number: str = Field(alias="mobileNumber", pattern=MOBILE_PATTERN)
    otp: str = Field(pattern=OTP_PATTERN)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class _CamelResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CaptchaResponse(_CamelResponse):
    captcha_id: str = Field(alias="captchaId")
    captcha_text: str = Field(alias="captchaText")
    expires_in: int = Field(alias="expiresIn")


class CaptchaValidateResponse(_CamelResponse):
    valid: bool


class OtpSentResponse(_CamelResponse):
    message: str
    expiry_minutes: int = Field(alias="expiryMinutes")


class AuthResponse(_CamelResponse):
    """Successful login or refresh."""

    token: str
    refresh_token: str = Field(alias="refreshToken")
    token_type: str = Field(default="bearer", alias="tokenType")
    user_id: int = Field(alias="userId")
    user_type: Role = Field(alias="userType")
    mobile_number: str = Field(alias="mobileNumber")
    email: Optional[str] = None
    expires_in: int = Field(alias="expiresIn")

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthResponse":
        """Map a domain AuthSession onto the wire model."""
        return cls(
            token=session.access_token,
            refresh_token=session.refresh_token,
            user_id=session.identity_id,
            user_type=session.role,
            mobile_number=session.contact,
            email=session.email,
            expires_in=session.expires_in,
        )


class RegistrationVerifiedResponse(_CamelResponse):
    message: str
    user_id: int = Field(alias="userId")


class MeResponse(_CamelResponse):
    user_id: int = Field(alias="userId")
    user_type: Role = Field(alias="userType")
    mobile_number: str = Field(alias="mobileNumber")
    email: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
