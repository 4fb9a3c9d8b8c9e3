"""
api/routes/v1/auth.py -- CAPTCHA, OTP, login and token refresh endpoints.

Routes:
  GET  /api/v1/auth/captcha                    -- issue a CAPTCHA challenge
  POST /api/v1/auth/captcha/validate           -- check a challenge without consuming it
  POST /api/v1/auth/mobile/send-otp            -- OTP for login (active accounts only)
  POST /api/v1/auth/registration/send-otp      -- OTP for registration verification
  POST /api/v1/auth/mobile/verify-otp          -- OTP login; returns tokens
  POST /api/v1/auth/password/login             -- password login; returns tokens
  POST /api/v1/auth/refresh-token              -- new access token from a refresh token
  POST /api/v1/auth/verify-registration-otp    -- activate an account with its OTP
  GET  /api/v1/auth/me                         -- current account (Bearer access token)

Failures are raised as core.errors.AuthError subclasses; api/main.py turns
them into the error envelope with the status each class declares.

Security:
  Login, OTP and CAPTCHA endpoints are rate-limited per IP (slowapi).
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AuthResponse,
    CaptchaResponse,
    CaptchaValidateRequest,
    CaptchaValidateResponse,
    MeResponse,
    OtpLoginRequest,
    OtpSendRequest,
    OtpSentResponse,
    PasswordLoginRequest,
    RefreshRequest,
    RegistrationOtpRequest,
    RegistrationVerifiedResponse,
    RegistrationVerifyRequest,
)
from auth.challenges import ChallengeStore
from auth.dependencies import get_current_account
from auth.models import Account
from auth.passcodes import PasscodePolicy
from auth.session import SessionCoordinator
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - everything except GET /auth/me is public -- these endpoints ARE the login
# - GET /auth/me requires a Bearer access token (get_current_account)
router = APIRouter()


def client_ip(request: Request) -> str | None:
    """Best-effort client address: X-Forwarded-For, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP", "")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# CAPTCHA
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.get("/auth/captcha", response_model=CaptchaResponse)
def generate_captcha(request: Request) -> CaptchaResponse:
    """Issue a typed CAPTCHA. The text is returned in plaintext for the client to display."""
    challenges: ChallengeStore = request.app.state.challenges
    challenge = challenges.issue(origin=client_ip(request))
    return CaptchaResponse(
        captcha_id=challenge.challenge_id,
        captcha_text=challenge.text,
        expires_in=challenges.ttl_seconds,
    )


@router.post("/auth/captcha/validate", response_model=CaptchaValidateResponse)
def validate_captcha(request: Request, body: CaptchaValidateRequest) -> CaptchaValidateResponse:
    """Report whether a challenge is currently valid. Does not consume it."""
    challenges: ChallengeStore = request.app.state.challenges
    return CaptchaValidateResponse(valid=challenges.check(body.captcha_id, body.captcha_text))


# ---------------------------------------------------------------------------
# OTP issuance
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/mobile/send-otp", response_model=OtpSentResponse)
def send_login_otp(request: Request, body: OtpSendRequest) -> OtpSentResponse:
    """Send a login OTP. The account must exist, match userType and be active."""
    policy: PasscodePolicy = request.app.state.passcode_policy
    policy.issue(body.mobile_number, body.user_type, allow_inactive=False)
    return OtpSentResponse(message="OTP sent successfully for login", expiry_minutes=policy.ttl_minutes)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/registration/send-otp", response_model=OtpSentResponse)
def send_registration_otp(request: Request, body: RegistrationOtpRequest) -> OtpSentResponse:
    """Send a registration-verification OTP. Inactive (or not yet visible) accounts are allowed."""
    policy: PasscodePolicy = request.app.state.passcode_policy
    policy.issue(body.mobile_number, body.user_type, allow_inactive=True)
    return OtpSentResponse(
        message="OTP sent successfully for registration verification",
        expiry_minutes=policy.ttl_minutes,
    )


# ---------------------------------------------------------------------------
# Logins and refresh
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/mobile/verify-otp", response_model=AuthResponse)
def login_with_otp(request: Request, response: Response, body: OtpLoginRequest) -> AuthResponse:
    """Verify CAPTCHA + OTP and return an access/refresh token pair."""
    sessions: SessionCoordinator = request.app.state.sessions
    session = sessions.login_with_otp(body.mobile_number, body.otp, body.captcha_id, body.captcha, body.user_type)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_session(session)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/password/login", response_model=AuthResponse)
def login_with_password(request: Request, response: Response, body: PasswordLoginRequest) -> AuthResponse:
    """Verify CAPTCHA + username/password and return an access/refresh token pair.

    Wrong username and wrong password produce the same bad_credentials error
    so the response does not reveal which accounts exist.
    """
    sessions: SessionCoordinator = request.app.state.sessions
    session = sessions.login_with_password(
        body.username, body.password, body.captcha_id, body.captcha, body.user_type
    )
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_session(session)


@router.post("/auth/refresh-token", response_model=AuthResponse)
def refresh_token(request: Request, response: Response, body: RefreshRequest) -> AuthResponse:
    """Mint a new access token. The refresh token is returned unchanged."""
    sessions: SessionCoordinator = request.app.state.sessions
    session = sessions.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_session(session)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/verify-registration-otp", response_model=RegistrationVerifiedResponse)
def verify_registration_otp(request: Request, body: RegistrationVerifyRequest) -> RegistrationVerifiedResponse:
    """Consume a registration OTP and activate the account."""
    sessions: SessionCoordinator = request.app.state.sessions
    account = sessions.verify_registration(body.mobile_number, body.otp)
    return RegistrationVerifiedResponse(
        message="Mobile number verified. Account activated.",
        user_id=account.id,
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(current: Account = Depends(get_current_account)) -> MeResponse:
    """Return identity information for the currently authenticated account."""
    return MeResponse(
        user_id=current.id,
        user_type=current.role,
        mobile_number=current.mobile_number,
        email=current.email,
        full_name=current.full_name,
    )
