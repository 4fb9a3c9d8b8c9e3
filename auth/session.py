"""
auth/session.py -- Top-level login/refresh entry points.

SessionCoordinator composes the CredentialVerifier and the TokenIssuer. It is
the only object route handlers talk to for authentication.

Refresh tokens are not rotated: refresh() mints a new access token and echoes
the presented refresh token unchanged. A leaked refresh token therefore stays
usable until its own expiry.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import Account, AuthSession, Role
from auth.tokens import TokenIssuer
from auth.verifier import CredentialVerifier
from core.errors import AccountInactive, InvalidCredentials

logger = logging.getLogger("credgate.session")


class SessionCoordinator:
    def __init__(self, verifier: CredentialVerifier, issuer: TokenIssuer) -> None:
        self.verifier = verifier
        self.issuer = issuer

    def _session_for(self, account: Account, refresh_token: Optional[str] = None) -> AuthSession:
        access = self.issuer.mint_access(account.id, account.contact, account.role)
        if refresh_token is None:
            refresh_token = self.issuer.mint_refresh(account.id, account.contact)
        return AuthSession(
            access_token=access,
            refresh_token=refresh_token,
            identity_id=account.id,
            role=account.role,
            contact=account.contact,
            email=account.email,
            expires_in=self.issuer.access_ttl,
        )

    def login_with_password(
        self,
        username: str,
        password: str,
        captcha_id: Optional[str],
        captcha_text: Optional[str],
        role: Role,
    ) -> AuthSession:
        account = self.verifier.verify_password_login(username, password, captcha_id, captcha_text, role)
        logger.info("Password login successful for account ID: %s", account.id)
        return self._session_for(account)

    def login_with_otp(
        self,
        contact: str,
        code: str,
        captcha_id: Optional[str],
        captcha_text: Optional[str],
        role: Role,
    ) -> AuthSession:
        account = self.verifier.verify_otp_login(contact, code, captcha_id, captcha_text, role)
        logger.info("OTP login successful for account ID: %s", account.id)
        return self._session_for(account)

    def refresh(self, refresh_token: Optional[str]) -> AuthSession:
        """Mint a new access token from a valid refresh token.

        The account is re-read so the new token carries its current role and
        contact. Raises MalformedToken / ExpiredToken for a bad token,
        InvalidCredentials when the account no longer exists and
        AccountInactive when it has been deactivated since login.
        """
        claims = self.issuer.decode_refresh(refresh_token)
        account = self.verifier.accounts.get_by_id(claims.identity_id)
        if account is None:
            logger.warning("Refresh failed: account ID %s no longer exists", claims.identity_id)
            raise InvalidCredentials("Invalid or expired refresh token.")
        if not account.is_active:
            logger.warning("Refresh failed: account ID %s is inactive", account.id)
            raise AccountInactive()
        logger.info("Token refreshed for account ID: %s", account.id)
        return self._session_for(account, refresh_token=refresh_token)

    def verify_registration(self, contact: str, code: str) -> Account:
        return self.verifier.verify_registration(contact, code)
