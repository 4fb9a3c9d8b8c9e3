"""
auth/verifier.py -- Credential verification for password and OTP logins.

Each flow is a short linear sequence with an early exit at every step. No
state survives between calls.

Password flow:
  1. CAPTCHA valid            else InvalidCaptcha
  2. consume CAPTCHA          (losing a consume race is InvalidCaptcha too)
  3. account by username      else InvalidCredentials
  4. role matches             else InvalidCredentials
  5. account active           else AccountInactive
  6. password verifies        else InvalidCredentials

OTP flow:
  1-2. CAPTCHA as above
  3. passcode valid for (contact, code, role)  else InvalidOrExpiredOtp
  4. account by contact       else InvalidCredentials
  5. role matches             else InvalidCredentials
  6. account active           else AccountInactive
  7. consume passcode         (losing the race is InvalidOrExpiredOtp)

The CAPTCHA is checked and consumed before anything touches the account
store. "Unknown account", "wrong role" and "wrong secret" all surface as the
same InvalidCredentials so responses do not reveal which accounts exist.
AccountInactive is distinct: the caller needs to know to verify the mobile
number.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from auth.challenges import ChallengeStore
from auth.models import Account, Role
from auth.passcodes import PasscodeStore
from auth.store import AccountStore
from auth.tokens import equalize_timing, verify_password
from core.contacts import mask_contact
from core.errors import AccountInactive, AccountNotFound, InvalidCaptcha, InvalidCredentials, InvalidOrExpiredOtp

logger = logging.getLogger("credgate.verifier")


class CredentialVerifier:
    def __init__(
        self,
        challenges: ChallengeStore,
        passcodes: PasscodeStore,
        accounts: AccountStore,
        password_verify: Callable[[str, str], bool] = verify_password,
    ) -> None:
        self.challenges = challenges
        self.passcodes = passcodes
        self.accounts = accounts
        self._password_verify = password_verify

    def _require_captcha(self, captcha_id: Optional[str], captcha_text: Optional[str]) -> None:
        if not self.challenges.check(captcha_id, captcha_text):
            logger.warning("Login failed: invalid CAPTCHA")
            raise InvalidCaptcha()
        if not self.challenges.consume(captcha_id, captcha_text):
            logger.warning("Login failed: CAPTCHA consumed concurrently")
            raise InvalidCaptcha()

    def _require_usable(self, account: Optional[Account], role: Role, who: str) -> Account:
        if account is None:
            logger.warning("Login failed: no account for %s", who)
            raise InvalidCredentials()
        if account.role != role:
            logger.warning("Login failed: role mismatch for account ID: %s", account.id)
            raise InvalidCredentials()
        if not account.is_active:
            logger.warning("Login failed: inactive account ID: %s", account.id)
            raise AccountInactive()
        return account

    def verify_password_login(
        self,
        username: str,
        password: str,
        captcha_id: Optional[str],
        captcha_text: Optional[str],
        role: Role,
    ) -> Account:
        """Run the password flow. Returns the authenticated Account."""
        role = Role(role)
        self._require_captcha(captcha_id, captcha_text)

        username = (username or "").strip()
        account = self.accounts.find_by_contact(username) if username else None
        if account is None or not account.hashed_password:
            # Equalize timing -- do NOT return before running bcrypt.
            equalize_timing(password or "")
            account = None
        account = self._require_usable(account, role, mask_contact(username))

        if not self._password_verify(password or "", account.hashed_password):
            logger.warning("Login failed: invalid password for account ID: %s", account.id)
            raise InvalidCredentials()

        logger.info("Password verified for account ID: %s", account.id)
        return account

    def verify_otp_login(
        self,
        contact: str,
        code: str,
        captcha_id: Optional[str],
        captcha_text: Optional[str],
        role: Role,
    ) -> Account:
        """Run the OTP flow. Returns the authenticated Account."""
        role = Role(role)
        self._require_captcha(captcha_id, captcha_text)

        contact = (contact or "").strip()
        code = (code or "").strip()
        if not self.passcodes.verify(contact, code, role):
            logger.warning("OTP login failed: invalid OTP for %s", mask_contact(contact))
            raise InvalidOrExpiredOtp()

        account = self._require_usable(self.accounts.find_by_contact(contact), role, mask_contact(contact))

        if not self.passcodes.consume(contact, code, role):
            logger.warning("OTP login failed: OTP consumed concurrently for %s", mask_contact(contact))
            raise InvalidOrExpiredOtp()

        logger.info("OTP verified for account ID: %s", account.id)
        return account

    def verify_registration(self, contact: str, code: str) -> Account:
        """Consume a registration passcode and activate the account.

        Raises AccountNotFound when no account has this mobile number and
        InvalidOrExpiredOtp when the passcode does not check out.
        """
        contact = (contact or "").strip()
        code = (code or "").strip()
        account = self.accounts.get_by_mobile(contact)
        if account is None:
            logger.warning("Registration verification failed: no account for %s", mask_contact(contact))
            raise AccountNotFound()
        if not self.passcodes.consume(contact, code, account.role):
            logger.warning("Registration verification failed: invalid OTP for %s", mask_contact(contact))
            raise InvalidOrExpiredOtp()

        self.accounts.activate(account.id)
        account.is_active = True
        account.is_mobile_verified = True
        logger.info("Mobile number verified and account activated for account ID: %s", account.id)
        return account
