"""
tests/test_verifier_session.py -- Login flows through CredentialVerifier and SessionCoordinator.

Covers:
  - password login by mobile and by email (case-insensitive)
  - CAPTCHA is required and consumed even when the credentials are wrong
  - unknown account, wrong role and wrong password are indistinguishable
  - inactive account is reported distinctly and gets no tokens
  - OTP login consumes the passcode
  - refresh mints a later access token and echoes the refresh token
  - registration verification activates the account
"""

from __future__ import annotations

import pytest

from auth.models import Role
from core.errors import (
    AccountInactive,
    AccountNotFound,
    ExpiredToken,
    InvalidCaptcha,
    InvalidCredentials,
    InvalidOrExpiredOtp,
    MalformedToken,
)

MOBILE = "9876543210"
PASSWORD = "correct horse"


class TestPasswordLogin:
    def test_success_by_mobile(self, stores):
        account = stores.add_account(MOBILE, password=PASSWORD)
        session = stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)

        assert session.identity_id == account.id
        assert session.contact == MOBILE
        assert session.role == Role.CITIZEN
        assert session.expires_in == 3600
        claims = stores.issuer.decode_access(session.access_token)
        assert claims.identity_id == account.id
        assert stores.issuer.verify_refresh(session.refresh_token) is True

    def test_success_by_email_any_case(self, stores):
        stores.add_account(MOBILE, password=PASSWORD, email="Asha@Example.com")
        session = stores.sessions.login_with_password(
            "  ASHA@example.COM ", PASSWORD, *stores.captcha(), Role.CITIZEN
        )
        assert session.email == "asha@example.com"

    def test_captcha_consumed_on_success(self, stores):
        stores.add_account(MOBILE, password=PASSWORD)
        cid, text = stores.captcha()
        stores.sessions.login_with_password(MOBILE, PASSWORD, cid, text, Role.CITIZEN)
        with pytest.raises(InvalidCaptcha):
            stores.sessions.login_with_password(MOBILE, PASSWORD, cid, text, Role.CITIZEN)

    def test_captcha_consumed_on_wrong_password(self, stores):
        stores.add_account(MOBILE, password=PASSWORD)
        cid, text = stores.captcha()
        with pytest.raises(InvalidCredentials):
            stores.sessions.login_with_password(MOBILE, "wrong", cid, text, Role.CITIZEN)
        assert stores.challenges.check(cid, text) is False

    def test_bad_captcha_checked_first(self, stores):
        # Even a non-existent account reports the CAPTCHA failure.
        with pytest.raises(InvalidCaptcha):
            stores.sessions.login_with_password("9000000000", "x", "nope", "ABCDEF", Role.CITIZEN)

    def test_failures_are_indistinguishable(self, stores):
        stores.add_account(MOBILE, password=PASSWORD)
        errors = []
        for username, password, role in [
            ("9123456789", PASSWORD, Role.CITIZEN),  # unknown account
            (MOBILE, PASSWORD, Role.OPERATOR),  # wrong role
            (MOBILE, "wrong", Role.CITIZEN),  # wrong password
        ]:
            with pytest.raises(InvalidCredentials) as excinfo:
                stores.sessions.login_with_password(username, password, *stores.captcha(), role)
            errors.append((excinfo.value.code, excinfo.value.message))
        assert len(set(errors)) == 1

    def test_account_without_password(self, stores):
        stores.add_account(MOBILE, password=None)
        with pytest.raises(InvalidCredentials):
            stores.sessions.login_with_password(MOBILE, "anything", *stores.captcha(), Role.CITIZEN)

    def test_inactive_account_gets_no_tokens(self, stores):
        stores.add_account(MOBILE, password=PASSWORD, active=False)
        with pytest.raises(AccountInactive):
            stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)


class TestOtpLogin:
    def test_success_consumes_passcode(self, stores):
        account = stores.add_account(MOBILE)
        code = stores.policy.issue(MOBILE, Role.CITIZEN)

        session = stores.sessions.login_with_otp(MOBILE, code, *stores.captcha(), Role.CITIZEN)
        assert session.identity_id == account.id
        assert stores.passcodes.verify(MOBILE, code, Role.CITIZEN) is False

    def test_wrong_code(self, stores):
        stores.add_account(MOBILE)
        stores.policy.issue(MOBILE, Role.CITIZEN)
        with pytest.raises(InvalidOrExpiredOtp):
            stores.sessions.login_with_otp(MOBILE, "000000", *stores.captcha(), Role.CITIZEN)

    def test_expired_code(self, stores, clock):
        stores.add_account(MOBILE)
        code = stores.policy.issue(MOBILE, Role.CITIZEN)
        clock.advance(301)
        with pytest.raises(InvalidOrExpiredOtp):
            stores.sessions.login_with_otp(MOBILE, code, *stores.captcha(), Role.CITIZEN)

    def test_code_for_other_role_rejected(self, stores):
        stores.add_account(MOBILE, role=Role.OPERATOR)
        stores.passcodes.add(MOBILE, Role.CITIZEN, "482913", ttl_seconds=300)
        with pytest.raises(InvalidOrExpiredOtp):
            stores.sessions.login_with_otp(MOBILE, "482913", *stores.captcha(), Role.OPERATOR)

    def test_inactive_account_keeps_passcode(self, stores):
        stores.add_account(MOBILE, active=False)
        code = stores.policy.issue(MOBILE, Role.CITIZEN, allow_inactive=True)
        with pytest.raises(AccountInactive):
            stores.sessions.login_with_otp(MOBILE, code, *stores.captcha(), Role.CITIZEN)
        # Rejected before consumption, so it can still verify the registration.
        assert stores.passcodes.verify(MOBILE, code, Role.CITIZEN) is True


class TestRefresh:
    def test_refresh_returns_later_access_and_same_refresh(self, stores, clock):
        stores.add_account(MOBILE, password=PASSWORD)
        first = stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)

        clock.advance(60)
        second = stores.sessions.refresh(first.refresh_token)

        assert second.refresh_token == first.refresh_token
        assert second.access_token != first.access_token
        old_exp = stores.issuer.decode_access(first.access_token).expires_at
        new_exp = stores.issuer.decode_access(second.access_token).expires_at
        assert new_exp > old_exp

    def test_access_token_cannot_refresh(self, stores):
        stores.add_account(MOBILE, password=PASSWORD)
        session = stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)
        with pytest.raises(MalformedToken):
            stores.sessions.refresh(session.access_token)

    def test_expired_refresh(self, stores, clock):
        stores.add_account(MOBILE, password=PASSWORD)
        session = stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)
        clock.advance(604800)
        with pytest.raises(ExpiredToken):
            stores.sessions.refresh(session.refresh_token)

    def test_refresh_for_deactivated_account(self, stores):
        account = stores.add_account(MOBILE, password=PASSWORD)
        session = stores.sessions.login_with_password(MOBILE, PASSWORD, *stores.captcha(), Role.CITIZEN)
        stores.accounts.set_active(account.id, False)
        with pytest.raises(AccountInactive):
            stores.sessions.refresh(session.refresh_token)

    def test_refresh_for_vanished_account(self, stores):
        token = stores.issuer.mint_refresh(9999, MOBILE)
        with pytest.raises(InvalidCredentials):
            stores.sessions.refresh(token)


class TestRegistration:
    def test_verification_activates_account(self, stores):
        account = stores.add_account(MOBILE, active=False)
        code = stores.policy.issue(MOBILE, Role.CITIZEN, allow_inactive=True)

        verified = stores.sessions.verify_registration(MOBILE, code)
        assert verified.id == account.id
        stored = stores.accounts.get_by_id(account.id)
        assert stored.is_active is True
        assert stored.is_mobile_verified is True
        assert stores.passcodes.verify(MOBILE, code, Role.CITIZEN) is False

    def test_code_issued_before_account_is_usable(self, stores):
        code = stores.policy.issue(MOBILE, Role.CITIZEN, allow_inactive=True)
        stores.add_account(MOBILE, active=False)
        assert stores.sessions.verify_registration(MOBILE, code).is_active is True

    def test_unknown_account(self, stores):
        with pytest.raises(AccountNotFound):
            stores.sessions.verify_registration(MOBILE, "123456")

    def test_wrong_code(self, stores):
        stores.add_account(MOBILE, active=False)
        stores.policy.issue(MOBILE, Role.CITIZEN, allow_inactive=True)
        with pytest.raises(InvalidOrExpiredOtp):
            stores.sessions.verify_registration(MOBILE, "000000")
        assert stores.accounts.get_by_mobile(MOBILE).is_active is False
