"""
auth/passcodes.py -- One-time passcode (OTP) lifecycle.

PasscodeStore is the repository: rows keyed by (contact, role) with a numeric
code, used flag and expiry. PasscodePolicy decides whether a passcode may be
issued at all (contact format, account state, optional rate limit), stores it
and hands it to the notifier.

Selection rule: several unexpired passcodes can coexist for one contact -- a
new issuance does not invalidate earlier ones. verify() and consume() always
act on the most recently created row matching (contact, code, role) that is
unused and unexpired.

consume() is one UPDATE whose WHERE clause re-checks is_used and expiry, so
concurrent consumers of the same row cannot both succeed.
"""

from __future__ import annotations

import logging
import secrets
import time
from random import Random
from typing import Callable, Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, and_, func, select
from sqlalchemy.engine import Engine

from auth.models import Passcode, Role
from auth.notify import NotificationSink
from auth.store import AccountStore, make_engine
from core.config import Settings, get_settings
from core.contacts import is_mobile, mask_contact
from core.errors import AccountInactive, AccountNotFound, InvalidContact, RoleMismatch, TooManyRequests

logger = logging.getLogger("credgate.otp")

_metadata = MetaData()

_passcodes = Table(
    "otp_passcodes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("contact", String(10), nullable=False, index=True),
    Column("role", String(20), nullable=False),
    Column("code", String(10), nullable=False),
    Column("is_used", Integer, nullable=False, server_default="0"),
    Column("created_at", Float, nullable=False),  # epoch seconds
    Column("expires_at", Float, nullable=False, index=True),
)


class PasscodeStore:
    """Repository for Passcode rows."""

    def __init__(self, db_url: Optional[str] = None, clock: Callable[[], float] = time.time) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        self._clock = clock
        _metadata.create_all(self.engine)

    def add(self, contact: str, role: Role, code: str, ttl_seconds: int) -> Passcode:
        now = self._clock()
        passcode = Passcode(
            contact=contact,
            role=Role(role),
            code=code,
            created_at=now,
            expires_at=now + ttl_seconds,
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _passcodes.insert().values(
                    contact=passcode.contact,
                    role=passcode.role.value,
                    code=passcode.code,
                    is_used=0,
                    created_at=passcode.created_at,
                    expires_at=passcode.expires_at,
                )
            )
            conn.commit()
            passcode.id = result.inserted_primary_key[0]
        return passcode

    @staticmethod
    def _valid_clause(table, contact: str, code: str, role: Role, now: float):
        return and_(
            table.c.contact == contact.strip(),
            table.c.code == code.strip(),
            table.c.role == Role(role).value,
            table.c.is_used == 0,
            table.c.expires_at > now,
        )

    def find_valid(self, contact: str, code: str, role: Role) -> Optional[Passcode]:
        """Return the most recent matching unused unexpired passcode, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _passcodes.select()
                .where(self._valid_clause(_passcodes, contact, code, role, self._clock()))
                .order_by(_passcodes.c.created_at.desc(), _passcodes.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_passcode(row) if row is not None else None

    def verify(self, contact: Optional[str], code: Optional[str], role: Role) -> bool:
        """Read-only: True iff a valid passcode matches contact, code and role."""
        if not contact or not code:
            return False
        return self.find_valid(contact, code, role) is not None

    def consume(self, contact: Optional[str], code: Optional[str], role: Role) -> bool:
        """Mark the most recent matching valid passcode used.

        Returns True only for the call that flipped the flag; False (no-op) when
        nothing valid matches, including when a concurrent call got there first.
        """
        if not contact or not code:
            return False
        now = self._clock()
        # Alias so the subquery keeps its own FROM instead of correlating to the UPDATE target.
        candidates = _passcodes.alias("candidates")
        latest_id = (
            select(candidates.c.id)
            .where(self._valid_clause(candidates, contact, code, role, now))
            .order_by(candidates.c.created_at.desc(), candidates.c.id.desc())
            .limit(1)
            .scalar_subquery()
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _passcodes.update()
                .where(
                    and_(
                        _passcodes.c.id == latest_id,
                        _passcodes.c.is_used == 0,
                        _passcodes.c.expires_at > now,
                    )
                )
                .values(is_used=1)
            )
            conn.commit()
        consumed = result.rowcount == 1
        if consumed:
            logger.debug("OTP marked as used for %s", mask_contact(contact))
        return consumed

    def count_recent(self, contact: str, role: Role, since: float) -> int:
        """Count passcodes issued to (contact, role) after `since` (epoch seconds)."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_passcodes)
                .where(
                    and_(
                        _passcodes.c.contact == contact,
                        _passcodes.c.role == Role(role).value,
                        _passcodes.c.created_at > since,
                    )
                )
            ).scalar()
        return result or 0

    def reclaim(self, now: Optional[float] = None) -> int:
        """Delete passcodes whose expiry is before now. Returns rows removed."""
        cutoff = self._clock() if now is None else now
        with self.engine.connect() as conn:
            result = conn.execute(_passcodes.delete().where(_passcodes.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


class PasscodePolicy:
    """Issuance rules for passcodes.

    allow_inactive=True is the registration-verification path: the account may
    be inactive, or not yet visible at all because the registering transaction
    has not committed. In that case the passcode is stored anyway and becomes
    usable once the account exists.
    """

    def __init__(
        self,
        store: PasscodeStore,
        accounts: AccountStore,
        notifier: NotificationSink,
        settings: Optional[Settings] = None,
        rng: Optional[Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.accounts = accounts
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._rng = rng or secrets.SystemRandom()
        self._clock = clock

    @property
    def ttl_minutes(self) -> int:
        return max(1, self.settings.otp_ttl_seconds // 60)

    def generate_code(self) -> str:
        """Uniform random code of otp_length digits with no leading zero."""
        length = self.settings.otp_length
        return str(self._rng.randint(10 ** (length - 1), 10**length - 1))

    def _check_rate_limit(self, contact: str, role: Role) -> None:
        if not self.settings.otp_rate_limit_enabled:
            return
        since = self._clock() - self.settings.otp_rate_limit_window_seconds
        recent = self.store.count_recent(contact, role, since)
        if recent >= self.settings.otp_rate_limit_max:
            logger.warning("OTP rate limit exceeded for %s (role=%s)", mask_contact(contact), role.value)
            raise TooManyRequests()

    def issue(self, contact: Optional[str], role: Role, allow_inactive: bool = False) -> str:
        """Issue a passcode for (contact, role) and queue its delivery.

        Raises:
            InvalidContact:   contact is not a 10-digit mobile number starting 6-9.
            TooManyRequests:  rate limiting is enabled and the window is full.
            AccountNotFound:  no account and allow_inactive is False.
            RoleMismatch:     the account has a different role.
            AccountInactive:  the account is inactive and allow_inactive is False.
        """
        mobile = (contact or "").strip()
        if not is_mobile(mobile):
            raise InvalidContact()
        role = Role(role)

        self._check_rate_limit(mobile, role)

        account = self.accounts.get_by_mobile(mobile)
        if account is None:
            if not allow_inactive:
                logger.warning("OTP request failed: no account for %s", mask_contact(mobile))
                raise AccountNotFound("Mobile number not registered.")
            logger.warning(
                "No account yet for registration verification of %s; issuing anyway",
                mask_contact(mobile),
            )
        else:
            if account.role != role:
                logger.warning("OTP request failed: role mismatch for %s", mask_contact(mobile))
                raise RoleMismatch()
            if not allow_inactive and not account.is_active:
                logger.warning("OTP request failed: inactive account for %s", mask_contact(mobile))
                raise AccountInactive("Account is inactive. Please contact support.")

        code = self.generate_code()
        self.store.add(mobile, role, code, self.settings.otp_ttl_seconds)
        logger.info(
            "OTP issued for %s (role=%s, purpose=%s)",
            mask_contact(mobile),
            role.value,
            "registration" if allow_inactive else "login",
        )

        message = f"Your credgate OTP is: {code}. Valid for {self.ttl_minutes} minutes."
        try:
            self.notifier.send(mobile, message)
        except Exception:
            # Delivery is best-effort; the stored passcode stays valid.
            logger.exception("Could not hand OTP to notifier for %s", mask_contact(mobile))
        return code


def _row_to_passcode(row) -> Passcode:
    return Passcode(
        id=row.id,
        contact=row.contact,
        role=Role(row.role),
        code=row.code,
        is_used=bool(row.is_used),
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
