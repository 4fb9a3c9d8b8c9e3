"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Services never touch SQL directly.

This is the account repository collaborator of the credential verifier:
find_by_contact() and get_by_id() are all the login flows need. Creation and
activation exist for the admin CLI and the registration-verification flow.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are stored lowercase so lookups are case-insensitive without
  relying on database collation.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import Account, Role
from core.config import get_settings
from core.contacts import is_mobile, normalize_contact

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mobile_number", String(10), nullable=False, unique=True),
    Column("email", String(255), unique=True),  # NULL allowed, lowercase
    Column("full_name", String(200)),
    Column("role", String(20), nullable=False, server_default=Role.CITIZEN.value),
    Column("hashed_password", Text),
    Column("is_active", Integer, nullable=False, server_default="0"),
    Column("is_mobile_verified", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently keep their
    "memory" journal mode.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite tweaks every auth store shares."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    # Bound parameters carry contacts and live OTP codes; keep them out of error text and logs.
    engine = create_engine(db_url, connect_args=connect_args, hide_parameters=True)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        store.create_account(Account(mobile_number="9876543210", role=Role.CITIZEN,
                                     hashed_password=hash_password("secret")))
        account = store.find_by_contact("9876543210")
        store.close()
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the mobile number or email is
        already registered.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    mobile_number=account.mobile_number.strip(),
                    email=account.email.strip().lower() if account.email else None,
                    full_name=account.full_name,
                    role=Role(account.role).value,
                    hashed_password=account.hashed_password,
                    is_active=1 if account.is_active else 0,
                    is_mobile_verified=1 if account.is_mobile_verified else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Optional[Account]:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_mobile(self, mobile_number: str) -> Optional[Account]:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.mobile_number == mobile_number)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Optional[Account]:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email.lower())).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_contact(self, contact: str) -> Optional[Account]:
        """Resolve a login username: mobile-number format first, email otherwise."""
        normalized = normalize_contact(contact)
        if is_mobile(normalized):
            return self.get_by_mobile(normalized)
        return self.get_by_email(normalized)

    def activate(self, account_id: int) -> bool:
        """Mark the account active and its mobile number verified.

        Returns True if a row was updated, False if account_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(is_active=1, is_mobile_verified=1)
            )
            conn.commit()
        return result.rowcount > 0

    def set_active(self, account_id: int, active: bool) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(is_active=1 if active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        mobile_number=row.mobile_number,
        email=row.email,
        full_name=row.full_name,
        role=Role(row.role),
        hashed_password=row.hashed_password,
        is_active=bool(row.is_active),
        is_mobile_verified=bool(row.is_mobile_verified),
        created_at=row.created_at,
    )
