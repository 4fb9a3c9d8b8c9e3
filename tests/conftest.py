"""
tests/conftest.py -- Shared test fixtures for credgate unit and integration tests.

This module provides:
  - FakeClock: a settable epoch clock injected into stores and issuers
  - RecordingSink: a notifier that keeps every message instead of sending it
  - memory_url: a unique named shared-memory SQLite URL per test
  - stores / clock: unit-level fixtures wired to one in-memory database
  - api_client: TestClient with a patched lifespan for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import re
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from random import Random

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.challenges import ChallengeStore
from auth.models import Account, Role
from auth.passcodes import PasscodePolicy, PasscodeStore
from auth.session import SessionCoordinator
from auth.store import AccountStore
from auth.tokens import TokenIssuer, hash_password
from auth.verifier import CredentialVerifier
from core.config import get_settings

# Per-IP limits would trip across the many logins in one test module.
limiter.enabled = False

START = 1_700_000_000.0

_CODE_RE = re.compile(r"OTP is: (\d+)\.")


class FakeClock:
    """Callable epoch clock that only moves when told to."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """Notifier double: remembers (contact, message) pairs."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, contact: str, message: str) -> None:
        self.sent.append((contact, message))

    def last_code(self, contact: str) -> str:
        for sent_to, message in reversed(self.sent):
            if sent_to == contact:
                match = _CODE_RE.search(message)
                if match:
                    return match.group(1)
        raise AssertionError(f"no OTP was sent to {contact}")

    def close(self) -> None:
        pass


class FailingSink:
    def send(self, contact: str, message: str) -> None:
        raise ConnectionError("gateway down")


@dataclass
class Stores:
    """Everything a unit test needs, sharing one database and one clock."""

    accounts: AccountStore
    challenges: ChallengeStore
    passcodes: PasscodeStore
    policy: PasscodePolicy
    issuer: TokenIssuer
    verifier: CredentialVerifier
    sessions: SessionCoordinator
    sink: RecordingSink
    clock: FakeClock

    def add_account(
        self,
        mobile: str = "9876543210",
        role: Role = Role.CITIZEN,
        password: str | None = "correct horse",
        email: str | None = None,
        active: bool = True,
    ) -> Account:
        account = Account(
            mobile_number=mobile,
            role=role,
            email=email,
            hashed_password=hash_password(password) if password else None,
            is_active=active,
            is_mobile_verified=active,
        )
        account.id = self.accounts.create_account(account)
        return account

    def captcha(self) -> tuple[str, str]:
        challenge = self.challenges.issue(origin="127.0.0.1")
        return challenge.challenge_id, challenge.text


def memory_db_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def build_stores(db_url: str, clock: FakeClock, rng: Random | None = None) -> Stores:
    settings = get_settings()
    accounts = AccountStore(db_url)
    challenges = ChallengeStore(db_url, ttl_seconds=600, rng=rng, clock=clock)
    passcodes = PasscodeStore(db_url, clock=clock)
    sink = RecordingSink()
    policy = PasscodePolicy(passcodes, accounts, sink, settings, rng=rng, clock=clock)
    issuer = TokenIssuer("test-secret-key", access_ttl=3600, refresh_ttl=604800, clock=clock)
    verifier = CredentialVerifier(challenges, passcodes, accounts)
    sessions = SessionCoordinator(verifier, issuer)
    return Stores(accounts, challenges, passcodes, policy, issuer, verifier, sessions, sink, clock)


def close_stores(stores: Stores) -> None:
    stores.passcodes.close()
    stores.challenges.close()
    stores.accounts.close()


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_url() -> str:
    return memory_db_url(f"unit_{uuid.uuid4().hex}")


@pytest.fixture
def stores(memory_url: str, clock: FakeClock) -> Generator[Stores, None, None]:
    built = build_stores(memory_url, clock)
    yield built
    close_stores(built)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(stores: Stores):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see an
    isolated database and a recording notifier rather than the real ones.

    The reclaim_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.accounts = stores.accounts
        app.state.challenges = stores.challenges
        app.state.passcodes = stores.passcodes
        app.state.passcode_policy = stores.policy
        app.state.token_issuer = stores.issuer
        app.state.notifier = stores.sink
        app.state.sessions = stores.sessions
        app.state.reclaim_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.reclaim_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, Stores], None, None]:
    """Yield (client, stores) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers. The clock is
    a FakeClock frozen at START; tests that need expiry advance it.
    """
    built = build_stores(memory_db_url(f"api_{uuid.uuid4().hex}"), FakeClock())
    app.router.lifespan_context = _patch_lifespan(built)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, built

    close_stores(built)
