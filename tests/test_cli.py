"""
tests/test_cli.py -- Admin command line (main.py).
"""

from __future__ import annotations

import pytest

import main
from auth.challenges import ChallengeStore
from auth.models import Role
from auth.store import AccountStore
from auth.tokens import verify_password


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def test_create_account(db_url, capsys):
    rc = main.main(
        [
            "--db",
            db_url,
            "create-account",
            "9876543210",
            "--role",
            "OPERATOR",
            "--email",
            "Ops@Example.com",
            "--password",
            "s3cret",
            "--active",
        ]
    )
    assert rc == 0
    assert "98****10" in capsys.readouterr().out

    store = AccountStore(db_url)
    account = store.get_by_mobile("9876543210")
    store.close()
    assert account.role == Role.OPERATOR
    assert account.email == "ops@example.com"
    assert account.is_active is True
    assert verify_password("s3cret", account.hashed_password)


def test_create_account_prompts_for_password(db_url, monkeypatch):
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": "")
    assert main.main(["--db", db_url, "create-account", "9876543210"]) == 0

    store = AccountStore(db_url)
    account = store.get_by_mobile("9876543210")
    store.close()
    assert account.hashed_password is None
    assert account.is_active is False


def test_create_account_rejects_bad_mobile(db_url, capsys):
    assert main.main(["--db", db_url, "create-account", "12345", "--password", "x"]) == 1
    assert "not a valid mobile number" in capsys.readouterr().out


def test_create_account_duplicate(db_url, capsys):
    args = ["--db", db_url, "create-account", "9876543210", "--password", "x"]
    assert main.main(args) == 0
    assert main.main(args) == 1
    assert "already exists" in capsys.readouterr().out


def test_sweep(db_url, capsys):
    store = ChallengeStore(db_url, ttl_seconds=600, clock=lambda: 0.0)
    store.issue()
    store.close()

    assert main.main(["--db", db_url, "sweep"]) == 0
    out = capsys.readouterr().out
    assert "challenges: 1 expired record(s) removed" in out
    assert "passcodes: 0 expired record(s) removed" in out
