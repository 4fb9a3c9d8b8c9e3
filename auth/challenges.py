"""
auth/challenges.py -- CAPTCHA challenge lifecycle on SQLAlchemy Core.

A challenge is a short code the caller types back. It is shown in plaintext
(no rendered image) and exists only to make scripted login attempts pay for
an extra round-trip.

Lifecycle:
  issue()   -- random 6-char text, used=False, expires_at = now + TTL
  check()   -- read-only validity test (id, text case-insensitive, unused, unexpired)
  consume() -- one conditional UPDATE; only the call that flips used=1 wins
  reclaim() -- range delete of expired rows, run by the background sweep

check() and consume() are separate so a caller can validate before committing
to a multi-step flow. consume() is never a read-then-write: two concurrent
requests racing on the same challenge get rowcount 1 and rowcount 0.

Rows are not deleted on consumption; the reclamation sweep removes them after
expiry.
"""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from random import Random
from typing import Callable, Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, and_
from sqlalchemy.engine import Engine

from auth.models import Challenge
from auth.store import make_engine
from core.config import get_settings

logger = logging.getLogger("credgate.captcha")

# No 0/O, 1/I or L: each character is readable at a glance.
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CHALLENGE_LENGTH = 6

_metadata = MetaData()

_challenges = Table(
    "captcha_challenges",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("challenge_id", String(36), nullable=False, unique=True),
    Column("text", String(16), nullable=False),  # stored uppercase
    Column("is_used", Integer, nullable=False, server_default="0"),
    Column("origin", String(45)),
    Column("created_at", Float, nullable=False),  # epoch seconds
    Column("expires_at", Float, nullable=False, index=True),
)


class ChallengeStore:
    """Repository and policy for CAPTCHA challenges.

    rng and clock are injectable: pass a seeded random.Random in tests and a
    fake clock to move time without sleeping. The default rng is a
    secrets.SystemRandom owned by this instance, never module-level state.
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        rng: Optional[Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self.engine: Engine = make_engine(db_url or settings.database_url)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.captcha_ttl_seconds
        self._rng = rng or secrets.SystemRandom()
        self._clock = clock
        _metadata.create_all(self.engine)

    def _generate_text(self) -> str:
        return "".join(self._rng.choice(ALPHABET) for _ in range(CHALLENGE_LENGTH))

    def issue(self, origin: Optional[str] = None) -> Challenge:
        """Create and persist a new challenge. The plaintext goes back to the caller."""
        now = self._clock()
        challenge = Challenge(
            challenge_id=str(uuid.uuid4()),
            text=self._generate_text(),
            created_at=now,
            expires_at=now + self.ttl_seconds,
            origin=origin,
        )
        with self.engine.connect() as conn:
            result = conn.execute(
                _challenges.insert().values(
                    challenge_id=challenge.challenge_id,
                    text=challenge.text,
                    is_used=0,
                    origin=origin,
                    created_at=challenge.created_at,
                    expires_at=challenge.expires_at,
                )
            )
            conn.commit()
            challenge.id = result.inserted_primary_key[0]
        logger.debug("CAPTCHA issued: %s", challenge.challenge_id)
        return challenge

    def _valid_clause(self, challenge_id: str, text: str, now: float):
        return and_(
            _challenges.c.challenge_id == challenge_id,
            _challenges.c.text == text.strip().upper(),
            _challenges.c.is_used == 0,
            _challenges.c.expires_at > now,
        )

    def check(self, challenge_id: Optional[str], text: Optional[str]) -> bool:
        """Return True iff the challenge exists, matches, is unused and unexpired."""
        if not challenge_id or not text:
            return False
        with self.engine.connect() as conn:
            row = conn.execute(
                _challenges.select().where(self._valid_clause(challenge_id, text, self._clock()))
            ).fetchone()
        return row is not None

    def consume(self, challenge_id: Optional[str], text: Optional[str]) -> bool:
        """Flip used=1 on the matching valid challenge.

        Returns True only for the call that performed the flip. A missing,
        expired or already-used challenge is a no-op returning False.
        """
        if not challenge_id or not text:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _challenges.update()
                .where(self._valid_clause(challenge_id, text, self._clock()))
                .values(is_used=1)
            )
            conn.commit()
        consumed = result.rowcount == 1
        if consumed:
            logger.debug("CAPTCHA consumed: %s", challenge_id)
        return consumed

    def get(self, challenge_id: str) -> Optional[Challenge]:
        """Fetch a challenge regardless of state. Used by tests and diagnostics."""
        with self.engine.connect() as conn:
            row = conn.execute(_challenges.select().where(_challenges.c.challenge_id == challenge_id)).fetchone()
        return _row_to_challenge(row) if row is not None else None

    def reclaim(self, now: Optional[float] = None) -> int:
        """Delete challenges whose expiry is before now. Returns rows removed."""
        cutoff = self._clock() if now is None else now
        with self.engine.connect() as conn:
            result = conn.execute(_challenges.delete().where(_challenges.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


def _row_to_challenge(row) -> Challenge:
    return Challenge(
        id=row.id,
        challenge_id=row.challenge_id,
        text=row.text,
        is_used=bool(row.is_used),
        origin=row.origin,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
