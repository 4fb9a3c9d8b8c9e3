"""
auth/reclaim.py -- Periodic deletion of expired challenges and passcodes.

sweep_expired() is one pass; reclaim_loop() repeats it forever on a fixed
interval and is started/cancelled by the API lifespan. Each pass runs in a
worker thread so the database round-trips never block the event loop.

A sweep can race with consumption harmlessly: a row is only deleted once its
expiry has passed, and consumption re-checks expiry in the same statement
that flips the used flag.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from auth.challenges import ChallengeStore
from auth.passcodes import PasscodeStore

logger = logging.getLogger("credgate.reclaim")


def sweep_expired(
    challenges: ChallengeStore,
    passcodes: PasscodeStore,
    now: Optional[float] = None,
) -> dict[str, int]:
    """Delete expired rows from both stores. Failures are logged, not raised.

    Returns the number of rows removed per store; a store whose delete failed
    reports -1.
    """
    removed: dict[str, int] = {}
    for name, store in (("challenges", challenges), ("passcodes", passcodes)):
        try:
            removed[name] = store.reclaim(now)
        except Exception:
            logger.exception("Reclamation of expired %s failed", name)
            removed[name] = -1
    logger.debug("Reclaimed expired records: %s", removed)
    return removed


async def reclaim_loop(challenges: ChallengeStore, passcodes: PasscodeStore, interval_seconds: float) -> None:
    """Sweep every interval_seconds until cancelled.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        await asyncio.to_thread(sweep_expired, challenges, passcodes)
