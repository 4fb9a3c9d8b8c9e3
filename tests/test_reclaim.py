"""
tests/test_reclaim.py -- Background reclamation of expired challenges and passcodes.

Covers:
  - sweep_expired() deletes expired rows from both stores and reports counts
  - a failing store is logged and reported as -1 without stopping the other
  - reclaim_loop() sweeps on its interval and stops cleanly when cancelled
"""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from auth.models import Role
from auth.reclaim import reclaim_loop, sweep_expired


def test_sweep_removes_expired_rows(stores, clock):
    stores.captcha()
    stores.passcodes.add("9876543210", Role.CITIZEN, "111111", ttl_seconds=300)
    clock.advance(700)
    live_id, _ = stores.captcha()

    removed = sweep_expired(stores.challenges, stores.passcodes)

    assert removed == {"challenges": 1, "passcodes": 1}
    assert stores.challenges.get(live_id) is not None


def test_sweep_with_explicit_now(stores):
    stores.captcha()
    assert sweep_expired(stores.challenges, stores.passcodes, now=0) == {"challenges": 0, "passcodes": 0}


def test_sweep_survives_store_failure(stores, clock, caplog):
    broken = MagicMock()
    broken.reclaim.side_effect = OperationalError("DELETE", {}, Exception("database is locked"))
    stores.passcodes.add("9876543210", Role.CITIZEN, "111111", ttl_seconds=300)
    clock.advance(301)

    with caplog.at_level(logging.ERROR, logger="credgate.reclaim"):
        removed = sweep_expired(broken, stores.passcodes)

    assert removed == {"challenges": -1, "passcodes": 1}
    assert "Reclamation of expired challenges failed" in caplog.text


def test_reclaim_loop_runs_until_cancelled():
    challenges = MagicMock()
    passcodes = MagicMock()
    challenges.reclaim.return_value = 0
    passcodes.reclaim.return_value = 0

    async def run() -> None:
        task = asyncio.create_task(reclaim_loop(challenges, passcodes, interval_seconds=0.01))
        await asyncio.sleep(0.1)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        assert task.cancelled()

    asyncio.run(run())
    assert challenges.reclaim.call_count >= 1
    assert passcodes.reclaim.call_count >= 1
