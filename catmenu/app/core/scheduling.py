"""Scheduling helpers for the daily cache sweep."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
from typing import Callable

logger = logging.getLogger(__name__)


def seconds_until_next_midnight_utc(now: dt.datetime) -> int:
    """Return number of seconds until next UTC midnight."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt.timezone.utc)
    else:
        now = now.astimezone(dt.timezone.utc)
    tomorrow = (now + dt.timedelta(days=1)).date()
    next_midnight = dt.datetime.combine(tomorrow, dt.time(0, 0), tzinfo=dt.timezone.utc)
    delta = next_midnight - now
    return int(delta.total_seconds())


async def run_daily(job: Callable[[], int], *, name: str) -> None:
    """Run the blocking ``job`` every day at UTC midnight until cancelled.

    Failures are logged and the loop carries on with the next day.
    """

    while True:
        now = dt.datetime.now(dt.timezone.utc)
        await asyncio.sleep(max(seconds_until_next_midnight_utc(now), 1))
        try:
            result = await asyncio.to_thread(job)
        except Exception:
            logger.warning("%s failed", name, exc_info=True)
            continue
        logger.info(json.dumps({"event": f"{name} completed", "result": result}))


__all__ = ["run_daily", "seconds_until_next_midnight_utc"]
