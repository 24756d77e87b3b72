"""
APScheduler jobs for the HTTP process:

  - Every HEARTBEAT_SECONDS: write an SSE comment to every open push
    channel so proxies do not close idle subscriptions.

The scheduling engine itself runs no timers.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from carebook import notifier
from carebook.config import settings

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def _push_heartbeat() -> None:
    notifier.heartbeat()


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
        _scheduler.add_job(
            _push_heartbeat,
            IntervalTrigger(seconds=settings.heartbeat_seconds),
            id="push_heartbeat",
            replace_existing=True,
        )
    return _scheduler
