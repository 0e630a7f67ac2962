"""
Periodic expiry sweep. Reads and reservations already sweep their own date
lazily; this job only keeps idle dates fresh and gets expiry notifications
out without waiting for traffic.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app import settings
from app.cache import invalidate_slots_cache
from app.deps import NotificationsClient, get_notifications_client, get_sweeper
from app.sweeper import ExpirySweeper

SWEEP_JOB_ID = "expired_holds_sweep"


async def run_sweep_job(
    sweeper: ExpirySweeper | None = None,
    notifications: NotificationsClient | None = None,
) -> int:
    sweeper = sweeper or get_sweeper()
    notifications = notifications or get_notifications_client()
    try:
        swept = await sweeper.sweep_all()
    except Exception:
        logger.exception("Expiry sweep failed; next tick will retry")
        return 0

    events = [e for date_events in swept.values() for e in date_events]
    if events:
        await invalidate_slots_cache(*swept)
        await notifications.publish(events)
    return len(events)


def build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_sweep_job,
        "interval",
        seconds=settings.SWEEP_INTERVAL_SECONDS,
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
