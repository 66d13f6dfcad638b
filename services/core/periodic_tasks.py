"""
PERIODIC TASKS - Background jobs for priority maintenance
=========================================================

Scheduled tasks:
- Purge soft-deleted priorities past the 24h grace window (hourly)

Author: Daily Priorities Core Team
Date: 2026-09-14
"""

from celery import Celery
from celery.schedules import crontab
import asyncio
import os

# Centralized logging
from logging_config import get_logger

logger = get_logger(__name__)

# Initialize Celery app
celery_app = Celery(
    'periodic_tasks',
    broker=os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
    backend=os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/1')
)


def _run_async(coro):
    """
    Run a coroutine from a sync Celery worker.
    Falls back to a helper thread when a loop is already running.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


# =============================================================================
# PERIODIC TASKS
# =============================================================================

@celery_app.task(name='purge_expired_priorities')
def purge_expired_priorities():
    """
    Permanently delete priorities soft-deleted more than 24h ago

    Runs every hour. Idempotent: overlapping runs purge each row once.
    """
    from database import AsyncSessionLocal
    from infrastructure.uow import create_uow_provider
    from purge_sweeper import PurgeSweeper

    logger.info("purge_expired_priorities_started")

    async def run_sweep():
        sweeper = PurgeSweeper(create_uow_provider(AsyncSessionLocal))
        report = await sweeper.sweep()
        return report.model_dump(mode="json")

    return _run_async(run_sweep())


# =============================================================================
# SCHEDULE CONFIGURATION
# =============================================================================

celery_app.conf.beat_schedule = {
    # Every hour: purge expired soft deletes
    'purge-expired-priorities-hourly': {
        'task': 'purge_expired_priorities',
        'schedule': crontab(minute=0),  # Every hour at XX:00
    },
}


# =============================================================================
# CONVENIENCE FUNCTION FOR MANUAL TRIGGER
# =============================================================================

def trigger_purge():
    """Manually enqueue a purge sweep"""
    purge_expired_priorities.delay()


if __name__ == '__main__':
    celery_app.start()
