"""
Background scheduler for the extraction worker pool and maintenance jobs.

Uses APScheduler's thread-based scheduler: extraction calls and the Supabase
client are blocking, and every worker needs its own thread so a slow
extraction never holds up the others.

Jobs:
  - extraction_worker_{i}   drain claimable handbooks (one job per worker)
  - handbook_lease_reaper   return expired leases to the queue
  - campus_content_refresh  regenerate stale campus content (optional)
"""

import logging
from datetime import timezone

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_settings
from app.core.database import get_supabase_admin_client
from app.background.campus_refresh import refresh_stale_campus_content
from app.background.extraction_worker import run_extraction_worker
from app.background.lease_reaper import reclaim_expired_leases

logger = logging.getLogger(__name__)

# Singleton scheduler instance
scheduler = BackgroundScheduler(timezone=timezone.utc)

WORKER_JOB_PREFIX = "extraction_worker_"
REAPER_JOB_ID = "handbook_lease_reaper"
CAMPUS_REFRESH_JOB_ID = "campus_content_refresh"


def register_jobs(target: BackgroundScheduler | None = None) -> BackgroundScheduler:
    """Add (or replace) every background job on ``target``."""
    settings = get_settings()
    target = target or scheduler

    for i in range(settings.EXTRACTION_WORKER_COUNT):
        target.add_job(
            run_extraction_worker,
            "interval",
            seconds=settings.EXTRACTION_POLL_INTERVAL_SECONDS,
            args=[f"extraction-worker-{i}"],
            id=f"{WORKER_JOB_PREFIX}{i}",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    target.add_job(
        reclaim_expired_leases,
        "interval",
        seconds=settings.HANDBOOK_REAPER_INTERVAL_SECONDS,
        id=REAPER_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if settings.CAMPUS_REFRESH_INTERVAL_HOURS > 0:
        target.add_job(
            refresh_stale_campus_content,
            "interval",
            hours=settings.CAMPUS_REFRESH_INTERVAL_HOURS,
            id=CAMPUS_REFRESH_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
    return target


def init_scheduler():
    """Configure and start the scheduler.

    Called during FastAPI lifespan startup. Raises ValueError when no
    service key is configured, before any job is registered.
    """
    get_supabase_admin_client()
    settings = get_settings()
    # One thread per worker plus reaper and refresh
    scheduler.configure(
        executors={"default": ThreadPoolExecutor(settings.EXTRACTION_WORKER_COUNT + 2)},
    )
    register_jobs(scheduler)
    scheduler.start()

    jobs = scheduler.get_jobs()
    logger.info(f"📅 Scheduler started with {len(jobs)} job(s):")
    for job in jobs:
        logger.info(f"   - {job.id}: next run at {job.next_run_time}")


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("📅 Scheduler shut down.")
