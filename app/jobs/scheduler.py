"""
APScheduler Configuration

Background jobs for ledger maintenance, run in the application's event loop.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone='UTC'
)


async def run_job(job_name: str):
    """Run a ledger job by name, logging failures instead of killing the scheduler."""
    from app.jobs import ledger_jobs

    job = getattr(ledger_jobs, job_name)
    try:
        result = await job()
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.exception(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.PAYOUT_LOCK_SWEEP_MINUTES,
            args=['release_stale_payout_locks'],
            id='release_stale_payout_locks',
            name='Release Stale Payout Locks',
            replace_existing=True,
        )

        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.RECONCILE_INTERVAL_MINUTES,
            args=['reconcile_ledger'],
            id='reconcile_ledger',
            name='Reconcile Ledger Counters',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
