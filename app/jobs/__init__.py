"""
Background Jobs Module

Handles scheduled tasks for:
- Releasing stale payout locks
- Ledger counter reconciliation
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from app.jobs.ledger_jobs import release_stale_payout_locks, reconcile_ledger

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "release_stale_payout_locks",
    "reconcile_ledger",
]
