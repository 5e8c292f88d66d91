"""
Background scheduler for pending task reconciliation.

- Uses APScheduler BackgroundScheduler (in-process).
- Interval (minutes) comes from settings.RECONCILE_INTERVAL_MIN; the job is
  only started when settings.RECONCILE_SCHED_ENABLED is true.
- The scheduler reference is kept on `app.state.scheduler`.
- Only one reconciliation runs at a time (coalesce=True, max_instances=1).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI

from ..config import settings
from ..db import get_sessionmaker
from ..services.reconcile import Reconciler, ReconcileReport
from ..services.server import ServerManager

log = logging.getLogger(__name__)

JOB_ID = "search-api-reconcile"


def start_scheduler(app: FastAPI) -> Optional[BackgroundScheduler]:
    """
    Start the reconciliation job if enabled. Safe to call more than once;
    an existing `app.state.scheduler` is returned unchanged.
    """
    if not settings.reconcile_enabled:
        log.info(
            "Reconciliation scheduler disabled (RECONCILE_SCHED_ENABLED=%s, RECONCILE_INTERVAL_MIN=%s).",
            settings.RECONCILE_SCHED_ENABLED,
            settings.RECONCILE_INTERVAL_MIN,
        )
        return None
    interval_min = settings.RECONCILE_INTERVAL_MIN

    existing = getattr(app.state, "scheduler", None)
    if existing is not None:
        log.debug("Scheduler already present; skipping start.")
        return existing

    scheduler = BackgroundScheduler(
        timezone=timezone.utc,
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 120,
        },
    )

    def _reconcile_job() -> None:
        try:
            run_reconcile_cycle()
        except Exception:
            log.exception("Unhandled error during scheduled reconciliation.")

    next_at = datetime.now(tz=timezone.utc) + timedelta(seconds=15)
    scheduler.add_job(
        _reconcile_job,
        trigger=IntervalTrigger(minutes=interval_min, jitter=30, timezone=timezone.utc),
        id=JOB_ID,
        name="Search API pending task reconciliation",
        replace_existing=True,
        next_run_time=next_at,
    )
    scheduler.start()
    app.state.scheduler = scheduler
    log.info("Reconciliation scheduler started: every %s min (first run at %s).", interval_min, next_at.isoformat())
    return scheduler


def stop_scheduler(app: FastAPI) -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is None:
        return
    try:
        scheduler.shutdown(wait=False)
        log.info("Reconciliation scheduler stopped.")
    finally:
        app.state.scheduler = None


def run_reconcile_cycle() -> ReconcileReport:
    """One pass over every pending task, in its own session."""
    session = get_sessionmaker()()
    try:
        report = Reconciler(ServerManager(session)).execute_pending()
    finally:
        session.close()
    if report.executed or report.stale or report.failed:
        log.info(
            "Reconciliation pass: executed=%d stale=%d failed=%d remaining=%d.",
            report.executed,
            report.stale,
            report.failed,
            report.remaining,
        )
    return report
