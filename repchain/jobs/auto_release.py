"""
Auto-release scheduler.

A client has REVIEW_PERIOD + GRACE_PERIOD (72h + 24h) after a submission to
approve, reject or ask for a revision. Past that, the scheduler settles the
job on its own: AUTO_RELEASED if the submission passes verification,
DISPUTED otherwise.

The same pass also flags submissions that have been waiting 24h, 48h and 60h
so the client can be nudged before the deadline.

    scheduler = AutoReleaseScheduler()
    handle = scheduler.start()     # runs once now, then every interval
    ...
    handle.stop()
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session, sessionmaker

from .. import crud, models
from ..clock import as_utc, utcnow
from ..config import settings
from ..database import SessionLocal
from ..errors import SchedulerItemError
from ..lifecycle import refresh_reputation
from ..models import JobStatus
from ..reputation import ReputationEngine
from .verification import BasicVerification, VerificationPolicy

logger = logging.getLogger(__name__)

JOB_ID = "auto_release"

ReviewWarningHook = Callable[[models.Job, int], None]


def log_review_warning(job: models.Job, hours_mark: int) -> None:
    logger.warning("Review warning for job %s: %sh since submission", job.job_id, hours_mark)


@dataclass
class AutoReleaseReport:
    released: list[str] = field(default_factory=list)
    disputed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)   # settled by someone else mid-run
    failed: list[str] = field(default_factory=list)
    warnings: list[tuple[str, int]] = field(default_factory=list)


class SchedulerHandle:
    """Owns a running background scheduler; `stop()` shuts it down."""

    def __init__(self, scheduler: BackgroundScheduler):
        self._scheduler = scheduler

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def stop(self, wait: bool = True) -> None:
        # wait=True lets an in-flight pass finish; every job update is its own commit
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Auto-release scheduler stopped")


class AutoReleaseScheduler:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        verification: VerificationPolicy | None = None,
        reputation: ReputationEngine | None = None,
        on_review_warning: ReviewWarningHook = log_review_warning,
        review_period: timedelta = timedelta(hours=settings.REVIEW_PERIOD_HOURS),
        grace_period: timedelta = timedelta(hours=settings.GRACE_PERIOD_HOURS),
        warning_marks: list[int] | None = None,
        interval: timedelta = timedelta(minutes=settings.AUTO_RELEASE_INTERVAL_MINUTES),
    ):
        self.session_factory = session_factory
        self.verification = verification or BasicVerification(timedelta(hours=settings.MIN_JOB_AGE_HOURS))
        self.reputation = reputation
        self.on_review_warning = on_review_warning
        self.release_after = review_period + grace_period
        self.warning_marks = sorted(warning_marks if warning_marks is not None else settings.REVIEW_WARNING_HOURS)
        self.interval = interval

    # ---------- one pass ----------

    def run_once(self, now: datetime | None = None) -> AutoReleaseReport:
        now = as_utc(now) if now else utcnow()
        report = AutoReleaseReport()
        db = self.session_factory()
        try:
            self.check_auto_release(db, now, report)
            self.send_review_warnings(db, now, report)
        finally:
            db.close()
        return report

    def check_auto_release(self, db: Session, now: datetime, report: AutoReleaseReport) -> None:
        jobs = crud.list_jobs_due_for_release(db, now - self.release_after)
        if not jobs:
            logger.debug("No jobs require auto-release")
            return

        logger.info("Found %d jobs past the review window", len(jobs))
        for job in jobs:
            job_id = job.job_id
            try:
                self._settle(db, job, now, report)
            except Exception as e:
                db.rollback()
                err = SchedulerItemError(job_id, e)
                logger.error("%s", err, exc_info=True)
                report.failed.append(job_id)

    def _settle(self, db: Session, job: models.Job, now: datetime, report: AutoReleaseReport) -> None:
        # guard against a stale row even though the query filtered on it
        if as_utc(job.submitted_at) > now - self.release_after:
            report.skipped.append(job.job_id)
            return

        result = self.verification.verify(job, now)
        if result.ok:
            moved = crud.transition_job(db, job, JobStatus.SUBMITTED, JobStatus.AUTO_RELEASED, reviewed_at=now)
            bucket, label = report.released, "Auto-released"
        else:
            moved = crud.transition_job(db, job, JobStatus.SUBMITTED, JobStatus.DISPUTED)
            bucket, label = report.disputed, f"Held for manual review ({result.reason})"

        if not moved:
            logger.info("Job %s settled elsewhere (now %s), skipping", job.job_id, job.status.value)
            report.skipped.append(job.job_id)
            return

        logger.info("%s: job %s", label, job.job_id)
        bucket.append(job.job_id)
        refresh_reputation(db, self.reputation, job.freelancer_id)

    def send_review_warnings(self, db: Session, now: datetime, report: AutoReleaseReport) -> None:
        fired: set[tuple[int, int]] = set()
        for job in crud.list_jobs_awaiting_review(db):
            hours_elapsed = (now - as_utc(job.submitted_at)) / timedelta(hours=1)
            for mark in self.warning_marks:
                if not (mark <= hours_elapsed < mark + 1) or (job.id, mark) in fired:
                    continue
                fired.add((job.id, mark))
                try:
                    self.on_review_warning(job, mark)
                except Exception:
                    logger.exception("Review warning hook failed for job %s", job.job_id)
                    continue
                report.warnings.append((job.job_id, mark))

    # ---------- background loop ----------

    def _tick(self) -> None:
        try:
            report = self.run_once()
        except Exception:
            logger.exception("Auto-release check failed")
            return
        if report.released or report.disputed or report.failed:
            logger.info(
                "Auto-release pass: %d released, %d disputed, %d failed",
                len(report.released), len(report.disputed), len(report.failed),
            )

    def start(self) -> SchedulerHandle:
        scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        scheduler.add_job(
            self._tick,
            IntervalTrigger(seconds=int(self.interval.total_seconds())),
            id=JOB_ID,
            name="Auto-release submitted jobs",
            next_run_time=datetime.now(timezone.utc),  # first pass right away
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Auto-release scheduler started (every %s)", self.interval)
        return SchedulerHandle(scheduler)

    @staticmethod
    def stop(handle: SchedulerHandle, wait: bool = True) -> None:
        handle.stop(wait=wait)
