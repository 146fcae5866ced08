"""
Job lifecycle: every status change a job can go through.

    OPEN -> IN_PROGRESS -> SUBMITTED -> COMPLETED
                 ^              |-----> DISPUTED
                 |______________|       (request_revision)
    OPEN -> CANCELLED
    SUBMITTED -> AUTO_RELEASED | DISPUTED  (scheduler only, see jobs.auto_release)

Each operation checks who is acting and what status the job is in, then
commits through `crud.transition_job`, which only writes if the row is still
in the status we read. Losing that race surfaces as PreconditionError.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from . import crud, models
from .clock import as_utc, utcnow
from .errors import AuthorizationError, NotFoundError, PreconditionError, ValidationError
from .models import LAMPORTS_PER_SOL, JobStatus
from .reputation import ReputationEngine
from .schemas import AuthContext, JobCreate, ReviewAction

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return f"JOB-{uuid.uuid4().hex[:8].upper()}"


def to_lamports(budget: Decimal | float | int | str) -> int:
    try:
        amount = Decimal(str(budget)) * LAMPORTS_PER_SOL
    except InvalidOperation:
        raise ValidationError("Budget must be a number")
    if amount <= 0:
        raise ValidationError("Budget must be greater than 0")
    if amount != amount.to_integral_value():
        raise ValidationError("Budget has more precision than 1 lamport")
    return int(amount)


def get_job(db: Session, job_pk: int) -> models.Job:
    job = crud.get_job(db, job_pk)
    if job is None:
        raise NotFoundError("Job not found")
    return job


def _commit_transition(db: Session, job: models.Job, target: JobStatus, **values) -> models.Job:
    expected = job.status
    if not crud.transition_job(db, job, expected, target, **values):
        logger.info(
            "Job %s lost a race: expected %s, now %s", job.job_id, expected.value, job.status.value
        )
        raise PreconditionError(f"Job is no longer {expected.value} (now {job.status.value})")
    logger.info("Job %s: %s -> %s", job.job_id, expected.value, target.value)
    return job


def refresh_reputation(db: Session, reputation: ReputationEngine | None, user_id: int | None) -> None:
    if reputation is None or user_id is None:
        return
    try:
        reputation.update_user_reputation(db, user_id)
    except Exception:
        # the transition is already committed; a stale score is recoverable
        db.rollback()
        logger.exception("Reputation refresh failed for user %s", user_id)


def create_job(db: Session, actor: AuthContext, payload: JobCreate, now: datetime | None = None) -> models.Job:
    now = now or utcnow()
    budget_lamports = to_lamports(payload.budget)
    deadline = as_utc(payload.deadline)
    if deadline <= now:
        raise ValidationError("Deadline must be in the future")

    job = models.Job(
        job_id=new_job_id(),
        client_id=actor.user_id,
        title=payload.title,
        description=payload.description,
        requirements=payload.requirements,
        budget_lamports=budget_lamports,
        deadline=deadline,
        status=JobStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("Job %s created by user %s", job.job_id, actor.user_id)
    return job


def apply_to_job(db: Session, actor: AuthContext, job_pk: int, proposal: str) -> models.Job:
    """
    Validate an application. Proposals are not stored yet; the client picks
    a freelancer out of band and calls `assign`.
    """
    job = get_job(db, job_pk)
    if job.status != JobStatus.OPEN:
        raise PreconditionError("Job is not open for applications")
    if job.client_id == actor.user_id:
        raise ValidationError("Cannot apply to your own job")
    logger.info("User %s applied to job %s (%d chars)", actor.user_id, job.job_id, len(proposal))
    return job


def assign(db: Session, actor: AuthContext, job_pk: int, freelancer_id: int) -> models.Job:
    job = get_job(db, job_pk)
    if job.client_id != actor.user_id:
        raise AuthorizationError("Only the job creator can assign freelancers")
    if job.status != JobStatus.OPEN:
        raise PreconditionError("Job is not open")
    if crud.get_user(db, freelancer_id) is None:
        raise NotFoundError("Freelancer not found")
    if freelancer_id == job.client_id:
        raise ValidationError("Cannot assign your own job to yourself")
    return _commit_transition(db, job, JobStatus.IN_PROGRESS, freelancer_id=freelancer_id)


def submit_work(
    db: Session,
    actor: AuthContext,
    job_pk: int,
    submission_url: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> models.Job:
    job = get_job(db, job_pk)
    if job.freelancer_id != actor.user_id:
        raise AuthorizationError("Only the assigned freelancer can submit work")
    if job.status != JobStatus.IN_PROGRESS:
        raise PreconditionError("Job is not in progress")
    return _commit_transition(
        db,
        job,
        JobStatus.SUBMITTED,
        submission_url=submission_url,
        submission_notes=notes,
        submitted_at=now or utcnow(),
    )


def review(
    db: Session,
    actor: AuthContext,
    job_pk: int,
    action: ReviewAction,
    rejection_reason: str | None = None,
    reputation: ReputationEngine | None = None,
    now: datetime | None = None,
) -> models.Job:
    try:
        action = ReviewAction(action)
    except ValueError:
        raise ValidationError("Invalid action")
    job = get_job(db, job_pk)
    if job.client_id != actor.user_id:
        raise AuthorizationError("Only the job creator can review submissions")
    if job.status != JobStatus.SUBMITTED:
        raise PreconditionError("Job has not been submitted yet")

    now = now or utcnow()
    if action is ReviewAction.APPROVE:
        job = _commit_transition(db, job, JobStatus.COMPLETED, reviewed_at=now)
    elif action is ReviewAction.REJECT:
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("Rejection reason required")
        job = _commit_transition(
            db, job, JobStatus.DISPUTED, reviewed_at=now, rejection_reason=rejection_reason.strip()
        )
    else:
        # back to work; the auto-release clock restarts on the next submission
        job = _commit_transition(db, job, JobStatus.IN_PROGRESS, submitted_at=None)

    if job.status in (JobStatus.COMPLETED, JobStatus.DISPUTED):
        refresh_reputation(db, reputation, job.freelancer_id)
    return job


def cancel(db: Session, actor: AuthContext, job_pk: int) -> models.Job:
    job = get_job(db, job_pk)
    if job.client_id != actor.user_id:
        raise AuthorizationError("Only the job creator can cancel the job")
    if job.status != JobStatus.OPEN:
        raise PreconditionError("Can only cancel open jobs")
    return _commit_transition(db, job, JobStatus.CANCELLED)
