from __future__ import annotations
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, joinedload

from . import models
from .errors import ValidationError
from .models import JobStatus
from .schemas import JobFilter

# Users
def get_user(db: Session, user_id: int) -> models.User | None:
    return db.get(models.User, user_id)

def get_user_by_wallet(db: Session, wallet_address: str) -> models.User | None:
    return db.query(models.User).filter(models.User.wallet_address == wallet_address).first()

def get_user_by_github(db: Session, github_username: str) -> models.User | None:
    # GitHub logins are case-insensitive
    return (
        db.query(models.User)
        .filter(func.lower(models.User.github_username) == github_username.lower())
        .first()
    )

def get_or_create_user(db: Session, wallet_address: str) -> models.User:
    user = get_user_by_wallet(db, wallet_address)
    if user is None:
        user = models.User(wallet_address=wallet_address)
        db.add(user)
        db.commit()
        db.refresh(user)
    return user

def update_user_profile(db: Session, user: models.User, **fields) -> models.User:
    """Apply profile edits. Only username, bio and email are user-editable."""
    username = fields.get("username")
    if username and username != user.username:
        if db.query(models.User).filter(models.User.username == username, models.User.id != user.id).first():
            raise ValidationError("Username already taken")
    email = fields.get("email")
    if email and email != user.email:
        if db.query(models.User).filter(models.User.email == email, models.User.id != user.id).first():
            raise ValidationError("Email already registered")

    for key in ("username", "bio", "email"):
        if key in fields:
            setattr(user, key, fields[key])
    db.commit()
    db.refresh(user)
    return user

def set_github_username(db: Session, user: models.User, github_username: str | None) -> models.User:
    user.github_username = github_username
    db.commit()
    db.refresh(user)
    return user

def list_active_user_ids(db: Session) -> list[int]:
    return list(db.execute(select(models.User.id).where(models.User.is_active.is_(True))).scalars())

def set_reputation_score(db: Session, user_id: int, score: int) -> int:
    rows = db.execute(
        update(models.User).where(models.User.id == user_id).values(reputation_score=score)
    ).rowcount or 0
    db.commit()
    return rows

# Jobs
def get_job(db: Session, job_pk: int) -> models.Job | None:
    return (
        db.query(models.Job)
        .options(joinedload(models.Job.client), joinedload(models.Job.freelancer))
        .filter(models.Job.id == job_pk)
        .first()
    )

def list_jobs(db: Session, flt: JobFilter) -> list[models.Job]:
    q = db.query(models.Job).options(joinedload(models.Job.client), joinedload(models.Job.freelancer))
    if flt.status is not None:
        q = q.filter(models.Job.status == flt.status)
    if flt.client_id is not None:
        q = q.filter(models.Job.client_id == flt.client_id)
    if flt.freelancer_id is not None:
        q = q.filter(models.Job.freelancer_id == flt.freelancer_id)
    if flt.participant_id is not None:
        q = q.filter(or_(
            models.Job.client_id == flt.participant_id,
            models.Job.freelancer_id == flt.participant_id,
        ))
    return q.order_by(models.Job.created_at.desc(), models.Job.id.desc()).all()

def transition_job(
    db: Session, job: models.Job, expected: JobStatus, target: JobStatus, **values
) -> bool:
    """
    Move `job` from `expected` to `target` in a single conditional UPDATE.

    Returns False when the row was no longer in `expected` (someone else got
    there first); the caller decides how to report that. Edges outside
    `models.TRANSITIONS` are refused outright.
    """
    if not expected.can_transition_to(target):
        raise ValueError(f"Illegal job transition {expected.value} -> {target.value}")

    result = db.execute(
        update(models.Job)
        .where(models.Job.id == job.id, models.Job.status == expected)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(job)
    return result.rowcount == 1

# Scheduler scans
def list_jobs_due_for_release(db: Session, submitted_before: datetime) -> list[models.Job]:
    return (
        db.query(models.Job)
        .filter(
            models.Job.status == JobStatus.SUBMITTED,
            models.Job.submitted_at.isnot(None),
            models.Job.submitted_at <= submitted_before,
        )
        .order_by(models.Job.submitted_at.asc())
        .all()
    )

def list_jobs_awaiting_review(db: Session) -> list[models.Job]:
    return (
        db.query(models.Job)
        .filter(
            models.Job.status == JobStatus.SUBMITTED,
            models.Job.submitted_at.isnot(None),
            models.Job.reviewed_at.is_(None),
        )
        .all()
    )

# Reputation inputs
def count_freelancer_jobs(db: Session, freelancer_id: int, statuses: tuple[JobStatus, ...] | None = None) -> int:
    q = db.query(func.count(models.Job.id)).filter(models.Job.freelancer_id == freelancer_id)
    if statuses:
        q = q.filter(models.Job.status.in_(statuses))
    return q.scalar() or 0

def list_freelancer_jobs(db: Session, freelancer_id: int, statuses: tuple[JobStatus, ...]) -> list[models.Job]:
    return (
        db.query(models.Job)
        .filter(models.Job.freelancer_id == freelancer_id, models.Job.status.in_(statuses))
        .all()
    )
