# repchain/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import crud, lifecycle, models
from .auth import get_auth_context, get_current_user
from .config import settings
from .database import get_db
from .errors import ExternalServiceError, NotFoundError, RepChainError, ValidationError
from .github import GitHubClient, GitHubStatsProvider
from .jobs.auto_release import AutoReleaseScheduler
from .logging_config import setup_logging
from .reputation import ReputationEngine
from .schemas import (
    ApplicationAck, ApplyIn, AssignIn, AuthContext, GitHubConnectIn, GitHubConnectOut,
    GitHubOverviewOut, GitHubProfileOut, GitHubStatsOut, JobCreate, JobFilter, JobOut,
    JobRole, ProfileUpdate, ReputationFactorsOut, ReputationOut, ReviewIn, SessionRequest,
    SubmitIn, Token, UserOut,
)
from .models import JobStatus
from .token import create_access_token

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    from .database import engine, Base
    # Create tables if they don't exist
    Base.metadata.create_all(bind=engine)

    handle = None
    if settings.AUTO_RELEASE_ENABLED:
        handle = AutoReleaseScheduler(reputation=ReputationEngine()).start()
    yield
    if handle is not None:
        handle.stop()


app = FastAPI(title="RepChain API", lifespan=lifespan)


@app.exception_handler(RepChainError)
async def repchain_error_handler(request: Request, exc: RepChainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.code})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": details, "error": ValidationError.code})


# Collaborators, overridable in tests
def get_github() -> GitHubStatsProvider:
    return GitHubClient()

def get_reputation_engine(github: GitHubStatsProvider = Depends(get_github)) -> ReputationEngine:
    return ReputationEngine(github=github)


@app.get("/health", tags=["monitoring"])
def health_check(db: Session = Depends(get_db)):
    """
    Checks if the application is healthy, including the database connection.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok", "database": "ok"}
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection error"
        )

@app.post("/debug/session", response_model=Token, tags=["debug"])
def debug_session(payload: SessionRequest, db: Session = Depends(get_db)):
    """Issue a session without a wallet signature. Local development only."""
    if not settings.DEBUG:
        raise HTTPException(status_code=404, detail="Not found")
    user = crud.get_or_create_user(db, payload.wallet_address)
    return {"access_token": create_access_token(user.id, user.wallet_address), "token_type": "bearer"}

# Profile
@app.get("/api/auth/me", response_model=UserOut, tags=["auth"])
def me(current_user: models.User = Depends(get_current_user)):
    return current_user

@app.put("/api/auth/profile", response_model=UserOut, tags=["auth"])
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    fields = payload.model_dump(exclude_unset=True)
    return crud.update_user_profile(db, current_user, **fields)

# Jobs
@app.post("/api/jobs", response_model=JobOut, status_code=status.HTTP_201_CREATED, tags=["jobs"])
def create_job(payload: JobCreate, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)):
    return lifecycle.create_job(db, actor, payload)

@app.get("/api/jobs", response_model=list[JobOut], tags=["jobs"])
def list_jobs(
    status_: JobStatus | None = Query(None, alias="status"),
    client_id: int | None = Query(None),
    freelancer_id: int | None = Query(None),
    db: Session = Depends(get_db),
    _: AuthContext = Depends(get_auth_context),
):
    flt = JobFilter(status=status_, client_id=client_id, freelancer_id=freelancer_id)
    return crud.list_jobs(db, flt)

@app.get("/api/jobs/mine", response_model=list[JobOut], tags=["jobs"])
def list_my_jobs(
    role: JobRole | None = Query(None, description="client, freelancer, or omit for both"),
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
):
    if role is JobRole.CLIENT:
        flt = JobFilter(client_id=actor.user_id)
    elif role is JobRole.FREELANCER:
        flt = JobFilter(freelancer_id=actor.user_id)
    else:
        flt = JobFilter(participant_id=actor.user_id)
    return crud.list_jobs(db, flt)

@app.get("/api/jobs/{job_id}", response_model=JobOut, tags=["jobs"])
def get_job(job_id: int, db: Session = Depends(get_db), _: AuthContext = Depends(get_auth_context)):
    return lifecycle.get_job(db, job_id)

@app.post("/api/jobs/{job_id}/apply", response_model=ApplicationAck, tags=["jobs"])
def apply_to_job(
    job_id: int, payload: ApplyIn, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)
):
    job = lifecycle.apply_to_job(db, actor, job_id, payload.proposal)
    return ApplicationAck(job_id=job.job_id)

@app.put("/api/jobs/{job_id}/assign", response_model=JobOut, tags=["jobs"])
def assign_job(
    job_id: int, payload: AssignIn, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)
):
    return lifecycle.assign(db, actor, job_id, payload.freelancer_id)

@app.post("/api/jobs/{job_id}/submit", response_model=JobOut, tags=["jobs"])
def submit_work(
    job_id: int, payload: SubmitIn, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)
):
    return lifecycle.submit_work(db, actor, job_id, str(payload.submission_url), payload.notes)

@app.put("/api/jobs/{job_id}/review", response_model=JobOut, tags=["jobs"])
def review_submission(
    job_id: int,
    payload: ReviewIn,
    db: Session = Depends(get_db),
    actor: AuthContext = Depends(get_auth_context),
    reputation: ReputationEngine = Depends(get_reputation_engine),
):
    return lifecycle.review(db, actor, job_id, payload.action, payload.rejection_reason, reputation=reputation)

@app.delete("/api/jobs/{job_id}/cancel", response_model=JobOut, tags=["jobs"])
def cancel_job(job_id: int, db: Session = Depends(get_db), actor: AuthContext = Depends(get_auth_context)):
    return lifecycle.cancel(db, actor, job_id)

# GitHub
@app.post("/api/github/connect", response_model=GitHubConnectOut, tags=["github"])
def connect_github(
    payload: GitHubConnectIn,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    github: GitHubStatsProvider = Depends(get_github),
    reputation: ReputationEngine = Depends(get_reputation_engine),
):
    try:
        github.get_profile(payload.github_username)
    except ExternalServiceError:
        raise NotFoundError("GitHub account not found or unable to verify")

    existing = crud.get_user_by_github(db, payload.github_username)
    if existing is not None and existing.id != current_user.id:
        raise ValidationError("This GitHub account is already connected to another wallet")

    crud.set_github_username(db, current_user, payload.github_username)
    score = reputation.update_user_reputation(db, current_user.id)
    return GitHubConnectOut(github_username=payload.github_username, reputation_score=score)

@app.post("/api/github/disconnect", response_model=GitHubConnectOut, tags=["github"])
def disconnect_github(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    reputation: ReputationEngine = Depends(get_reputation_engine),
):
    if not current_user.github_username:
        raise ValidationError("No GitHub account connected")
    crud.set_github_username(db, current_user, None)
    score = reputation.update_user_reputation(db, current_user.id)
    return GitHubConnectOut(github_username=None, reputation_score=score)

@app.get("/api/github/stats", response_model=GitHubOverviewOut, tags=["github"])
def github_stats(
    current_user: models.User = Depends(get_current_user),
    github: GitHubStatsProvider = Depends(get_github),
):
    if not current_user.github_username:
        raise NotFoundError("GitHub account not connected")
    profile = github.get_profile(current_user.github_username)
    stats = github.get_stats(current_user.github_username)
    return GitHubOverviewOut(
        profile=GitHubProfileOut.model_validate(profile, from_attributes=True),
        stats=GitHubStatsOut.model_validate(stats, from_attributes=True),
    )

@app.post("/api/github/refresh", response_model=GitHubConnectOut, tags=["github"])
def refresh_github(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    reputation: ReputationEngine = Depends(get_reputation_engine),
):
    if not current_user.github_username:
        raise NotFoundError("GitHub account not connected")
    score = reputation.update_user_reputation(db, current_user.id)
    return GitHubConnectOut(github_username=current_user.github_username, reputation_score=score)

# Reputation
@app.get("/api/users/{user_id}/reputation", response_model=ReputationOut, tags=["reputation"])
def get_reputation(user_id: int, db: Session = Depends(get_db), _: AuthContext = Depends(get_auth_context)):
    user = crud.get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return ReputationOut(user_id=user.id, reputation_score=user.reputation_score)

@app.post("/api/users/{user_id}/reputation/recompute", response_model=ReputationOut, tags=["reputation"])
def recompute_reputation(
    user_id: int,
    db: Session = Depends(get_db),
    _: AuthContext = Depends(get_auth_context),
    reputation: ReputationEngine = Depends(get_reputation_engine),
):
    score, factors = reputation.recompute(db, user_id)
    return ReputationOut(
        user_id=user_id,
        reputation_score=score,
        factors=ReputationFactorsOut(**factors.as_dict()),
    )
