from __future__ import annotations
import enum
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import JobStatus
from .jobs.verification import SubmissionUrl

GITHUB_USERNAME_PATTERN = r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,37}[A-Za-z0-9])?$"


class AuthContext(BaseModel):
    """The acting principal, as vouched for by the session token."""
    user_id: int
    wallet_address: str

    model_config = ConfigDict(frozen=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class SessionRequest(BaseModel):
    wallet_address: str = Field(min_length=32, max_length=44)

# Users
class UserSummary(BaseModel):
    id: int
    username: str | None = None
    wallet_address: str
    reputation_score: int

    model_config = {"from_attributes": True}

class UserOut(BaseModel):
    id: int
    wallet_address: str
    username: str | None = None
    bio: str | None = None
    email: EmailStr | None = None
    github_username: str | None = None
    reputation_score: int
    created_at: datetime

    model_config = {"from_attributes": True}

class ProfileUpdate(BaseModel):
    username: str | None = Field(None, min_length=3, max_length=50)
    bio: str | None = Field(None, max_length=500)
    email: EmailStr | None = None

# Jobs
class JobCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=20, max_length=5000)
    requirements: str | None = None
    budget: Decimal = Field(gt=0, description="Budget in SOL")
    deadline: datetime

class JobOut(BaseModel):
    id: int
    job_id: str
    client_id: int
    freelancer_id: int | None = None
    title: str
    description: str
    requirements: str | None = None
    budget: float
    budget_lamports: int
    deadline: datetime
    status: JobStatus
    submission_url: str | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    client: UserSummary | None = None
    freelancer: UserSummary | None = None

    model_config = {"from_attributes": True}

class JobFilter(BaseModel):
    """
    Listing filter. All given fields are ANDed together; `participant_id`
    matches jobs where that user is either the client or the freelancer.
    """
    status: JobStatus | None = None
    client_id: int | None = None
    freelancer_id: int | None = None
    participant_id: int | None = None

class JobRole(str, enum.Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"

class ApplyIn(BaseModel):
    proposal: str = Field(min_length=50, max_length=2000)

class ApplicationAck(BaseModel):
    job_id: str
    message: str = "Application submitted successfully"

class AssignIn(BaseModel):
    freelancer_id: int

class SubmitIn(BaseModel):
    submission_url: SubmissionUrl
    notes: str | None = Field(None, max_length=1000)

class ReviewAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"

class ReviewIn(BaseModel):
    action: ReviewAction
    rejection_reason: str | None = None
    # accepted for forward compatibility; there is no review store yet
    rating: int | None = Field(None, ge=1, le=5)

# GitHub
class GitHubConnectIn(BaseModel):
    github_username: str = Field(min_length=1, max_length=39, pattern=GITHUB_USERNAME_PATTERN)

class GitHubConnectOut(BaseModel):
    github_username: str | None = None
    reputation_score: int

class GitHubProfileOut(BaseModel):
    login: str
    name: str | None = None
    avatar_url: str | None = None
    public_repos: int
    followers: int
    following: int
    created_at: datetime

class GitHubStatsOut(BaseModel):
    total_repos: int
    total_stars: int
    total_forks: int
    languages: dict[str, int]
    account_age_days: int

class GitHubOverviewOut(BaseModel):
    profile: GitHubProfileOut
    stats: GitHubStatsOut

# Reputation
class ReputationFactorsOut(BaseModel):
    github_score: int
    job_completion_score: int
    review_score: int
    timeliness_score: int
    dispute_score: int

class ReputationOut(BaseModel):
    user_id: int
    reputation_score: int
    factors: ReputationFactorsOut | None = None
