"""
Reputation scoring.

A user's score is a 0-1000 integer built from five sub-scores:

    github * 0.30 + job completion * 0.25 + reviews * 0.25
        + timeliness * 0.15 - disputes * 0.05

The score is persisted on the user and only recomputed when something calls
`update_user_reputation` (GitHub link changes, job completion, auto-release,
disputes). Reads never trigger a recompute.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from fractions import Fraction

from sqlalchemy.orm import Session

from . import crud, models
from .clock import as_utc
from .config import settings
from .errors import ExternalServiceError, NotFoundError
from .github import GitHubClient, GitHubStats, GitHubStatsProvider
from .models import JobStatus

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 1000

# percent weights; disputes subtract
WEIGHTS = {
    "github": 30,
    "job_completion": 25,
    "reviews": 25,
    "timeliness": 15,
    "disputes": 5,
}

# Only client-approved work counts; auto-released and disputed jobs still
# count toward the total.
COMPLETED_STATUSES = (JobStatus.COMPLETED,)


def _round(value: Fraction | int) -> int:
    # exact half-up; Python's round() would send 412.5 to 412
    return math.floor(value + Fraction(1, 2))


@dataclass(frozen=True)
class ReputationFactors:
    github_score: int = 0
    job_completion_score: int = 0
    review_score: int = 0
    timeliness_score: int = 0
    dispute_score: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def github_score(stats: GitHubStats) -> int:
    score = Fraction(0)
    score += min(100, Fraction(max(0, stats.account_age_days), 10))   # 1 pt per 10 days
    score += min(150, max(0, stats.total_repos) * 5)
    score += min(200, max(0, stats.total_stars) * 2)
    score += min(100, max(0, stats.total_forks) * 5)
    score += min(50, len(stats.languages) * 10)
    return _round(score)


def job_completion_score(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    completion_rate = Fraction(min(completed, total), total)
    volume_bonus = min(500, completed * 50)
    return _round(completion_rate * 500 + volume_bonus)


def timeliness_score(on_time: int, completed: int) -> int:
    if completed <= 0:
        return 0
    return _round(Fraction(min(on_time, completed) * 1000, completed))


def dispute_score(disputed: int) -> int:
    return min(500, max(0, disputed) * 50)


def combine(factors: ReputationFactors) -> int:
    weighted = (
        factors.github_score * WEIGHTS["github"]
        + factors.job_completion_score * WEIGHTS["job_completion"]
        + factors.review_score * WEIGHTS["reviews"]
        + factors.timeliness_score * WEIGHTS["timeliness"]
        - factors.dispute_score * WEIGHTS["disputes"]
    )
    return max(MIN_SCORE, min(MAX_SCORE, _round(Fraction(weighted, 100))))


class ReputationEngine:
    def __init__(self, github: GitHubStatsProvider | None = None, review_score: int | None = None):
        self.github = github if github is not None else GitHubClient()
        # TODO: replace with the client rating average once ratings are stored
        self.review_score = settings.REPUTATION_REVIEW_SCORE if review_score is None else review_score

    def _github_score(self, username: str) -> int:
        try:
            return github_score(self.github.get_stats(username))
        except ExternalServiceError as e:
            logger.warning("GitHub score for %s treated as 0: %s", username, e)
            return 0

    def _timeliness(self, db: Session, user_id: int) -> int:
        jobs = crud.list_freelancer_jobs(db, user_id, COMPLETED_STATUSES)
        on_time = sum(
            1 for j in jobs
            if j.submitted_at is not None and as_utc(j.submitted_at) <= as_utc(j.deadline)
        )
        return timeliness_score(on_time, len(jobs))

    def calculate_factors(self, db: Session, user: models.User) -> ReputationFactors:
        completed = crud.count_freelancer_jobs(db, user.id, COMPLETED_STATUSES)
        total = crud.count_freelancer_jobs(db, user.id)
        disputed = crud.count_freelancer_jobs(db, user.id, (JobStatus.DISPUTED,))
        return ReputationFactors(
            github_score=self._github_score(user.github_username) if user.github_username else 0,
            job_completion_score=job_completion_score(completed, total),
            review_score=self.review_score,
            timeliness_score=self._timeliness(db, user.id),
            dispute_score=dispute_score(disputed),
        )

    def calculate_reputation(self, db: Session, user: models.User) -> int:
        return combine(self.calculate_factors(db, user))

    def recompute(self, db: Session, user_id: int) -> tuple[int, ReputationFactors]:
        """Recompute and persist a user's score. Returns (score, factors)."""
        user = crud.get_user(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        factors = self.calculate_factors(db, user)
        score = combine(factors)
        crud.set_reputation_score(db, user_id, score)
        logger.info("Updated reputation for user %s: %s", user_id, score)
        return score, factors

    def update_user_reputation(self, db: Session, user_id: int) -> int:
        score, _ = self.recompute(db, user_id)
        return score

    def update_all_reputations(self, db: Session) -> dict[int, int]:
        user_ids = crud.list_active_user_ids(db)
        logger.info("Updating reputation for %d users", len(user_ids))
        scores: dict[int, int] = {}
        for user_id in user_ids:
            try:
                scores[user_id] = self.update_user_reputation(db, user_id)
            except Exception:
                db.rollback()
                logger.exception("Failed to update reputation for user %s", user_id)
        logger.info("Batch reputation update completed (%d/%d)", len(scores), len(user_ids))
        return scores
