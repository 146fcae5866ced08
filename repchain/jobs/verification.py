"""
Checks a submitted job must pass before the scheduler releases it without
the client's approval. Anything failing is held as DISPUTED instead.

`BasicVerification` only looks at the submission URL and the job's age;
a stronger verifier can be dropped in through `VerificationPolicy`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Annotated, Protocol

from pydantic import AnyUrl, TypeAdapter, UrlConstraints
from pydantic import ValidationError as PydanticValidationError

from ..clock import as_utc

if TYPE_CHECKING:
    from ..models import Job

logger = logging.getLogger(__name__)


SubmissionUrl = Annotated[AnyUrl, UrlConstraints(max_length=500, host_required=True)]

_submission_url = TypeAdapter(SubmissionUrl)


def is_well_formed_url(value: str | None) -> bool:
    """True for absolute URLs with a scheme and a host (`https://x.com/a`)."""
    if not value:
        return False
    try:
        _submission_url.validate_python(value)
    except PydanticValidationError:
        return False
    return True


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    reason: str | None = None


class VerificationPolicy(Protocol):
    def verify(self, job: "Job", now: datetime) -> VerificationResult: ...


class BasicVerification:
    def __init__(self, min_job_age: timedelta = timedelta(hours=24)):
        self.min_job_age = min_job_age

    def verify(self, job: "Job", now: datetime) -> VerificationResult:
        if not job.submission_url:
            return self._fail(job, "No submission URL")
        if not is_well_formed_url(job.submission_url):
            return self._fail(job, "Invalid submission URL")
        # anti-fraud floor on total job lifetime
        if now - as_utc(job.created_at) < self.min_job_age:
            return self._fail(job, "Created too recently")
        return VerificationResult(ok=True)

    @staticmethod
    def _fail(job: "Job", reason: str) -> VerificationResult:
        logger.info("Job %s failed verification: %s", job.job_id, reason)
        return VerificationResult(ok=False, reason=reason)
