# repchain/models.py
from __future__ import annotations
import enum
from datetime import datetime
from decimal import Decimal
from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .clock import utcnow
from .database import Base

LAMPORTS_PER_SOL = 1_000_000_000


class JobStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"
    AUTO_RELEASED = "AUTO_RELEASED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "JobStatus") -> bool:
        return target in TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self]


# The only edges a job's status may follow. DISPUTED has no way out here;
# resolving a dispute is handled elsewhere.
TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.OPEN: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.SUBMITTED}),
    JobStatus.SUBMITTED: frozenset({
        JobStatus.COMPLETED,
        JobStatus.DISPUTED,
        JobStatus.IN_PROGRESS,
        JobStatus.AUTO_RELEASED,
    }),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.AUTO_RELEASED: frozenset(),
    JobStatus.DISPUTED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Solana base58 public keys are 32-44 chars
    wallet_address: Mapped[str] = mapped_column(String(44), unique=True, index=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    github_username: Mapped[str | None] = mapped_column(String(100), index=True, nullable=True)
    reputation_score: Mapped[int] = mapped_column(default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    client_jobs: Mapped[list["Job"]] = relationship(
        back_populates="client", foreign_keys="Job.client_id"
    )
    freelance_jobs: Mapped[list["Job"]] = relationship(
        back_populates="freelancer", foreign_keys="Job.freelancer_id"
    )


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (CheckConstraint("budget_lamports > 0", name="ck_jobs_budget_positive"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)  # JOB-XXXXXXXX
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    freelancer_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), index=True, nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget_lamports: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", native_enum=False, length=20),
        default=JobStatus.OPEN,
        index=True,
        nullable=False,
    )
    submission_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    submission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # written by the on-chain escrow integration, never by this service
    escrow_address: Mapped[str | None] = mapped_column(String(44), nullable=True)
    transaction_signature: Mapped[str | None] = mapped_column(String(88), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    client: Mapped[User] = relationship(back_populates="client_jobs", foreign_keys=[client_id])
    freelancer: Mapped[User | None] = relationship(back_populates="freelance_jobs", foreign_keys=[freelancer_id])

    @property
    def budget(self) -> Decimal:
        """Budget in SOL."""
        return Decimal(self.budget_lamports) / LAMPORTS_PER_SOL


# scheduler scans by status and submission time
Index("ix_jobs_status_submitted_at", Job.status, Job.submitted_at)
