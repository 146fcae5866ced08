import os
import tempfile
from datetime import datetime, timedelta, timezone
import pytest
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

# Ensure tests always use SQLite and never start the background scheduler
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_repchain.db")
os.environ["AUTO_RELEASE_ENABLED"] = "false"
os.environ["DEBUG"] = "true"

from repchain.database import Base, get_db, make_engine
from repchain.errors import ExternalServiceError
from repchain.github import GitHubProfile, GitHubStats
from repchain.main import app, get_github
from repchain.models import Job, JobStatus, User
from repchain.schemas import AuthContext
from repchain.token import create_access_token


class FakeGitHub:
    """In-memory GitHubStatsProvider."""

    def __init__(self):
        self.stats: dict[str, GitHubStats] = {}
        self.failing = False
        self.calls = 0

    def add(self, username: str, **kw) -> GitHubStats:
        kw.setdefault("total_repos", 0)
        kw.setdefault("total_stars", 0)
        kw.setdefault("total_forks", 0)
        kw.setdefault("account_age_days", 0)
        self.stats[username.lower()] = GitHubStats(**kw)
        return self.stats[username.lower()]

    def _lookup(self, username: str) -> GitHubStats:
        self.calls += 1
        if self.failing or username.lower() not in self.stats:
            raise ExternalServiceError(f"GitHub request failed: /users/{username}")
        return self.stats[username.lower()]

    def get_profile(self, username: str) -> GitHubProfile:
        stats = self._lookup(username)
        return GitHubProfile(
            login=username,
            created_at=datetime.now(timezone.utc) - timedelta(days=stats.account_age_days),
            public_repos=stats.total_repos,
            followers=3,
            following=1,
        )

    def get_stats(self, username: str) -> GitHubStats:
        return self._lookup(username)


@pytest.fixture(scope="session")
def test_db_url():
    # Use a temporary SQLite file to persist across tests within a session
    db_fd, db_path = tempfile.mkstemp(prefix="test_repchain_", suffix=".db")
    os.close(db_fd)
    url = f"sqlite:///{db_path}"
    yield url
    try:
        os.remove(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture()
def session_factory(test_db_url):
    engine = make_engine(test_db_url)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    # Ensure file handles are released on Windows
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_github():
    return FakeGitHub()


@pytest.fixture()
def client(db_session, fake_github):
    # Override the dependencies to use the test session and fake GitHub
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_github] = lambda: fake_github
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    counter = iter(range(1, 10_000))

    def _make(github_username: str | None = None, **kw) -> User:
        n = next(counter)
        user = User(wallet_address=f"Wa11et{n:038d}", github_username=github_username, **kw)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_job(db_session):
    """Insert a job directly in any state, bypassing the lifecycle."""

    def _make(client: User, status: JobStatus = JobStatus.OPEN, **kw) -> Job:
        now = datetime.now(timezone.utc)
        n = db_session.query(Job).count() + 1
        kw.setdefault("created_at", now - timedelta(days=10))
        kw.setdefault("deadline", now + timedelta(days=7))
        job = Job(
            job_id=f"JOB-T{n:07d}",
            client_id=client.id,
            title="Build a landing page",
            description="Responsive landing page with a signup form.",
            budget_lamports=2_500_000_000,
            status=status,
            **kw,
        )
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _make


def ctx(user: User) -> AuthContext:
    return AuthContext(user_id=user.id, wallet_address=user.wallet_address)


@pytest.fixture()
def as_actor():
    return ctx


@pytest.fixture()
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.wallet_address)}"}

    return _headers
