from datetime import datetime, timedelta, timezone

import pytest
import requests

from repchain.errors import ExternalServiceError
from repchain.github import GitHubClient
from repchain.reputation import ReputationEngine


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "params": params, "timeout": timeout})
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        return route


BASE = "https://api.github.test"
CREATED = (datetime.now(timezone.utc) - timedelta(days=500, hours=3)).strftime("%Y-%m-%dT%H:%M:%SZ")

PROFILE = {
    "login": "octo",
    "name": "Octo Cat",
    "avatar_url": "https://avatars.test/octo",
    "public_repos": 40,
    "followers": 12,
    "following": 4,
    "created_at": CREATED,
}

REPOS = [
    {"name": "a", "stargazers_count": 20, "forks_count": 6, "language": "JavaScript"},
    {"name": "b", "stargazers_count": 7, "forks_count": 3, "language": "Go"},
    {"name": "c", "stargazers_count": 3, "forks_count": 1, "language": "Rust"},
    {"name": "d", "stargazers_count": 0, "forks_count": 0, "language": "Go"},
    {"name": "e", "stargazers_count": 0, "forks_count": 0, "language": None},
]


def _client(routes, **kw):
    session = FakeSession(routes)
    return GitHubClient(base_url=BASE, session=session, timeout=3, **kw), session


def test_get_stats_aggregates_repos():
    gh, session = _client({
        f"{BASE}/users/octo": FakeResponse(PROFILE),
        f"{BASE}/users/octo/repos": FakeResponse(REPOS),
    })
    stats = gh.get_stats("octo")

    assert stats.total_repos == 40
    assert stats.total_stars == 30
    assert stats.total_forks == 10
    assert stats.languages == {"JavaScript": 1, "Go": 2, "Rust": 1}
    assert stats.account_age_days == 500
    assert all(c["timeout"] == 3 for c in session.calls)
    assert session.calls[1]["params"] == {"per_page": 100, "sort": "updated"}


def test_token_is_sent_when_configured():
    gh, session = _client({f"{BASE}/users/octo": FakeResponse(PROFILE)}, token="ghp_test")
    gh.get_profile("octo")
    assert session.calls[0]["headers"]["Authorization"] == "token ghp_test"


def test_get_profile_parses_fields():
    gh, _ = _client({f"{BASE}/users/octo": FakeResponse(PROFILE)})
    profile = gh.get_profile("octo")
    assert profile.login == "octo"
    assert profile.public_repos == 40
    assert profile.created_at.tzinfo is not None


@pytest.mark.parametrize(
    "route",
    [
        requests.Timeout("slow"),
        requests.ConnectionError("down"),
        FakeResponse({"message": "Not Found"}, status_code=404),
        FakeResponse(ValueError("not json")),
        FakeResponse({"login": "octo"}),  # missing created_at
    ],
)
def test_failures_become_external_service_error(route):
    gh, _ = _client({f"{BASE}/users/octo": route})
    with pytest.raises(ExternalServiceError):
        gh.get_profile("octo")


def test_repos_payload_must_be_a_list():
    gh, _ = _client({
        f"{BASE}/users/octo": FakeResponse(PROFILE),
        f"{BASE}/users/octo/repos": FakeResponse({"message": "oops"}),
    })
    with pytest.raises(ExternalServiceError):
        gh.get_stats("octo")


@pytest.mark.parametrize(
    "repos",
    [
        ["not-a-repo-object"],
        [{"name": "a", "stargazers_count": "lots"}],
        [{"name": "a", "language": ["Go"]}],
    ],
)
def test_malformed_repo_entries_become_external_service_error(repos):
    gh, _ = _client({
        f"{BASE}/users/octo": FakeResponse(PROFILE),
        f"{BASE}/users/octo/repos": FakeResponse(repos),
    })
    with pytest.raises(ExternalServiceError):
        gh.get_stats("octo")


def test_malformed_repos_score_zero(db_session, make_user):
    gh, _ = _client({
        f"{BASE}/users/octo": FakeResponse(PROFILE),
        f"{BASE}/users/octo/repos": FakeResponse(["not-a-repo-object"]),
    })
    user = make_user(github_username="octo")
    factors = ReputationEngine(github=gh).calculate_factors(db_session, user)
    assert factors.github_score == 0
