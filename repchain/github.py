"""
GitHub REST client used to score a freelancer's public footprint.

Only the aggregated numbers matter to the rest of the app, so everything is
boiled down to `GitHubProfile` and `GitHubStats`. Every failure (network,
timeout, 404, junk payload) comes out as `ExternalServiceError`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import requests

from .clock import as_utc, utcnow
from .config import settings
from .errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GitHubProfile:
    login: str
    created_at: datetime
    public_repos: int
    followers: int
    following: int
    name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class GitHubStats:
    total_repos: int
    total_stars: int
    total_forks: int
    account_age_days: int
    languages: dict[str, int] = field(default_factory=dict)


class GitHubStatsProvider(Protocol):
    def get_profile(self, username: str) -> GitHubProfile: ...

    def get_stats(self, username: str) -> GitHubStats: ...


def _parse_timestamp(raw: str) -> datetime:
    # GitHub sends "2011-01-25T18:44:36Z"
    return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


class GitHubClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or settings.GITHUB_API_BASE).rstrip("/")
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.timeout = timeout or settings.GITHUB_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _get(self, path: str, params: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            r = self.session.get(url, headers=self._headers(), params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.Timeout as e:
            logger.warning("GitHub request timed out: %s", url)
            raise ExternalServiceError(f"GitHub request timed out: {path}") from e
        except requests.RequestException as e:
            logger.warning("GitHub request failed: %s (%s)", url, e)
            raise ExternalServiceError(f"GitHub request failed: {path}") from e
        except ValueError as e:
            raise ExternalServiceError(f"GitHub returned invalid JSON: {path}") from e

    def get_profile(self, username: str) -> GitHubProfile:
        data = self._get(f"/users/{username}")
        try:
            return GitHubProfile(
                login=data["login"],
                name=data.get("name"),
                avatar_url=data.get("avatar_url"),
                public_repos=int(data.get("public_repos") or 0),
                followers=int(data.get("followers") or 0),
                following=int(data.get("following") or 0),
                created_at=_parse_timestamp(data["created_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Unexpected GitHub profile payload for {username}") from e

    def get_repos(self, username: str) -> list[dict]:
        data = self._get(f"/users/{username}/repos", params={"per_page": 100, "sort": "updated"})
        if not isinstance(data, list):
            raise ExternalServiceError(f"Unexpected GitHub repos payload for {username}")
        return data

    def get_stats(self, username: str) -> GitHubStats:
        profile = self.get_profile(username)
        repos = self.get_repos(username)

        stars = forks = 0
        languages: dict[str, int] = {}
        try:
            for repo in repos:
                stars += int(repo.get("stargazers_count") or 0)
                forks += int(repo.get("forks_count") or 0)
                lang = repo.get("language")
                if lang:
                    languages[lang] = languages.get(lang, 0) + 1
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Unexpected GitHub repos payload for {username}") from e

        return GitHubStats(
            total_repos=profile.public_repos,
            total_stars=stars,
            total_forks=forks,
            languages=languages,
            account_age_days=(utcnow() - profile.created_at).days,
        )

