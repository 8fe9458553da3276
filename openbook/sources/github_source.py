"""
GitHub Profile Source

Fetches a user, all of their repositories (paginated), and for each
repository its readme and per-language byte counts. A missing readme or
language breakdown only affects that repository.
"""

import base64
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import requests

from ..schema.core_schema import LanguageInfo, LanguageStat, Profile, RateLimitInfo, Repository

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
PAGE_SIZE = 100
LOW_RATE_LIMIT_WARNING = 100
LOW_RATE_LIMIT_BEFORE_SCRAPE = 50


class ProfileSource(Protocol):
    def scrape(self, username: str) -> Profile: ...

    def check_rate_limit(self) -> RateLimitInfo: ...


def clean_readme(text: Optional[str]) -> str:
    """Reduce markdown/HTML readme text to plain prose on a single line."""
    if not text:
        return ""

    # Badges: [![alt](img)](link) -> link
    text = re.sub(r"\[!\[.*?\]\(.*?\)\]\((.*?)\)", r"\1", text)

    def _link(m: "re.Match[str]") -> str:
        label, url = m.group(1).strip(), m.group(2).strip()
        return url if label == url else f"{label} {url}"

    text = re.sub(r"\[([^\]]*)\]\(([^\)]*)\)", _link, text)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"^#+\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"^[-*_]{3,}\s*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*\*([^*]+)\*\*", r"\1", text)
    text = re.sub(r"\*([^*]+)\*", r"\1", text)
    text = re.sub(r"__([^_]+)__", r"\1", text)
    text = re.sub(r"_([^_]+)_", r"\1", text)
    text = re.sub(r"```.*?```", "", text, flags=re.DOTALL)
    text = re.sub(r"`([^`]+)`", r"\1", text)
    text = re.sub(r"[^\w\s\.\,\!\?\;\:\(\)\-]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def calculate_metadata(profile: Profile) -> Profile:
    """Fill total_stars and language_stats from the repository list."""
    profile.total_stars = sum(r.stars for r in profile.repositories)

    counts: Dict[str, int] = {}
    byte_totals: Dict[str, int] = {}
    for repo in profile.repositories:
        if repo.languages:
            for lang, info in repo.languages.items():
                counts[lang] = counts.get(lang, 0) + 1
                byte_totals[lang] = byte_totals.get(lang, 0) + info.bytes
        elif repo.primary_language:
            lang = repo.primary_language
            counts[lang] = counts.get(lang, 0) + 1
            byte_totals.setdefault(lang, 0)

    all_bytes = sum(byte_totals.values())
    ordered = sorted(counts, key=lambda lang: byte_totals.get(lang, 0), reverse=True)
    profile.language_stats = {
        lang: LanguageStat(
            repos_using_language=counts[lang],
            percentage=byte_totals[lang] / all_bytes * 100 if all_bytes else 0.0,
        )
        for lang in ordered
    }
    return profile


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubProfileSource:
    """ProfileSource backed by the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": "OpenBook-API",
            }
        )
        if token:
            self.session.headers["Authorization"] = f"token {token}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        return self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)

    def check_rate_limit(self) -> RateLimitInfo:
        try:
            resp = self._get("/rate_limit")
            resp.raise_for_status()
            rate = resp.json()["rate"]
            info = RateLimitInfo(
                limit=rate["limit"],
                remaining=rate["remaining"],
                reset_time=datetime.fromtimestamp(rate["reset"], tz=timezone.utc),
            )
        except (requests.RequestException, KeyError, ValueError):
            logger.error("Failed to check rate limit", exc_info=True)
            return RateLimitInfo()

        if info.remaining < LOW_RATE_LIMIT_WARNING:
            logger.warning(
                "Low rate limit: %d/%d remaining, resets at %s",
                info.remaining,
                info.limit,
                info.reset_time,
            )
        return info

    def scrape(self, username: str) -> Profile:
        logger.info("Scraping GitHub profile for %s", username)

        # Advisory only; a low budget never blocks the scrape
        rate = self.check_rate_limit()
        if rate.limit and rate.remaining < LOW_RATE_LIMIT_BEFORE_SCRAPE:
            logger.warning("Low rate limit before scraping: %d/%d", rate.remaining, rate.limit)

        profile = self._fetch_user(username)
        self._fetch_repositories(profile)
        calculate_metadata(profile)

        logger.info("Scraped %d repositories for %s", len(profile.repositories), username)
        return profile

    def _fetch_user(self, username: str) -> Profile:
        resp = self._get(f"/users/{username}")
        resp.raise_for_status()
        data = resp.json()
        return Profile(
            username=username,
            name=data.get("name"),
            bio=data.get("bio"),
            avatar_url=data.get("avatar_url"),
            company=data.get("company"),
            location=data.get("location"),
            public_repos=data.get("public_repos", 0),
            followers=data.get("followers", 0),
            following=data.get("following", 0),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )

    def _fetch_repositories(self, profile: Profile) -> None:
        page = 1
        while True:
            resp = self._get(
                f"/users/{profile.username}/repos",
                params={"per_page": PAGE_SIZE, "page": page, "sort": "updated"},
            )
            resp.raise_for_status()
            items = resp.json()
            if not items:
                break

            for item in items:
                name = item["name"]
                readme = self._fetch_readme(profile.username, name)
                languages = self._fetch_languages(profile.username, name)
                profile.repositories.append(
                    Repository(
                        name=name,
                        description=item.get("description"),
                        primary_language=item.get("language"),
                        stars=item.get("stargazers_count", 0),
                        forks=item.get("forks_count", 0),
                        is_fork=item.get("fork", False),
                        created_at=_parse_time(item.get("created_at")) or profile.cached_at,
                        updated_at=_parse_time(item.get("updated_at")) or profile.cached_at,
                        url=item.get("html_url"),
                        readme_content=clean_readme(readme) if readme else None,
                        languages=languages,
                    )
                )
                logger.debug("Processed %s (%d languages)", name, len(languages))
            page += 1

    def _fetch_readme(self, owner: str, repo: str) -> Optional[str]:
        try:
            resp = self._get(f"/repos/{owner}/{repo}/readme")
            if not resp.ok:
                return None
            content = resp.json().get("content")
            if not content:
                return None
            return base64.b64decode(content).decode("utf-8", errors="replace")
        except (requests.RequestException, ValueError):
            logger.debug("No readme for %s/%s", owner, repo, exc_info=True)
            return None

    def _fetch_languages(self, owner: str, repo: str) -> Dict[str, LanguageInfo]:
        try:
            resp = self._get(f"/repos/{owner}/{repo}/languages")
            if not resp.ok:
                return {}
            data = resp.json()
        except (requests.RequestException, ValueError):
            logger.debug("No language breakdown for %s/%s", owner, repo, exc_info=True)
            return {}

        total = sum(data.values())
        return {
            lang: LanguageInfo(bytes=count, percentage=count / total * 100 if total else 0.0)
            for lang, count in data.items()
        }
