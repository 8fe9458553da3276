import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from openbook.chatbot.intent_router import CLASSIFIER_SYSTEM_PROMPT  # noqa: E402
from openbook.knowledge.kb_generator import ANALYST_SYSTEM_PROMPT  # noqa: E402
from openbook.schema.core_schema import (  # noqa: E402
    Completion,
    LanguageInfo,
    Profile,
    PromptMessage,
    RateLimitInfo,
    Repository,
    TokenUsage,
)
from openbook.sources.github_source import calculate_metadata  # noqa: E402
from openbook.storage.object_store import InMemoryObjectStore  # noqa: E402

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeLanguageModel:
    """Records every call; `responder(messages)` returns a str or Completion, or raises."""

    def __init__(self, responder: Callable[[List[PromptMessage]], object]) -> None:
        self.responder = responder
        self.calls: List[List[PromptMessage]] = []
        self._lock = threading.Lock()

    def complete(self, messages: List[PromptMessage]) -> Completion:
        with self._lock:
            self.calls.append(list(messages))
        result = self.responder(messages)
        if isinstance(result, Completion):
            return result
        return Completion(text=str(result), usage=TokenUsage.of(10, 5))

    def calls_with_system(self, prefix: str) -> List[List[PromptMessage]]:
        return [c for c in self.calls if c and c[0].content.startswith(prefix)]

    @property
    def classifier_calls(self):
        return self.calls_with_system(CLASSIFIER_SYSTEM_PROMPT)

    @property
    def summary_calls(self):
        return self.calls_with_system(ANALYST_SYSTEM_PROMPT)


def persona_responder(classification: str = "GENERAL", reply: str = "Hi, I build things.") -> Callable:
    """Answers classifier, summary and chat calls with canned text."""

    def _respond(messages: List[PromptMessage]) -> object:
        system = messages[0].content
        if system == CLASSIFIER_SYSTEM_PROMPT:
            return Completion(text=classification, usage=TokenUsage.of(3, 1))
        if system == ANALYST_SYSTEM_PROMPT:
            return Completion(text="Summary of the project.", usage=TokenUsage.of(100, 20))
        return Completion(text=reply, usage=TokenUsage.of(50, 7))

    return _respond


class FakeProfileSource:
    def __init__(self, profile_factory: Callable[[str], Profile]) -> None:
        self.profile_factory = profile_factory
        self.scrapes: List[str] = []
        self.error: Optional[Exception] = None

    def scrape(self, username: str) -> Profile:
        self.scrapes.append(username)
        if self.error is not None:
            raise self.error
        return self.profile_factory(username)

    def check_rate_limit(self) -> RateLimitInfo:
        return RateLimitInfo(limit=5000, remaining=5000)


def make_repo(
    name: str,
    readme: Optional[str] = None,
    languages: Optional[dict] = None,
    primary_language: Optional[str] = None,
    description: Optional[str] = None,
    stars: int = 0,
    updated_days_ago: int = 0,
) -> Repository:
    langs = {}
    if languages:
        total = sum(languages.values())
        langs = {
            lang: LanguageInfo(bytes=count, percentage=count / total * 100)
            for lang, count in languages.items()
        }
    return Repository(
        name=name,
        description=description,
        primary_language=primary_language,
        stars=stars,
        created_at=T0 - timedelta(days=365),
        updated_at=T0 - timedelta(days=updated_days_ago),
        readme_content=readme,
        languages=langs,
    )


def make_profile(username: str = "alice", repositories=None, **kwargs) -> Profile:
    profile = Profile(
        username=username,
        name=kwargs.pop("name", "Alice Example"),
        bio=kwargs.pop("bio", "Builds developer tools."),
        public_repos=len(repositories or []),
        repositories=list(repositories or []),
        cached_at=kwargs.pop("cached_at", T0),
        **kwargs,
    )
    return calculate_metadata(profile)


def default_repositories() -> List[Repository]:
    return [
        make_repo(
            "projectX",
            readme="A CLI that turns notes into flashcards.",
            languages={"Python": 9000, "Shell": 1000},
            description="Flashcards from notes",
            stars=12,
            updated_days_ago=1,
        ),
        make_repo(
            "web-dash",
            readme="Dashboard for build metrics.",
            languages={"TypeScript": 5000, "CSS": 500},
            updated_days_ago=3,
        ),
        make_repo("dotfiles", primary_language="Shell", updated_days_ago=30),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def profile_source():
    return FakeProfileSource(lambda username: make_profile(username, default_repositories()))
