"""
Core Schema Definitions for the persona chat service

A developer's public profile is cached, turned into a knowledge base of
per-project summaries, and used to answer chat messages in their voice.

Pipeline:
  (1) Profile (scraped, time-bounded cache) → KnowledgeBase (bound to one snapshot)
  (2) User message + repository names → Intent (General / Detailed)
  (3) Persona + context fragment + 5 recent messages → Answer
"""

from enum import Enum
from typing import Dict, List, Literal, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# PROFILE (scraped from the code-hosting provider)
# ============================================================================

class LanguageInfo(BaseModel):
    """Byte share of one language inside a single repository."""
    bytes: int = Field(0, description="Bytes of code written in this language")
    percentage: float = Field(0.0, description="Share of the repository's total bytes")


class LanguageStat(BaseModel):
    """Language usage aggregated over every repository of a profile."""
    percentage: float = Field(0.0, description="Share of all bytes across repositories")
    repos_using_language: int = Field(0, description="Number of repositories using it")


class Repository(BaseModel):
    name: str = Field(..., description="Repository name, unique within a profile")
    description: Optional[str] = None
    primary_language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    is_fork: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    url: Optional[str] = None
    readme_content: Optional[str] = Field(None, description="Cleaned readme text")
    languages: Dict[str, LanguageInfo] = Field(default_factory=dict)


class Profile(BaseModel):
    """
    Cached snapshot of a developer profile.
    `cached_at` marks when the snapshot was captured; a knowledge base is
    only valid for the exact snapshot it was generated from.
    """
    username: str = Field(..., description="Profile login, used as the storage key")
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cached_at: datetime = Field(default_factory=utc_now)

    repositories: List[Repository] = Field(default_factory=list)

    total_stars: int = 0
    language_stats: Dict[str, LanguageStat] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.username

    def find_repository(self, name: str) -> Optional[Repository]:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None


# ============================================================================
# KNOWLEDGE BASE (LLM-derived, bound to one profile snapshot)
# ============================================================================

class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def _check_total(self) -> "TokenUsage":
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError(
                f"total_tokens={self.total_tokens} must equal "
                f"prompt_tokens + completion_tokens ({self.prompt_tokens} + {self.completion_tokens})"
            )
        return self

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> "TokenUsage":
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage.of(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )


class ProjectSummary(BaseModel):
    repository_name: str
    ai_summary: str


class KnowledgeBase(BaseModel):
    """
    Per-project summaries for one profile snapshot.
    Fresh only while `profile_scraped_at == profile.cached_at`.
    """
    username: str
    generated_at: datetime = Field(default_factory=utc_now)
    profile_scraped_at: datetime = Field(..., description="cached_at of the source profile")
    project_summaries: List[ProjectSummary] = Field(
        default_factory=list,
        description="Unordered; reflects completion order of the generation fan-out",
    )
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)

    def summary_for(self, repository_name: str) -> Optional[ProjectSummary]:
        for summary in self.project_summaries:
            if summary.repository_name == repository_name:
                return summary
        return None


# ============================================================================
# CHAT SESSION
# ============================================================================

class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class ChatSession(BaseModel):
    """
    Append-only transcript. Each exchange adds one user message, one
    assistant message and one TokenUsage record.
    """
    session_id: str = Field(..., description="Globally unique session key")
    username: str
    created_at: datetime = Field(default_factory=utc_now)
    last_message_at: datetime = Field(default_factory=utc_now)
    messages: List[ChatMessage] = Field(default_factory=list)
    token_history: List[TokenUsage] = Field(default_factory=list)
    total_tokens_used: int = 0


# ============================================================================
# INTENT / RESPONSES
# ============================================================================

class ContextMode(str, Enum):
    """Which context fragment is sent with a message."""
    GENERAL = "General"
    DETAILED = "Detailed"


class Intent(BaseModel):
    mode: ContextMode = ContextMode.GENERAL
    entity_name: Optional[str] = None

    @classmethod
    def general(cls) -> "Intent":
        return cls(mode=ContextMode.GENERAL)

    @classmethod
    def detailed(cls, entity_name: str) -> "Intent":
        return cls(mode=ContextMode.DETAILED, entity_name=entity_name)


class ChatResponse(BaseModel):
    message: str
    tokens_used: int
    context_mode: ContextMode
    matched_repository: Optional[str] = None


# ============================================================================
# LANGUAGE MODEL / PROVIDER BOUNDARY
# ============================================================================

class PromptMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class Completion(BaseModel):
    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class RateLimitInfo(BaseModel):
    limit: int = 0
    remaining: int = 0
    reset_time: Optional[datetime] = None
