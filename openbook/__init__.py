"""
Persona chat over a developer's public GitHub profile.

This package exposes a clean public API while the actual implementation
is organized into subpackages:

- openbook.schema:     Pydantic schemas (Profile, KnowledgeBase, ChatSession, ...)
- openbook.knowledge:  Knowledge base generation & cache freshness
- openbook.chatbot:    LLM client, intent routing, context assembly, sessions
- openbook.storage:    Object store (in-memory, JSON files)
- openbook.sources:    GitHub profile source
"""

# Core schemas
from .schema.core_schema import (
    ChatMessage,
    ChatResponse,
    ChatSession,
    ContextMode,
    Intent,
    KnowledgeBase,
    Profile,
    ProjectSummary,
    Repository,
    TokenUsage,
)
from .errors import NotFoundError, OpenBookError, SessionNotFoundError, UpstreamError
from .config import Settings

# Core classes
from .chatbot.llm_client import LLMClient
from .chatbot.intent_router import IntentRouter
from .chatbot.session_manager import SessionManager
from .knowledge.kb_generator import KnowledgeBaseGenerator
from .knowledge.cache_coordinator import CacheCoordinator
from .storage.object_store import FileObjectStore, InMemoryObjectStore
from .sources.github_source import GitHubProfileSource
from .service import build_session_manager

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "ChatSession",
    "ContextMode",
    "Intent",
    "KnowledgeBase",
    "Profile",
    "ProjectSummary",
    "Repository",
    "TokenUsage",
    "NotFoundError",
    "OpenBookError",
    "SessionNotFoundError",
    "UpstreamError",
    "Settings",
    "LLMClient",
    "IntentRouter",
    "SessionManager",
    "KnowledgeBaseGenerator",
    "CacheCoordinator",
    "FileObjectStore",
    "InMemoryObjectStore",
    "GitHubProfileSource",
    "build_session_manager",
]
