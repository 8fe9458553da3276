"""
Wiring for entry points: builds a ready SessionManager from Settings.
"""

import logging
from datetime import timedelta
from typing import Optional

from .chatbot.intent_router import IntentRouter
from .chatbot.llm_client import LanguageModel, LLMClient
from .chatbot.session_manager import SessionManager
from .config import Settings
from .knowledge.cache_coordinator import CacheCoordinator
from .knowledge.kb_generator import KnowledgeBaseGenerator
from .sources.github_source import GitHubProfileSource, ProfileSource
from .storage.object_store import FileObjectStore, ObjectStore

logger = logging.getLogger(__name__)


def build_session_manager(
    settings: Optional[Settings] = None,
    llm_client: Optional[LanguageModel] = None,
    profile_source: Optional[ProfileSource] = None,
    store: Optional[ObjectStore] = None,
) -> SessionManager:
    """Any collaborator passed in replaces the one built from settings."""
    settings = settings or Settings.from_env()

    llm_client = llm_client or LLMClient(model=settings.model, api_key=settings.google_api_key)
    profile_source = profile_source or GitHubProfileSource(token=settings.github_token)
    store = store or FileObjectStore(settings.storage_path)

    cache = CacheCoordinator(
        store=store,
        profile_source=profile_source,
        kb_generator=KnowledgeBaseGenerator(llm_client, max_workers=settings.kb_max_workers),
        max_profile_age=timedelta(hours=settings.profile_max_age_hours),
    )
    logger.debug(
        "Session manager ready (model=%s, storage=%s, max profile age=%sh)",
        settings.model,
        settings.storage_path,
        settings.profile_max_age_hours,
    )
    return SessionManager(
        store=store,
        cache=cache,
        router=IntentRouter(llm_client),
        llm_client=llm_client,
        history_window=settings.history_window,
    )
