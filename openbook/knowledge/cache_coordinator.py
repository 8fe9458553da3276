"""
Cache Coordinator

Guarantees a consistent (Profile, KnowledgeBase) pair for a username.

Freshness rules:
  - profile:        now - cached_at < max_profile_age (time-bounded)
  - knowledge base: kb.profile_scraped_at == profile.cached_at (exact match)

Any rescrape therefore invalidates the whole knowledge base; summaries are
never regenerated incrementally. A failed scrape or generation fails the
call; stale data is never served as a fallback.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from ..errors import UpstreamError
from ..schema.core_schema import KnowledgeBase, Profile, utc_now
from ..sources.github_source import ProfileSource
from ..storage.object_store import Collection, ObjectStore
from .kb_generator import KnowledgeBaseGenerator

logger = logging.getLogger(__name__)


def is_profile_fresh(profile: Optional[Profile], now: datetime, max_age: timedelta) -> bool:
    if profile is None:
        return False
    return now - profile.cached_at < max_age


def is_knowledge_base_fresh(kb: Optional[KnowledgeBase], profile: Optional[Profile]) -> bool:
    if kb is None or profile is None:
        return False
    return kb.profile_scraped_at == profile.cached_at


class CacheCoordinator:
    def __init__(
        self,
        store: ObjectStore,
        profile_source: ProfileSource,
        kb_generator: KnowledgeBaseGenerator,
        max_profile_age: timedelta = timedelta(hours=24),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.profile_source = profile_source
        self.kb_generator = kb_generator
        self.max_profile_age = max_profile_age
        self.clock = clock or utc_now

    def ensure(self, username: str) -> Tuple[Profile, KnowledgeBase]:
        profile = self._ensure_profile(username)
        kb = self._ensure_knowledge_base(profile)
        return profile, kb

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------
    def _ensure_profile(self, username: str) -> Profile:
        cached = self._load(Collection.PROFILES, username)
        now = self.clock()

        if is_profile_fresh(cached, now, self.max_profile_age):
            age_hours = (now - cached.cached_at).total_seconds() / 3600
            logger.info(
                "Profile for %s is FRESH (age %.1fh, max %.1fh)",
                username,
                age_hours,
                self.max_profile_age.total_seconds() / 3600,
            )
            return cached

        logger.info("Profile stale or missing, scraping %s", username)
        try:
            profile = self.profile_source.scrape(username)
        except Exception as e:
            raise UpstreamError(f"Could not scrape profile for {username}: {e}") from e

        # Persisting stamps the authoritative snapshot time
        profile.cached_at = self.clock()
        self._save(Collection.PROFILES, username, profile)
        return profile

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------
    def _ensure_knowledge_base(self, profile: Profile) -> KnowledgeBase:
        username = profile.username
        cached = self._load(Collection.KNOWLEDGE_BASES, username)

        if is_knowledge_base_fresh(cached, profile):
            logger.info("Knowledge base for %s is FRESH (profile snapshot %s)", username, profile.cached_at)
            return cached

        if cached is not None:
            logger.info(
                "Knowledge base for %s is STALE (kb snapshot %s, profile snapshot %s)",
                username,
                cached.profile_scraped_at,
                profile.cached_at,
            )
        logger.info("Generating knowledge base for %s", username)
        try:
            kb = self.kb_generator.generate(profile)
        except Exception as e:
            raise UpstreamError(f"Could not generate knowledge base for {username}: {e}") from e

        self._save(Collection.KNOWLEDGE_BASES, username, kb)
        return kb

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------
    def _load(self, collection: Collection, key: str):
        try:
            return self.store.get(collection, key)
        except Exception as e:
            raise UpstreamError(f"Failed to load {collection.value}/{key}: {e}") from e

    def _save(self, collection: Collection, key: str, value) -> None:
        try:
            self.store.put(collection, key, value)
        except Exception as e:
            raise UpstreamError(f"Failed to save {collection.value}/{key}: {e}") from e
