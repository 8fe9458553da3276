"""
Session Manager (main chat orchestrator).

Pipeline for one message:
- Load the session (missing → SessionNotFoundError)
- Ensure a consistent (profile, knowledge base) pair
- Classify the message: General, or Detailed about one repository
- Render persona + context fragment
- Send persona, context, the last N prior messages and the new user turn
  to the model in a single call
- Append user message, assistant message and token usage, then persist
  the whole session snapshot
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Iterator, List, Optional

from ..config import DEFAULT_HISTORY_WINDOW
from ..errors import SessionNotFoundError, UpstreamError
from ..knowledge.cache_coordinator import CacheCoordinator
from ..schema.core_schema import (
    ChatMessage,
    ChatResponse,
    ChatSession,
    Completion,
    ContextMode,
    PromptMessage,
    utc_now,
)
from ..storage.object_store import Collection, ObjectStore
from . import context_assembler
from .intent_router import IntentRouter
from .llm_client import LanguageModel

logger = logging.getLogger(__name__)


class _SessionLock:
    """A lock plus the number of callers currently holding or waiting on it."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


class SessionManager:
    """Creates, runs, lists and deletes persona chat sessions."""

    def __init__(
        self,
        store: ObjectStore,
        cache: CacheCoordinator,
        router: IntentRouter,
        llm_client: LanguageModel,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Args:
            store: Persistence for sessions.
            cache: Supplies the (profile, knowledge base) pair per username.
            router: Classifies each message as General or Detailed.
            llm_client: Model used for the reply.
            history_window: Number of prior messages sent with each new turn.
            clock: Source of timestamps (UTC).
        """
        self.store = store
        self.cache = cache
        self.router = router
        self.llm_client = llm_client
        self.history_window = history_window
        self.clock = clock or utc_now

        # Serializes operations on a single session; other ids never wait.
        # Entries live only while some caller holds or waits on them.
        self._session_locks: Dict[str, _SessionLock] = {}
        self._locks_guard = Lock()

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------
    def start_session(self, username: str) -> ChatSession:
        # Warm the cache so the first reply never pays for a scrape
        self.cache.ensure(username)

        now = self.clock()
        session = ChatSession(
            session_id=str(uuid.uuid4()),
            username=username,
            created_at=now,
            last_message_at=now,
        )
        self._save(session)
        logger.info("Started session %s for %s", session.session_id, username)
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        try:
            return self.store.get(Collection.SESSIONS, session_id)
        except Exception as e:
            raise UpstreamError(f"Failed to load session {session_id}: {e}") from e

    def list_sessions(self, username: str) -> List[str]:
        try:
            session_ids = self.store.list_session_ids(username)
        except Exception as e:
            raise UpstreamError(f"Failed to list sessions for {username}: {e}") from e
        logger.info("Found %d chat sessions for %s", len(session_ids), username)
        return session_ids

    def delete_session(self, session_id: str) -> None:
        # Waits for an in-flight exchange so its save cannot resurrect the session
        with self._locked(session_id):
            try:
                self.store.delete(Collection.SESSIONS, session_id)
            except Exception as e:
                raise UpstreamError(f"Failed to delete session {session_id}: {e}") from e
        logger.info("Deleted session %s", session_id)

    # ---------------------------------------------------------------------
    # Main entrypoint
    # ---------------------------------------------------------------------
    def send_message(self, session_id: str, user_text: str) -> ChatResponse:
        with self._locked(session_id):
            return self._send_message(session_id, user_text)

    def _send_message(self, session_id: str, user_text: str) -> ChatResponse:
        # 1) Load session
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        # 2) Fresh profile + knowledge base
        profile, kb = self.cache.ensure(session.username)

        # 3) Route
        repo_names = [r.name for r in profile.repositories]
        intent = self.router.classify(user_text, repo_names)

        # 4) Render context; an unknown repository falls back to General
        repo = profile.find_repository(intent.entity_name) if intent.entity_name else None
        if repo is not None:
            context_mode = ContextMode.DETAILED
            context = context_assembler.build_detailed_context(profile, repo, kb)
        else:
            context_mode = ContextMode.GENERAL
            context = context_assembler.build_general_context(profile, kb)
        matched = repo.name if repo is not None else None
        logger.info("Intent: %s, Repo: %s", context_mode.value, matched or "none")

        # 5) One model call with persona, context, recent history and the new turn
        messages = self._compose(context_assembler.build_persona(profile), context, session, user_text)
        completion = self._complete(messages)

        # 6) Append exactly one exchange
        now = self.clock()
        session.messages.append(ChatMessage(role="user", content=user_text, timestamp=now))
        session.messages.append(ChatMessage(role="assistant", content=completion.text, timestamp=now))
        session.token_history.append(completion.usage)
        session.total_tokens_used += completion.usage.total_tokens
        session.last_message_at = now

        # 7) Persist the whole snapshot
        self._save(session)
        logger.info("Message processed. Tokens: %d", completion.usage.total_tokens)

        return ChatResponse(
            message=completion.text,
            tokens_used=completion.usage.total_tokens,
            context_mode=context_mode,
            matched_repository=matched,
        )

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def _compose(
        self, persona: str, context: str, session: ChatSession, user_text: str
    ) -> List[PromptMessage]:
        messages = [
            PromptMessage(role="system", content=persona),
            PromptMessage(role="system", content=context),
        ]
        recent = session.messages[-self.history_window:] if self.history_window > 0 else []
        for msg in recent:
            messages.append(PromptMessage(role=msg.role, content=msg.content))
        messages.append(PromptMessage(role="user", content=user_text))
        return messages

    def _complete(self, messages: List[PromptMessage]) -> Completion:
        try:
            return self.llm_client.complete(messages)
        except Exception as e:
            raise UpstreamError(f"Language model call failed: {e}") from e

    def _save(self, session: ChatSession) -> None:
        try:
            self.store.put(Collection.SESSIONS, session.session_id, session)
        except Exception as e:
            raise UpstreamError(f"Failed to save session {session.session_id}: {e}") from e

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = self._session_locks[session_id] = _SessionLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._session_locks[session_id]
