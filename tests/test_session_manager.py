import threading
import time
from datetime import timedelta

import pytest

from conftest import FakeLanguageModel, persona_responder
from openbook.chatbot.intent_router import IntentRouter
from openbook.chatbot.session_manager import SessionManager
from openbook.errors import NotFoundError, SessionNotFoundError, UpstreamError
from openbook.knowledge.cache_coordinator import CacheCoordinator
from openbook.knowledge.kb_generator import KnowledgeBaseGenerator
from openbook.schema.core_schema import ContextMode, Intent, TokenUsage
from openbook.storage.object_store import Collection


def build_manager(store, profile_source, clock, llm, router=None, history_window=5):
    cache = CacheCoordinator(
        store,
        profile_source,
        KnowledgeBaseGenerator(llm, clock=clock),
        max_profile_age=timedelta(hours=24),
        clock=clock,
    )
    return SessionManager(
        store=store,
        cache=cache,
        router=router or IntentRouter(llm),
        llm_client=llm,
        history_window=history_window,
        clock=clock,
    )


@pytest.fixture
def llm():
    return FakeLanguageModel(persona_responder(classification="GENERAL"))


@pytest.fixture
def manager(store, profile_source, clock, llm):
    return build_manager(store, profile_source, clock, llm)


def test_start_session_on_cold_cache_builds_profile_and_kb(manager, profile_source, llm, store):
    session = manager.start_session("alice")

    assert profile_source.scrapes == ["alice"]
    # One summary call per repository with a readme
    assert len(llm.summary_calls) == 2
    assert session.username == "alice"
    assert session.messages == []
    assert session.token_history == []
    assert session.total_tokens_used == 0
    assert store.exists(Collection.SESSIONS, session.session_id)


def test_detailed_question_end_to_end(store, profile_source, clock):
    llm = FakeLanguageModel(persona_responder(classification="DETAILED:projectX", reply="I built projectX."))
    manager = build_manager(store, profile_source, clock, llm)
    session = manager.start_session("alice")

    response = manager.send_message(session.session_id, "Tell me about projectX")

    assert response.context_mode is ContextMode.DETAILED
    assert response.matched_repository == "projectX"
    assert response.message == "I built projectX."
    assert response.tokens_used == 57

    stored = manager.get_session(session.session_id)
    assert [m.role for m in stored.messages] == ["user", "assistant"]
    assert stored.messages[0].content == "Tell me about projectX"
    assert stored.messages[1].content == "I built projectX."

    reply_call = llm.calls[-1]
    assert "=== PROJECT: projectX ===" in reply_call[1].content
    assert "Summary of the project." in reply_call[1].content


def test_general_question_uses_general_context(manager, llm):
    session = manager.start_session("alice")

    response = manager.send_message(session.session_id, "What languages do you use?")

    assert response.context_mode is ContextMode.GENERAL
    assert response.matched_repository is None
    assert "=== PROJECTS BY LANGUAGE ===" in llm.calls[-1][1].content


def test_token_accounting_over_several_exchanges(manager, clock):
    session = manager.start_session("alice")

    for i in range(3):
        clock.advance(timedelta(seconds=1))
        manager.send_message(session.session_id, f"question {i}")

    stored = manager.get_session(session.session_id)
    assert len(stored.messages) == 6
    assert len(stored.token_history) == 3
    assert stored.token_history[0] == TokenUsage.of(50, 7)
    assert stored.total_tokens_used == sum(u.total_tokens for u in stored.token_history)
    assert stored.last_message_at == clock.now
    timestamps = [m.timestamp for m in stored.messages]
    assert timestamps == sorted(timestamps)


def test_prompt_carries_last_five_messages_in_order(manager, llm):
    session = manager.start_session("alice")
    for i in range(4):
        manager.send_message(session.session_id, f"q{i}")

    manager.send_message(session.session_id, "latest")

    messages = llm.calls[-1]
    assert [m.role for m in messages[:2]] == ["system", "system"]
    assert messages[0].content.startswith("You are Alice Example")
    history = [(m.role, m.content) for m in messages[2:-1]]
    assert history == [
        ("assistant", "Hi, I build things."),
        ("user", "q2"),
        ("assistant", "Hi, I build things."),
        ("user", "q3"),
        ("assistant", "Hi, I build things."),
    ]
    assert (messages[-1].role, messages[-1].content) == ("user", "latest")


def test_unknown_repository_falls_back_to_general(store, profile_source, clock, llm):
    class GhostRouter:
        def classify(self, utterance, names):
            return Intent.detailed("ghost-repo")

    manager = build_manager(store, profile_source, clock, llm, router=GhostRouter())
    session = manager.start_session("alice")

    response = manager.send_message(session.session_id, "Tell me about ghost-repo")

    assert response.context_mode is ContextMode.GENERAL
    assert response.matched_repository is None


def test_send_to_missing_session_raises_not_found(manager):
    with pytest.raises(SessionNotFoundError) as excinfo:
        manager.send_message("no-such-session", "hello")

    assert isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.session_id == "no-such-session"


def test_model_failure_leaves_session_untouched(store, profile_source, clock):
    state = {"fail": False}
    base = persona_responder()

    def responder(messages):
        if state["fail"] and messages[0].content.startswith("You are Alice"):
            raise RuntimeError("503")
        return base(messages)

    manager = build_manager(store, profile_source, clock, FakeLanguageModel(responder))
    session = manager.start_session("alice")
    state["fail"] = True

    with pytest.raises(UpstreamError):
        manager.send_message(session.session_id, "hello")

    stored = manager.get_session(session.session_id)
    assert stored.messages == []
    assert stored.total_tokens_used == 0


def test_list_and_delete_sessions(manager):
    first = manager.start_session("alice")
    second = manager.start_session("alice")
    other = manager.start_session("bob")

    assert sorted(manager.list_sessions("alice")) == sorted([first.session_id, second.session_id])
    assert manager.list_sessions("bob") == [other.session_id]

    manager.delete_session(first.session_id)

    assert manager.get_session(first.session_id) is None
    assert manager.list_sessions("alice") == [second.session_id]


def test_session_ids_are_unique(manager):
    ids = {manager.start_session("alice").session_id for _ in range(5)}

    assert len(ids) == 5


def test_concurrent_sends_on_one_session_keep_every_exchange(store, profile_source, clock):
    base = persona_responder()

    def responder(messages):
        if messages[0].content.startswith("You are Alice"):
            # Widen the read-modify-write window
            time.sleep(0.01)
        return base(messages)

    manager = build_manager(store, profile_source, clock, FakeLanguageModel(responder))
    session = manager.start_session("alice")
    senders = [
        threading.Thread(target=manager.send_message, args=(session.session_id, f"question {i}"))
        for i in range(8)
    ]

    for t in senders:
        t.start()
    for t in senders:
        t.join()

    stored = manager.get_session(session.session_id)
    assert len(stored.messages) == 16
    assert len(stored.token_history) == 8
    assert stored.total_tokens_used == 8 * 57
    assert sorted(m.content for m in stored.messages if m.role == "user") == sorted(
        f"question {i}" for i in range(8)
    )


def test_delete_waits_for_in_flight_exchange(store, profile_source, clock):
    base = persona_responder()
    entered = threading.Event()
    release = threading.Event()

    def responder(messages):
        if messages[0].content.startswith("You are Alice"):
            entered.set()
            release.wait(timeout=5)
        return base(messages)

    manager = build_manager(store, profile_source, clock, FakeLanguageModel(responder))
    session = manager.start_session("alice")

    sender = threading.Thread(target=manager.send_message, args=(session.session_id, "hello"))
    sender.start()
    assert entered.wait(timeout=5)

    deleter = threading.Thread(target=manager.delete_session, args=(session.session_id,))
    deleter.start()
    deleter.join(timeout=0.1)
    assert deleter.is_alive()

    release.set()
    sender.join(timeout=5)
    deleter.join(timeout=5)

    assert manager.get_session(session.session_id) is None
    with pytest.raises(SessionNotFoundError):
        manager.send_message(session.session_id, "still there?")


def test_session_locks_are_released_after_use(manager):
    for i in range(50):
        with pytest.raises(SessionNotFoundError):
            manager.send_message(f"missing-{i}", "hello")
    session = manager.start_session("alice")
    manager.send_message(session.session_id, "hello")
    manager.delete_session(session.session_id)

    assert manager._session_locks == {}
