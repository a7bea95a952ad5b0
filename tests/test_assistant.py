"""
Tests for the turn assistant and daily memory consolidation.
"""
from datetime import date, datetime
from unittest.mock import patch

import pytest

from assistant import Assistant
from config import PersonaStore, StateStore
from consolidation import digest_pending_days, summarize_day
from conftest import FakeEmbedder
from conversation_log import ConversationLog
from errors import EmbeddingError, PersistenceError, RemoteError
from memory import VectorMemoryStore
from prompts import DIGEST_INSTRUCTION


class FakeClient:
    """Completion stub: echoes a fixed answer, or a digest for digest requests."""

    def __init__(self, answer="answer", fail=None):
        self.answer = answer
        self.fail = fail
        self.calls = []

    def complete(self, model, system_prompt, temperature, max_tokens, messages,
                 stream=False, on_fragment=None):
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "stream": stream})
        if self.fail is not None:
            raise self.fail
        if system_prompt == DIGEST_INSTRUCTION:
            return "digest of " + " | ".join(m.content for m in messages)
        if on_fragment:
            on_fragment(self.answer)
        return self.answer


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2024, 5, 3, 12, 0))


@pytest.fixture
def log(settings, clock):
    return ConversationLog(settings.log_dir, clock=clock)


@pytest.fixture
def embedder():
    return FakeEmbedder({})


@pytest.fixture
def memory(settings, embedder):
    return VectorMemoryStore(settings.memory_path, embedder)


def _assistant(settings, estimator, log, memory, client):
    return Assistant(
        settings=settings,
        client=client,
        estimator=estimator,
        log=log,
        memory=memory,
        persona_store=PersonaStore(settings.config_path),
        state_store=StateStore(settings.state_path),
    )


# --- respond ---


def test_respond_logs_turn_and_streams(settings, estimator, log, memory, embedder):
    embedder.error = EmbeddingError("offline")
    client = FakeClient("Hello!")
    seen = []
    assistant = _assistant(settings, estimator, log, memory, client)
    try:
        assert assistant.respond("hi", on_fragment=seen.append) == "Hello!"
    finally:
        assistant.close()
    assert seen == ["Hello!"]
    assert [(t.request, t.response) for t in log.read()] == [("hi", "Hello!")]


def test_respond_puts_persona_and_memories_in_system_message(settings, estimator, log, memory, embedder):
    embedder.vectors = {"tea": [1.0, 0.0], "coffee": [0.0, 1.0], "what do I drink?": [1.0, 0.1]}
    memory.append("tea")
    memory.append("coffee")
    PersonaStore(settings.config_path).set(user_name="Sam", ai_name="Max", bio="likes hiking")
    client = FakeClient()
    assistant = _assistant(settings, estimator, log, memory, client)
    try:
        assistant.respond("what do I drink?")
    finally:
        assistant.close()

    system = client.calls[0]["messages"][0]
    assert system.role == "system"
    assert "You are Max. User = Sam. Bio: likes hiking." in system.content
    assert system.content.index("tea") < system.content.index("coffee")


def test_respond_includes_todays_history(settings, estimator, log, memory, embedder):
    embedder.error = EmbeddingError("offline")
    log.append("earlier", "before")
    client = FakeClient()
    assistant = _assistant(settings, estimator, log, memory, client)
    try:
        assistant.respond("now")
    finally:
        assistant.close()
    contents = [m.content for m in client.calls[0]["messages"]]
    assert contents[1:] == ["earlier", "before", "now"]


def test_respond_failure_writes_nothing(settings, estimator, log, memory, embedder):
    embedder.error = EmbeddingError("offline")
    assistant = _assistant(settings, estimator, log, memory, FakeClient(fail=RemoteError("down")))
    try:
        with pytest.raises(RemoteError):
            assistant.respond("hi")
    finally:
        assistant.close()
    assert log.read() == []


def test_respond_survives_log_write_failure(settings, estimator, log, memory, embedder):
    embedder.error = EmbeddingError("offline")
    assistant = _assistant(settings, estimator, log, memory, FakeClient("ok"))
    try:
        with patch.object(log, "append", side_effect=PersistenceError("disk full")):
            assert assistant.respond("hi") == "ok"
    finally:
        assistant.close()


def test_respond_uses_configured_mode(settings, estimator, log, memory, embedder):
    embedder.error = EmbeddingError("offline")
    assistant = _assistant(settings, estimator, log, memory, FakeClient())
    with patch.object(assistant.pipeline, "run", return_value="x") as run:
        assistant.respond("hi")
        assistant.respond("hi", fusion=True)
    assistant.close()
    assert run.call_args_list[0].args[3] is False
    assert run.call_args_list[1].args[3] is True


# --- consolidation ---


def _log_day(log, clock, day, pairs):
    saved = clock.now
    clock.now = datetime.combine(day, datetime.min.time())
    for request, response in pairs:
        log.append(request, response)
    clock.now = saved


def test_summarize_day_saves_digest(settings, estimator, log, memory, embedder, clock):
    _log_day(log, clock, date(2024, 5, 1), [("q1", "a1"), ("q2", "a2")])
    embedder.vectors = {"digest of q1 | a1 | q2 | a2": [1.0, 0.0]}
    client = FakeClient()
    digest = summarize_day(settings, client, estimator, log, memory, date(2024, 5, 1))
    assert digest == "digest of q1 | a1 | q2 | a2"
    assert [r.text for r in memory.records()] == [digest]
    call = client.calls[0]
    assert call["system_prompt"] == DIGEST_INSTRUCTION
    assert call["stream"] is False
    assert [m.role for m in call["messages"]] == ["user", "assistant", "user", "assistant"]


def test_summarize_empty_day_does_nothing(settings, estimator, log, memory):
    client = FakeClient()
    assert summarize_day(settings, client, estimator, log, memory, date(2024, 5, 1)) is None
    assert client.calls == []


def test_digest_pending_days_once_per_day(settings, estimator, log, memory, embedder, clock):
    _log_day(log, clock, date(2024, 5, 1), [("a", "b")])
    _log_day(log, clock, date(2024, 5, 2), [("c", "d")])
    log.append("today", "not yet")
    embedder.vectors = {"digest of a | b": [1.0, 0.0], "digest of c | d": [0.0, 1.0]}
    state = StateStore(settings.state_path)
    client = FakeClient()

    assert digest_pending_days(settings, client, estimator, log, memory, state, date(2024, 5, 3)) == 2
    assert [r.text for r in memory.records()] == ["digest of a | b", "digest of c | d"]
    assert state.get().last_digest_day == "2024-05-02"

    assert digest_pending_days(settings, client, estimator, log, memory, state, date(2024, 5, 3)) == 0
    assert len(client.calls) == 2


def test_digest_failure_is_retried_later(settings, estimator, log, memory, clock):
    _log_day(log, clock, date(2024, 5, 1), [("a", "b")])
    state = StateStore(settings.state_path)
    failing = FakeClient(fail=RemoteError("down"))
    assert digest_pending_days(settings, failing, estimator, log, memory, state, date(2024, 5, 3)) == 0
    assert state.get().last_digest_day is None


def test_background_digest_after_turn(settings, estimator, log, memory, embedder, clock):
    _log_day(log, clock, date(2024, 5, 1), [("old", "turn")])
    embedder.vectors = {"digest of old | turn": [1.0], "new": [1.0]}
    assistant = _assistant(settings, estimator, log, memory, FakeClient())
    try:
        assistant.respond("new")
    finally:
        assistant.close()
    assert [r.text for r in memory.records()] == ["digest of old | turn"]
    assert StateStore(settings.state_path).get().last_digest_day == "2024-05-01"


def test_forced_digest_is_not_repeated_next_day(settings, estimator, log, memory, embedder, clock):
    log.append("q", "a")
    embedder.vectors = {"digest of q | a": [1.0, 0.0]}
    client = FakeClient()
    assistant = _assistant(settings, estimator, log, memory, client)
    try:
        assert assistant.digest_today() == "digest of q | a"
    finally:
        assistant.close()
    state = StateStore(settings.state_path)
    assert state.get().forced_digest_days == ("2024-05-03",)

    assert digest_pending_days(settings, client, estimator, log, memory, state, date(2024, 5, 4)) == 1
    assert [r.text for r in memory.records()] == ["digest of q | a"]
    assert len(client.calls) == 1
    assert state.get().last_digest_day == "2024-05-03"
    assert state.get().forced_digest_days == ()
