"""Tests for the chat runtime: match first, then generation, then the apology."""

import pytest

from pipelines.errors import ChatbotNotFound, GenerationError, InvalidInput, SessionNotFound
from pipelines.models import CrawledPage, QAEntry
from runtime.conversation import (
    SOURCE_FALLBACK,
    SOURCE_GENERATED,
    SOURCE_MATCH,
    HISTORY_TURNS,
    ConversationRuntime,
    build_knowledge_context,
)
from tests.fakes import FakeGenerator


@pytest.fixture
def hours(store, chatbot):
    return store.create_entry(chatbot.id, QAEntry(
        question="What are your business hours?",
        answer="9-6 Mon-Fri",
        keywords=["hours", "open"],
    ))


@pytest.fixture
def session(store, chatbot):
    return store.create_session(chatbot.id)


@pytest.mark.asyncio
async def test_matched_answer_skips_generation(store, chatbot, hours, session):
    generator = FakeGenerator("should not be used")
    runtime = ConversationRuntime(store, generator=generator)

    reply = await runtime.respond(chatbot.id, session.id, "what time do you open")

    assert reply.source == SOURCE_MATCH
    assert reply.text == "9-6 Mon-Fri"
    assert reply.matched_entry_id == hours.id
    assert generator.prompts == []
    messages = store.list_messages(session.id)
    assert [(m.sender, m.matched_entry_id) for m in messages] == [("user", None), ("bot", hours.id)]
    assert reply.message_id == messages[-1].id


@pytest.mark.asyncio
async def test_unmatched_without_generator_apologizes(store, chatbot, hours, session):
    runtime = ConversationRuntime(store)

    reply = await runtime.respond(chatbot.id, session.id, "do you sell shoes")

    assert reply.source == SOURCE_FALLBACK
    assert reply.text == chatbot.fallback_message
    assert reply.to_dict()["matched_question_id"] is None


@pytest.mark.asyncio
async def test_unmatched_is_answered_from_crawled_content(store, chatbot, hours, session):
    store.save_crawled_page(chatbot.id, CrawledPage(
        url="https://example.com/shoes", raw_text="We stock running shoes in all sizes.", title="Shoes",
    ))
    generator = FakeGenerator("  Yes, we sell running shoes.  ")
    runtime = ConversationRuntime(store, generator=generator)

    reply = await runtime.respond(chatbot.id, session.id, "do you sell shoes")

    assert reply.source == SOURCE_GENERATED
    assert reply.text == "Yes, we sell running shoes."
    prompt = generator.prompts[0]
    assert "We stock running shoes in all sizes." in prompt
    assert prompt.rstrip().endswith("USER: do you sell shoes\nASSISTANT:")


@pytest.mark.asyncio
async def test_history_is_included_in_later_prompts(store, chatbot, hours, session):
    generator = FakeGenerator("Generated answer.")
    runtime = ConversationRuntime(store, generator=generator)

    await runtime.respond(chatbot.id, session.id, "what time do you open")
    await runtime.respond(chatbot.id, session.id, "and do you sell shoes")

    prompt = generator.prompts[-1]
    assert "USER: what time do you open" in prompt
    assert "BOT: 9-6 Mon-Fri" in prompt


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [GenerationError("timeout"), "   "])
async def test_generation_problems_fall_back(store, chatbot, session, response):
    runtime = ConversationRuntime(store, generator=FakeGenerator(response))

    reply = await runtime.respond(chatbot.id, session.id, "anything at all")

    assert reply.source == SOURCE_FALLBACK
    assert reply.text == chatbot.fallback_message


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", None])
async def test_missing_message_is_invalid(store, chatbot, session, message):
    runtime = ConversationRuntime(store)
    with pytest.raises(InvalidInput):
        await runtime.respond(chatbot.id, session.id, message)


@pytest.mark.asyncio
async def test_unknown_identifiers(store, chatbot, session):
    runtime = ConversationRuntime(store)
    with pytest.raises(ChatbotNotFound):
        await runtime.respond("missing", session.id, "hello")
    with pytest.raises(SessionNotFound):
        await runtime.respond(chatbot.id, "missing", "hello")


@pytest.mark.asyncio
async def test_session_must_belong_to_chatbot(store, chatbot, session):
    other = store.create_chatbot("Other")
    runtime = ConversationRuntime(store)
    with pytest.raises(InvalidInput):
        await runtime.respond(other.id, session.id, "hello")


@pytest.mark.asyncio
async def test_ended_session_rejects_messages(store, chatbot):
    runtime = ConversationRuntime(store)
    session = runtime.start_session(chatbot.id)
    ended = runtime.end_session(session.id)

    assert ended.ended_at is not None
    with pytest.raises(InvalidInput):
        await runtime.respond(chatbot.id, session.id, "hello")


@pytest.mark.asyncio
async def test_history_is_rebuilt_from_store(store, chatbot, hours, session):
    await ConversationRuntime(store).respond(chatbot.id, session.id, "what time do you open")

    generator = FakeGenerator("Generated answer.")
    fresh = ConversationRuntime(store, generator=generator)
    await fresh.respond(chatbot.id, session.id, "do you sell shoes")

    assert "BOT: 9-6 Mon-Fri" in generator.prompts[0]
    assert [t.sender for t in fresh.history(session.id)] == ["user", "bot", "user", "bot"]


@pytest.mark.asyncio
async def test_reply_survives_transcript_failure(store, chatbot, hours, session, monkeypatch):
    original = store.add_message

    def failing_for_bot(session_id, sender, text, matched_entry_id=None):
        if sender == "bot":
            raise RuntimeError("disk full")
        return original(session_id, sender, text, matched_entry_id=matched_entry_id)

    monkeypatch.setattr(store, "add_message", failing_for_bot)
    runtime = ConversationRuntime(store)

    reply = await runtime.respond(chatbot.id, session.id, "when are you open")

    assert reply.text == "9-6 Mon-Fri"
    assert reply.message_id is None


def test_knowledge_context_is_truncated():
    pages = [CrawledPage(url=f"https://example.com/{i}", raw_text="y" * 1000, title=f"P{i}") for i in range(5)]
    context = build_knowledge_context(pages, limit=1500)
    assert len(context) == 1500
    assert context.startswith("SOURCE: https://example.com/0\nTITLE: P0")


def test_session_cache_keeps_most_recent(store, chatbot):
    runtime = ConversationRuntime(store, max_sessions=3)

    sessions = [runtime.start_session(chatbot.id) for _ in range(5)]

    assert list(runtime._conversations) == [s.id for s in sessions[2:]]


@pytest.mark.asyncio
async def test_evicted_session_keeps_working(store, chatbot, hours):
    runtime = ConversationRuntime(store, max_sessions=1)
    first = runtime.start_session(chatbot.id)
    await runtime.respond(chatbot.id, first.id, "what time do you open")
    runtime.start_session(chatbot.id)
    assert runtime.history(first.id) == []

    reply = await runtime.respond(chatbot.id, first.id, "when are you open")

    assert reply.source == SOURCE_MATCH
    assert [t.sender for t in runtime.history(first.id)] == ["user", "bot", "user", "bot"]


@pytest.mark.asyncio
async def test_history_is_trimmed_to_window(store, chatbot, hours, session):
    runtime = ConversationRuntime(store)

    for i in range(HISTORY_TURNS):
        await runtime.respond(chatbot.id, session.id, f"what time do you open on day {i}")

    turns = runtime.history(session.id)
    assert len(turns) == HISTORY_TURNS
    assert turns[-2].text == f"what time do you open on day {HISTORY_TURNS - 1}"
