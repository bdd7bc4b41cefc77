"""Tests for the SQLAlchemy knowledge store."""

from datetime import timedelta

import pytest

from pipelines.errors import ChatbotNotFound, EntryNotFound, InvalidInput, SessionNotFound
from pipelines.models import CrawledPage, EntryState, QAEntry
from services.shared.models import ChatSessionRow, utcnow


def entry(question="What are your hours?", answer="9 to 5.", keywords=("hours", "open")):
    return QAEntry(question=question, answer=answer, keywords=list(keywords))


def test_create_chatbot_defaults(store):
    chatbot = store.create_chatbot("  Shop  ")
    assert chatbot.name == "Shop"
    assert chatbot.id
    assert chatbot.fallback_message.startswith("I'm sorry")
    assert store.get_chatbot(chatbot.id) == chatbot


def test_create_chatbot_requires_name(store):
    with pytest.raises(InvalidInput):
        store.create_chatbot("   ")


def test_unknown_chatbot(store):
    with pytest.raises(ChatbotNotFound):
        store.get_chatbot("nope")
    with pytest.raises(ChatbotNotFound):
        store.create_entry("nope", entry())


def test_entries_round_trip_in_creation_order(store, chatbot):
    first = store.create_entry(chatbot.id, entry())
    second = store.create_entry(chatbot.id, entry("How do I return?", "Use the form.", ["return"]))

    entries = store.list_active_entries(chatbot.id)

    assert [e.id for e in entries] == [first.id, second.id]
    assert entries[0].keywords == ["hours", "open"]
    assert entries[0].chatbot_id == chatbot.id
    assert entries[0].state == EntryState.ACTIVE


def test_soft_delete_retires_entry(store, chatbot):
    kept = store.create_entry(chatbot.id, entry())
    retired = store.create_entry(chatbot.id, entry("Old question?", "Old answer.", ["old"]))

    store.soft_delete_entry(retired.id)

    assert [e.id for e in store.list_active_entries(chatbot.id)] == [kept.id]
    assert store.get_entry(retired.id).state == EntryState.RETIRED
    with pytest.raises(EntryNotFound):
        store.soft_delete_entry(9999)


def test_update_entry_merges_fields(store, chatbot):
    created = store.create_entry(chatbot.id, entry())

    updated = store.update_entry(created.id, answer="10 to 6.", keywords=["Hours", "TIME"])

    assert updated.question == created.question
    assert updated.answer == "10 to 6."
    assert updated.keywords == ["hours", "time"]
    assert store.get_entry(created.id).answer == "10 to 6."


def test_update_entry_validates(store, chatbot):
    created = store.create_entry(chatbot.id, entry())
    with pytest.raises(InvalidInput):
        store.update_entry(created.id, keywords=[])
    assert store.get_entry(created.id).keywords == ["hours", "open"]


def test_update_retired_entry_is_not_found(store, chatbot):
    created = store.create_entry(chatbot.id, entry())
    store.soft_delete_entry(created.id)
    with pytest.raises(EntryNotFound):
        store.update_entry(created.id, answer="new")


def test_crawled_pages_are_append_only(store, chatbot):
    store.save_crawled_page(chatbot.id, CrawledPage(url="https://example.com/", raw_text="first"))
    store.save_crawled_page(chatbot.id, CrawledPage(url="https://example.com/", raw_text="second"))

    pages = store.list_crawled_pages(chatbot.id)

    assert [p.raw_text for p in pages] == ["second", "first"]
    assert pages[0].crawled_at.tzinfo is not None


def test_crawled_page_text_is_truncated(store, chatbot):
    saved = store.save_crawled_page(chatbot.id, CrawledPage(url="https://example.com/", raw_text="x" * 9000))
    assert len(saved.raw_text) == 6000


def test_session_lifecycle(store, chatbot):
    session = store.create_session(chatbot.id, user_ip="203.0.113.7", user_agent="pytest")
    store.add_message(session.id, "user", "hello")
    store.add_message(session.id, "bot", "hi there")

    ended = store.end_session(session.id)

    assert ended.message_count == 2
    assert ended.ended_at is not None
    assert ended.duration_seconds >= 0
    assert [m.sender for m in store.list_messages(session.id)] == ["user", "bot"]


def test_messages_require_known_session_and_sender(store, chatbot):
    with pytest.raises(SessionNotFound):
        store.add_message("missing", "user", "hello")
    session = store.create_session(chatbot.id)
    with pytest.raises(InvalidInput):
        store.add_message(session.id, "robot", "hello")


def test_analytics(store, chatbot):
    hours = store.create_entry(chatbot.id, entry())
    returns = store.create_entry(chatbot.id, entry("How do I return?", "Use the form.", ["return"]))
    session = store.create_session(chatbot.id)
    store.add_message(session.id, "bot", "9 to 5.", matched_entry_id=hours.id)
    store.add_message(session.id, "bot", "9 to 5.", matched_entry_id=hours.id)
    store.add_message(session.id, "bot", "Use the form.", matched_entry_id=returns.id)
    store.add_message(session.id, "user", "hours?", matched_entry_id=None)

    top = store.top_matched_entries(chatbot.id)
    stats = store.session_stats(chatbot.id)

    assert top == [
        {"entry_id": hours.id, "question": "What are your hours?", "count": 2},
        {"entry_id": returns.id, "question": "How do I return?", "count": 1},
    ]
    assert stats["total_sessions"] == 1
    assert stats["total_messages"] == 4
    assert stats["avg_duration_seconds"] is None


def test_update_and_retire_chatbot(store, chatbot):
    updated = store.update_chatbot(chatbot.id, welcome_message=" Welcome back! ")
    assert updated.welcome_message == "Welcome back!"
    assert updated.name == chatbot.name

    with pytest.raises(InvalidInput):
        store.update_chatbot(chatbot.id, fallback_message="  ")
    with pytest.raises(ChatbotNotFound):
        store.update_chatbot("nope", name="Other")

    other = store.create_chatbot("Other Shop", chatbot_id="other")
    store.retire_chatbot(chatbot.id)
    assert store.get_chatbot(chatbot.id).is_active is False
    assert [c.id for c in store.list_chatbots()] == [other.id]
    assert {c.id for c in store.list_chatbots(include_inactive=True)} == {chatbot.id, other.id}


def test_list_sessions_newest_first(store, chatbot):
    first = store.create_session(chatbot.id)
    second = store.create_session(chatbot.id)
    with store.Session() as session, session.begin():
        session.get(ChatSessionRow, first.id).started_at = utcnow() - timedelta(hours=1)

    assert [s.id for s in store.list_sessions(chatbot.id)] == [second.id, first.id]
    assert [s.id for s in store.list_sessions(chatbot.id, limit=1)] == [second.id]


def test_recent_queries_are_user_messages_only(store, chatbot):
    session = store.create_session(chatbot.id)
    for text in ("first question", "second question"):
        store.add_message(session.id, "user", text)
        store.add_message(session.id, "bot", "an answer")

    recent = store.recent_queries(chatbot.id)

    assert [r["query"] for r in recent] == ["second question", "first question"]
    assert recent[0]["session_id"] == session.id
    assert len(store.recent_queries(chatbot.id, limit=1)) == 1


def test_daily_session_counts(store, chatbot):
    today = utcnow().date()
    store.create_session(chatbot.id)
    store.create_session(chatbot.id)
    old = store.create_session(chatbot.id)
    with store.Session() as session, session.begin():
        session.get(ChatSessionRow, old.id).started_at = utcnow() - timedelta(days=40)

    data = store.daily_session_counts(chatbot.id, days=7, today=today)

    assert len(data) == 8
    assert data[0]["date"] == (today - timedelta(days=7)).isoformat()
    assert data[-1] == {"date": today.isoformat(), "conversations": 2}
    assert sum(d["conversations"] for d in data) == 2
