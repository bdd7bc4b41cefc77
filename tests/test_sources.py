"""Tests for chatbot profile loading."""

import pytest

from pipelines.errors import ChatbotNotFound, SourceUnavailable
from pipelines.models import QAEntry
from runtime.matcher import match
from runtime.sources import ChatbotLoader, StaticSource, StoreSource, demo_profile


def test_store_source_serves_active_entries(store, chatbot):
    store.create_entry(chatbot.id, QAEntry(question="Hours?", answer="9-5", keywords=["hours"]))

    profile = StoreSource(store).load(chatbot.id)

    assert profile.source == "store"
    assert profile.chatbot.name == "Example Shop"
    assert [e.answer for e in profile.entries] == ["9-5"]


def test_store_source_unknown_chatbot(store):
    with pytest.raises(SourceUnavailable):
        StoreSource(store).load("missing")


def test_loader_falls_through_to_demo(store):
    loader = ChatbotLoader([StoreSource(store), StaticSource(default=demo_profile(), name="demo")])

    profile = loader.load("missing")

    assert profile.source == "demo"
    assert profile.chatbot.id == "demo"
    assert len(profile.entries) == 2


def test_loader_prefers_first_source(store, chatbot):
    loader = ChatbotLoader([StoreSource(store), StaticSource(default=demo_profile(), name="demo")])
    assert loader.load(chatbot.id).source == "store"


def test_loader_raises_when_every_source_fails(store):
    loader = ChatbotLoader([StoreSource(store), StaticSource()])
    with pytest.raises(ChatbotNotFound):
        loader.load("missing")


def test_loader_requires_sources():
    with pytest.raises(ValueError):
        ChatbotLoader([])


def test_demo_profile_answers_common_questions():
    entries = demo_profile().entries
    assert match("when are you open?", entries).entry.question == "What are your business hours?"
    assert match("how do I reach you by email", entries).entry.question == "How can I contact support?"


def test_profile_serializes_for_widget():
    data = demo_profile().to_dict()
    assert data["chatbot"]["name"] == "Customer Support Bot"
    assert data["questions"][0]["keywords"][0] == "hours"
    assert data["source"] == "demo"
