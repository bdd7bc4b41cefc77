"""Shared fixtures for the SupportBot test suite."""

import pytest

from services.shared.store import KnowledgeStore


@pytest.fixture
def store():
    knowledge_store = KnowledgeStore("sqlite:///:memory:")
    knowledge_store.create_tables()
    yield knowledge_store
    knowledge_store.close()


@pytest.fixture
def chatbot(store):
    return store.create_chatbot("Example Shop", chatbot_id="shop")
