"""Tests for the supportbot command line."""

import json

import pytest
from typer.testing import CliRunner

from config.settings import AppSettings, StorageSettings
from services.shared.store import KnowledgeStore
from tools.cli import app

runner = CliRunner()


def write_entries(tmp_path):
    path = tmp_path / "entries.json"
    path.write_text(json.dumps([
        {"question": "What are your business hours?", "answer": "9-6 Mon-Fri", "keywords": ["hours", "open"]},
        {"question": "How can I contact support?", "answer": "Email us", "keywords": ["contact", "email"]},
    ]))
    return path


def test_ask_prints_matched_answer(tmp_path):
    result = runner.invoke(app, ["ask", "what time do you open", "--entries", str(write_entries(tmp_path))])
    assert result.exit_code == 0
    assert "9-6 Mon-Fri" in result.output


def test_ask_without_match_exits_2(tmp_path):
    result = runner.invoke(app, ["ask", "do you sell shoes", "--entries", str(write_entries(tmp_path))])
    assert result.exit_code == 2
    assert "No match" in result.output


def test_ask_requires_a_source():
    result = runner.invoke(app, ["ask", "hello"])
    assert result.exit_code == 1


@pytest.mark.parametrize("content", [
    "not json",
    '{"question": "Q?"}',
    '[{"question": "What are your hours?"}]',
    '[{"question": "What are your hours?", "answer": "9-6", "keywords": []}]',
])
def test_ask_reports_malformed_entries_file(tmp_path, content):
    path = tmp_path / "entries.json"
    path.write_text(content)
    result = runner.invoke(app, ["ask", "hours", "--entries", str(path)])
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_chatbots_lists_active_by_default(tmp_path, monkeypatch):
    settings = AppSettings(storage=StorageSettings(database_url=f"sqlite:///{tmp_path / 'bots.db'}"))
    monkeypatch.setattr("config.settings._settings", settings)
    store = KnowledgeStore(settings.storage.database_url)
    store.create_tables()
    store.create_chatbot("Example Shop", chatbot_id="shop")
    store.create_chatbot("Old Shop", chatbot_id="old")
    store.retire_chatbot("old")
    store.close()

    listed = runner.invoke(app, ["chatbots"])
    assert listed.exit_code == 0
    assert "Example Shop" in listed.output
    assert "Old Shop" not in listed.output

    everything = runner.invoke(app, ["chatbots", "--all"])
    assert "Old Shop" in everything.output
