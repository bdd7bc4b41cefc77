"""Tests for the keyword matcher."""

import pytest

from pipelines.errors import InvalidInput
from pipelines.models import QAEntry
from runtime.matcher import (
    EXACT_MATCH_BONUS,
    MIN_MATCH_SCORE,
    Match,
    match,
    score_entry,
)


@pytest.fixture
def hours_entry():
    return QAEntry(
        question="What are your business hours?",
        answer="9-6 Mon-Fri",
        keywords=["hours", "open"],
    )


def test_keyword_overlap_matches(hours_entry):
    """A keyword hit is enough to answer."""
    result = match("what time do you open", [hours_entry])
    assert isinstance(result, Match)
    assert result.entry.answer == "9-6 Mon-Fri"
    assert result.score >= MIN_MATCH_SCORE


def test_no_overlap_returns_none(hours_entry):
    assert match("do you sell shoes", [hours_entry]) is None


@pytest.mark.parametrize("message", ["", "   ", None])
def test_empty_message_returns_none(hours_entry, message):
    assert match(message, [hours_entry]) is None


def test_empty_entries_returns_none():
    assert match("when are you open", []) is None


def test_matching_is_case_insensitive(hours_entry):
    result = match("WHEN ARE YOU OPEN", [hours_entry])
    assert result is not None
    assert result.entry is hours_entry


def test_score_counts_keywords_and_question_words(hours_entry):
    # "open" keyword (+3) and the question word "what" (+1)
    assert score_entry("what time do you open", hours_entry) == 4


def test_short_question_words_are_ignored():
    entry = QAEntry(question="Do you ship?", answer="Yes", keywords=["delivery"])
    # "do" and "you" are too short to count
    assert score_entry("do you", entry) == 0


def test_single_question_word_below_threshold():
    entry = QAEntry(question="Returns policy explained", answer="30 days", keywords=["refund"])
    assert score_entry("what is your policy", entry) == 1
    assert match("what is your policy", [entry]) is None


def test_exact_question_wins_over_higher_keyword_score():
    keyword_heavy = QAEntry(
        question="Shipping costs",
        answer="Free over $50",
        keywords=["shipping", "ship", "deliver", "delivery"],
    )
    exact = QAEntry(question="Do you ship internationally?", answer="Yes, worldwide", keywords=["abroad"])
    result = match("Do you ship internationally?", [keyword_heavy, exact])
    assert result.entry is exact
    assert result.score >= EXACT_MATCH_BONUS


def test_tie_keeps_first_entry():
    first = QAEntry(question="Store location", answer="Main street", keywords=["address"])
    second = QAEntry(question="Office location", answer="Second street", keywords=["address"])
    result = match("what is your address", [first, second])
    assert result.entry is first

    result = match("what is your address", [second, first])
    assert result.entry is second


def test_higher_score_wins():
    weak = QAEntry(question="Payment options", answer="Cards", keywords=["pay"])
    strong = QAEntry(question="Refund payment timing", answer="5 days", keywords=["refund", "pay"])
    result = match("when will my refund pay out", [weak, strong])
    assert result.entry is strong


def test_matching_is_deterministic(hours_entry):
    other = QAEntry(question="How can I contact support?", answer="Email us", keywords=["contact", "email"])
    entries = [hours_entry, other]
    results = {match("are you open to contact by email", entries).entry.question for _ in range(20)}
    assert len(results) == 1


def test_custom_threshold(hours_entry):
    assert match("what time do you open", [hours_entry], min_score=10) is None


def test_entry_requires_keywords():
    with pytest.raises(InvalidInput):
        QAEntry(question="Q?", answer="A", keywords=[])
    with pytest.raises(InvalidInput):
        QAEntry(question="Q?", answer="A", keywords=["x" * 51])
