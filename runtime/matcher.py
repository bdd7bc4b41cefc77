"""Deterministic keyword matcher used to answer chat messages without an LLM call.

Scoring, per entry:

* +3 for every keyword that appears as a substring of the message
* +1 for every question word longer than three characters that appears in the message
* +10 when the message is exactly the question (case-insensitive); such an
  entry is returned immediately

The highest score wins, ties keep the earliest entry, and nothing scoring
below ``MIN_MATCH_SCORE`` is returned.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from pipelines.models import QAEntry

KEYWORD_WEIGHT = 3
QUESTION_WORD_WEIGHT = 1
EXACT_MATCH_BONUS = 10
MIN_QUESTION_WORD_LENGTH = 4
MIN_MATCH_SCORE = 2


@dataclass(frozen=True)
class Match:
    entry: QAEntry
    score: int


def score_entry(message: str, entry: QAEntry) -> int:
    """Score one entry against an already lower-cased, trimmed message."""
    score = 0
    for keyword in entry.keywords:
        keyword = keyword.lower()
        if keyword and keyword in message:
            score += KEYWORD_WEIGHT

    question = entry.question.lower().strip()
    for word in question.split():
        if len(word) >= MIN_QUESTION_WORD_LENGTH and word in message:
            score += QUESTION_WORD_WEIGHT

    if message == question:
        score += EXACT_MATCH_BONUS
    return score


def match(message: str, entries: Sequence[QAEntry],
          min_score: int = MIN_MATCH_SCORE) -> Optional[Match]:
    """Return the best matching entry for ``message`` or ``None`` when nothing clears ``min_score``.

    ``None`` means the caller should fall back to knowledge-base grounded
    generation, or to the chatbot's apology message when that is unavailable.
    """
    normalized = (message or "").lower().strip()
    if not normalized or not entries:
        return None

    best: Optional[QAEntry] = None
    best_score = 0
    for entry in entries:
        score = score_entry(normalized, entry)
        if normalized == entry.question.lower().strip():
            return Match(entry=entry, score=score)
        if score > best_score:
            best, best_score = entry, score

    if best is None or best_score < min_score:
        return None
    return Match(entry=best, score=best_score)
