"""Persistence layer for chatbots, Q&A entries, crawl history and chat transcripts."""

from .models import (
    Base,
    ChatbotRow,
    QuestionRow,
    CrawledPageRow,
    ChatSessionRow,
    ChatMessageRow
)
from .store import KnowledgeStore

__all__ = [
    'Base',
    'ChatbotRow',
    'QuestionRow',
    'CrawledPageRow',
    'ChatSessionRow',
    'ChatMessageRow',
    'KnowledgeStore'
]
