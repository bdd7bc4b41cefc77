"""Chat runtime for SupportBot.

Provides keyword matching, conversation handling and chatbot profile loading.
"""

from .matcher import Match, match, score_entry, MIN_MATCH_SCORE
from .conversation import ConversationRuntime, Reply, Turn, build_knowledge_context
from .sources import ChatbotLoader, ChatbotProfile, StoreSource, StaticSource, demo_profile

__all__ = [
    'Match',
    'match',
    'score_entry',
    'MIN_MATCH_SCORE',
    'ConversationRuntime',
    'Reply',
    'Turn',
    'build_knowledge_context',
    'ChatbotLoader',
    'ChatbotProfile',
    'StoreSource',
    'StaticSource',
    'demo_profile'
]
