"""Chatbot profile loading from an ordered list of data sources.

Each source either returns a profile or raises ``SourceUnavailable``; the
loader tries them in order and reports which one answered.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from pipelines.errors import ChatbotNotFound, SourceUnavailable, SupportBotError
from pipelines.models import Chatbot, QAEntry

logger = logging.getLogger(__name__)


@dataclass
class ChatbotProfile:
    chatbot: Chatbot
    entries: List[QAEntry] = field(default_factory=list)
    source: str = ""

    def to_dict(self) -> Dict:
        return {
            "chatbot": self.chatbot.to_dict(),
            "questions": [
                {"id": e.id, **e.to_candidate()} for e in self.entries
            ],
            "source": self.source,
        }


class StoreSource:
    """Profiles read from the knowledge store."""
    name = "store"

    def __init__(self, store):
        self.store = store

    def load(self, chatbot_id: str) -> ChatbotProfile:
        try:
            chatbot = self.store.get_chatbot(chatbot_id)
            entries = self.store.list_active_entries(chatbot_id)
        except ChatbotNotFound as e:
            raise SourceUnavailable(str(e)) from e
        except Exception as e:
            raise SourceUnavailable(f"Store error: {e}") from e
        if not chatbot.is_active:
            raise SourceUnavailable(f"Chatbot {chatbot_id} is inactive")
        return ChatbotProfile(chatbot=chatbot, entries=entries, source=self.name)


class StaticSource:
    """Profiles held in memory, optionally with a default served for any id."""

    def __init__(self, profiles: Optional[Dict[str, ChatbotProfile]] = None,
                 default: Optional[ChatbotProfile] = None, name: str = "static"):
        self.profiles = profiles or {}
        self.default = default
        self.name = name

    def load(self, chatbot_id: str) -> ChatbotProfile:
        profile = self.profiles.get(chatbot_id) or self.default
        if profile is None:
            raise SourceUnavailable(f"No static profile for {chatbot_id}")
        return ChatbotProfile(chatbot=profile.chatbot, entries=list(profile.entries), source=self.name)


def demo_profile() -> ChatbotProfile:
    """The built-in support bot served when nothing else knows the chatbot."""
    chatbot = Chatbot(id="demo", name="Customer Support Bot")
    entries = [
        QAEntry(
            question="What are your business hours?",
            answer=("We are open Monday to Friday, 9 AM to 6 PM EST. Our customer service "
                    "team is available during these hours to assist you."),
            keywords=["hours", "open", "time", "schedule", "when", "available"],
        ),
        QAEntry(
            question="How can I contact support?",
            answer=("You can reach us at support@example.com or call (555) 123-4567. "
                    "We typically respond to emails within 24 hours."),
            keywords=["contact", "support", "help", "email", "phone", "reach", "call"],
        ),
    ]
    return ChatbotProfile(chatbot=chatbot, entries=entries, source="demo")


class ChatbotLoader:
    """Tries each source in order until one returns a profile."""

    def __init__(self, sources: Sequence):
        if not sources:
            raise ValueError("At least one chatbot source is required")
        self.sources = list(sources)

    def load(self, chatbot_id: str) -> ChatbotProfile:
        failures = []
        for source in self.sources:
            try:
                profile = source.load(chatbot_id)
            except SupportBotError as e:
                logger.info(f"Chatbot source '{source.name}' unavailable for {chatbot_id}: {e}")
                failures.append(f"{source.name}: {e}")
                continue
            logger.debug(f"Loaded chatbot {chatbot_id} from '{source.name}'")
            return profile
        raise ChatbotNotFound(f"Chatbot {chatbot_id} not found ({'; '.join(failures)})")
