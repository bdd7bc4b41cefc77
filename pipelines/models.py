"""Knowledge-base data types shared by the crawl pipeline and the chat runtime."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .errors import InvalidInput

MAX_KEYWORD_LENGTH = 50
MAX_PAGE_TEXT = 6000


class EntryState(str, Enum):
    """Lifecycle of a Q&A entry. Retired entries are never matched or listed as active."""
    ACTIVE = "active"
    RETIRED = "retired"


def normalize_keywords(keywords: Iterable[Any]) -> List[str]:
    """Trim and lower-case keywords, dropping blanks, over-long values and duplicates."""
    normalized: List[str] = []
    for keyword in keywords:
        if not isinstance(keyword, str):
            continue
        value = keyword.strip().lower()
        if not value or len(value) > MAX_KEYWORD_LENGTH:
            continue
        if value not in normalized:
            normalized.append(value)
    return normalized


@dataclass
class QAEntry:
    """A question/answer pair plus the keywords used for lexical matching."""
    question: str
    answer: str
    keywords: List[str]
    id: Optional[int] = None
    chatbot_id: Optional[str] = None
    state: EntryState = EntryState.ACTIVE

    def __post_init__(self):
        self.question = (self.question or "").strip()
        self.answer = (self.answer or "").strip()
        if not self.question:
            raise InvalidInput("Question cannot be empty")
        if not self.answer:
            raise InvalidInput("Answer cannot be empty")
        if isinstance(self.keywords, str):
            raise InvalidInput("Keywords must be a list of strings")
        self.keywords = normalize_keywords(self.keywords or [])
        if not self.keywords:
            raise InvalidInput("At least one keyword of 1-50 characters is required")

    @property
    def is_active(self) -> bool:
        return self.state == EntryState.ACTIVE

    def to_candidate(self) -> Dict[str, Any]:
        """The wire shape used for crawl candidates and generator output."""
        return {
            "question": self.question,
            "answer": self.answer,
            "keywords": list(self.keywords),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass
class ExtractedPage:
    """Result of running the content extractor over one HTML document."""
    url: str
    title: str
    description: str
    main_text: str
    links: List[str] = field(default_factory=list)


@dataclass
class PageContext:
    """Single-page summarization input."""
    title: str
    description: str
    text: str

    @classmethod
    def from_page(cls, page: ExtractedPage) -> 'PageContext':
        return cls(title=page.title, description=page.description, text=page.main_text)


@dataclass
class CollectedPage:
    """Content accumulated by a whole-site crawl for batched summarization."""
    url: str
    title: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "title": self.title, "content": self.content}


@dataclass
class CrawledPage:
    """An immutable, append-only record of one successfully extracted page."""
    url: str
    raw_text: str
    title: str = ""
    description: str = ""
    crawled_at: Optional[datetime] = None
    id: Optional[int] = None
    chatbot_id: Optional[str] = None

    def __post_init__(self):
        self.raw_text = (self.raw_text or "")[:MAX_PAGE_TEXT]
        if self.crawled_at is None:
            self.crawled_at = datetime.now(timezone.utc)

    @classmethod
    def from_page(cls, page: ExtractedPage) -> 'CrawledPage':
        return cls(
            url=page.url,
            raw_text=page.main_text,
            title=page.title,
            description=page.description,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chatbot_id": self.chatbot_id,
            "url": self.url,
            "raw_text": self.raw_text,
            "title": self.title,
            "description": self.description,
            "crawled_at": self.crawled_at.isoformat() if self.crawled_at else None,
        }


@dataclass
class Chatbot:
    id: str
    name: str
    welcome_message: str = "Hi! How can I help you today?"
    fallback_message: str = (
        "I'm sorry, I don't have an answer for that. "
        "Please contact our support team for assistance."
    )
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatSession:
    id: str
    chatbot_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    message_count: int = 0
    user_ip: Optional[str] = None
    user_agent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("started_at", "ended_at"):
            if data[key]:
                data[key] = data[key].isoformat()
        return data


@dataclass
class ChatMessage:
    session_id: str
    sender: str
    text: str
    matched_entry_id: Optional[int] = None
    sent_at: Optional[datetime] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["sent_at"]:
            data["sent_at"] = data["sent_at"].isoformat()
        return data
