"""Knowledge-base store.

Single-record operations over chatbots, Q&A entries, crawled pages and chat
sessions. Every call opens its own SQLAlchemy session and commits before
returning; nothing is cached between calls.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pipelines.errors import ChatbotNotFound, EntryNotFound, InvalidInput, SessionNotFound
from pipelines.models import (
    Chatbot, ChatMessage, ChatSession, CrawledPage, EntryState, QAEntry
)
from .models import (
    Base, ChatbotRow, ChatMessageRow, ChatSessionRow, CrawledPageRow, QuestionRow, utcnow
)

logger = logging.getLogger(__name__)

SENDERS = ("user", "bot")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _entry(row: QuestionRow) -> QAEntry:
    return QAEntry(
        id=row.id,
        chatbot_id=row.chatbot_id,
        question=row.question,
        answer=row.answer,
        keywords=list(row.keywords or []),
        state=row.state,
    )


def _page(row: CrawledPageRow) -> CrawledPage:
    return CrawledPage(
        id=row.id,
        chatbot_id=row.chatbot_id,
        url=row.url,
        raw_text=row.raw_text,
        title=row.extracted_title or "",
        description=row.extracted_description or "",
        crawled_at=_as_utc(row.crawled_at),
    )


def _chatbot(row: ChatbotRow) -> Chatbot:
    return Chatbot(
        id=row.id,
        name=row.name,
        welcome_message=row.welcome_message,
        fallback_message=row.fallback_message,
        is_active=row.is_active,
    )


def _session(row: ChatSessionRow) -> ChatSession:
    return ChatSession(
        id=row.id,
        chatbot_id=row.chatbot_id,
        started_at=_as_utc(row.started_at),
        ended_at=_as_utc(row.ended_at),
        duration_seconds=row.duration_seconds,
        message_count=row.message_count,
        user_ip=row.user_ip,
        user_agent=row.user_agent,
    )


def _message(row: ChatMessageRow) -> ChatMessage:
    return ChatMessage(
        id=row.id,
        session_id=row.session_id,
        sender=row.sender,
        text=row.message_text,
        matched_entry_id=row.matched_question_id,
        sent_at=_as_utc(row.sent_at),
    )


class KnowledgeStore:
    """SQLAlchemy-backed store for one or many chatbots."""

    def __init__(self, database_url: str = "sqlite:///supportbot.db", echo: bool = False):
        engine_kwargs: Dict[str, Any] = {"echo": echo, "future": True}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool

        self.database_url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info(f"Knowledge store ready: {self.engine.url.render_as_string(hide_password=True)}")

    def close(self) -> None:
        self.engine.dispose()

    # Chatbots

    def create_chatbot(self, name: str, chatbot_id: Optional[str] = None,
                       welcome_message: Optional[str] = None,
                       fallback_message: Optional[str] = None) -> Chatbot:
        if not name or not name.strip():
            raise InvalidInput("Chatbot name is required")
        defaults = Chatbot(id="", name=name)
        row = ChatbotRow(
            id=chatbot_id or str(uuid.uuid4()),
            name=name.strip(),
            welcome_message=welcome_message or defaults.welcome_message,
            fallback_message=fallback_message or defaults.fallback_message,
            is_active=True,
        )
        with self.Session() as session, session.begin():
            session.add(row)
        logger.info(f"Created chatbot {row.id}")
        return _chatbot(row)

    def get_chatbot(self, chatbot_id: str) -> Chatbot:
        with self.Session() as session:
            row = session.get(ChatbotRow, chatbot_id)
            if row is None:
                raise ChatbotNotFound(f"Chatbot {chatbot_id} not found")
            return _chatbot(row)

    def list_chatbots(self, include_inactive: bool = False) -> List[Chatbot]:
        with self.Session() as session:
            query = select(ChatbotRow).order_by(ChatbotRow.created_at, ChatbotRow.id)
            if not include_inactive:
                query = query.where(ChatbotRow.is_active.is_(True))
            return [_chatbot(row) for row in session.scalars(query).all()]

    def update_chatbot(self, chatbot_id: str, name: Optional[str] = None,
                       welcome_message: Optional[str] = None,
                       fallback_message: Optional[str] = None,
                       is_active: Optional[bool] = None) -> Chatbot:
        """Change the given fields; fields left as None keep their value."""
        changes = {"name": name, "welcome_message": welcome_message, "fallback_message": fallback_message}
        for field_name, value in changes.items():
            if value is not None and not value.strip():
                raise InvalidInput(f"{field_name} cannot be empty")
        with self.Session() as session, session.begin():
            row = session.get(ChatbotRow, chatbot_id)
            if row is None:
                raise ChatbotNotFound(f"Chatbot {chatbot_id} not found")
            for field_name, value in changes.items():
                if value is not None:
                    setattr(row, field_name, value.strip())
            if is_active is not None:
                row.is_active = is_active
            session.flush()
            return _chatbot(row)

    def retire_chatbot(self, chatbot_id: str) -> None:
        """Deactivate a chatbot. Its entries, pages and transcripts are kept."""
        self.update_chatbot(chatbot_id, is_active=False)
        logger.info(f"Retired chatbot {chatbot_id}")

    def _require_chatbot(self, session, chatbot_id: str) -> None:
        if session.get(ChatbotRow, chatbot_id) is None:
            raise ChatbotNotFound(f"Chatbot {chatbot_id} not found")

    # Q&A entries

    def list_active_entries(self, chatbot_id: str) -> List[QAEntry]:
        """Active entries in creation order. Retired entries never leave the store through here."""
        with self.Session() as session:
            rows = session.scalars(
                select(QuestionRow)
                .where(QuestionRow.chatbot_id == chatbot_id, QuestionRow.state == EntryState.ACTIVE)
                .order_by(QuestionRow.id)
            ).all()
            return [_entry(row) for row in rows]

    def get_entry(self, entry_id: int) -> QAEntry:
        with self.Session() as session:
            row = session.get(QuestionRow, entry_id)
            if row is None:
                raise EntryNotFound(f"Question {entry_id} not found")
            return _entry(row)

    def create_entry(self, chatbot_id: str, entry: QAEntry) -> QAEntry:
        with self.Session() as session, session.begin():
            self._require_chatbot(session, chatbot_id)
            row = QuestionRow(
                chatbot_id=chatbot_id,
                question=entry.question,
                answer=entry.answer,
                keywords=list(entry.keywords),
                state=EntryState.ACTIVE,
            )
            session.add(row)
            session.flush()
            created = _entry(row)
        logger.debug(f"Created question {created.id} for chatbot {chatbot_id}")
        return created

    def create_entries(self, chatbot_id: str, entries: Iterable[QAEntry]) -> List[QAEntry]:
        """Create each entry in its own transaction."""
        return [self.create_entry(chatbot_id, entry) for entry in entries]

    def update_entry(self, entry_id: int, question: Optional[str] = None,
                     answer: Optional[str] = None,
                     keywords: Optional[List[str]] = None) -> QAEntry:
        with self.Session() as session, session.begin():
            row = session.get(QuestionRow, entry_id)
            if row is None or row.state != EntryState.ACTIVE:
                raise EntryNotFound(f"Question {entry_id} not found")
            # Validate the merged result before touching the row.
            merged = QAEntry(
                question=question if question is not None else row.question,
                answer=answer if answer is not None else row.answer,
                keywords=keywords if keywords is not None else list(row.keywords or []),
            )
            row.question = merged.question
            row.answer = merged.answer
            row.keywords = list(merged.keywords)
            session.flush()
            return _entry(row)

    def soft_delete_entry(self, entry_id: int) -> None:
        """Retire an entry. The row stays in the table."""
        with self.Session() as session, session.begin():
            row = session.get(QuestionRow, entry_id)
            if row is None:
                raise EntryNotFound(f"Question {entry_id} not found")
            row.state = EntryState.RETIRED
        logger.info(f"Retired question {entry_id}")

    # Crawled pages

    def save_crawled_page(self, chatbot_id: str, page: CrawledPage) -> CrawledPage:
        """Append a crawl record; re-crawling a URL adds a new row."""
        with self.Session() as session, session.begin():
            self._require_chatbot(session, chatbot_id)
            row = CrawledPageRow(
                chatbot_id=chatbot_id,
                url=page.url,
                raw_text=page.raw_text,
                extracted_title=page.title or None,
                extracted_description=page.description or None,
                crawled_at=page.crawled_at or utcnow(),
            )
            session.add(row)
            session.flush()
            return _page(row)

    def list_crawled_pages(self, chatbot_id: str) -> List[CrawledPage]:
        """Crawl history, newest first."""
        with self.Session() as session:
            rows = session.scalars(
                select(CrawledPageRow)
                .where(CrawledPageRow.chatbot_id == chatbot_id)
                .order_by(CrawledPageRow.crawled_at.desc(), CrawledPageRow.id.desc())
            ).all()
            return [_page(row) for row in rows]

    # Sessions and messages

    def create_session(self, chatbot_id: str, user_ip: Optional[str] = None,
                       user_agent: Optional[str] = None) -> ChatSession:
        with self.Session() as session, session.begin():
            self._require_chatbot(session, chatbot_id)
            row = ChatSessionRow(
                id=str(uuid.uuid4()),
                chatbot_id=chatbot_id,
                started_at=utcnow(),
                message_count=0,
                user_ip=user_ip,
                user_agent=user_agent,
            )
            session.add(row)
            session.flush()
            return _session(row)

    def list_sessions(self, chatbot_id: str, limit: Optional[int] = None) -> List[ChatSession]:
        """Sessions of a chatbot, newest first."""
        with self.Session() as session:
            query = (
                select(ChatSessionRow)
                .where(ChatSessionRow.chatbot_id == chatbot_id)
                .order_by(ChatSessionRow.started_at.desc(), ChatSessionRow.id)
            )
            if limit is not None:
                query = query.limit(limit)
            return [_session(row) for row in session.scalars(query).all()]

    def get_session(self, session_id: str) -> ChatSession:
        with self.Session() as session:
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise SessionNotFound(f"Session {session_id} not found")
            return _session(row)

    def end_session(self, session_id: str) -> ChatSession:
        with self.Session() as session, session.begin():
            row = session.get(ChatSessionRow, session_id)
            if row is None:
                raise SessionNotFound(f"Session {session_id} not found")
            if row.ended_at is None:
                ended_at = utcnow()
                row.ended_at = ended_at
                row.duration_seconds = int((ended_at - _as_utc(row.started_at)).total_seconds())
            session.flush()
            return _session(row)

    def add_message(self, session_id: str, sender: str, text: str,
                    matched_entry_id: Optional[int] = None) -> ChatMessage:
        """Store a message and bump the session's message count."""
        if sender not in SENDERS:
            raise InvalidInput(f"Unknown sender {sender!r}")
        with self.Session() as session, session.begin():
            if session.get(ChatSessionRow, session_id) is None:
                raise SessionNotFound(f"Session {session_id} not found")
            row = ChatMessageRow(
                session_id=session_id,
                sender=sender,
                message_text=text,
                matched_question_id=matched_entry_id,
                sent_at=utcnow(),
            )
            session.add(row)
            session.execute(
                update(ChatSessionRow)
                .where(ChatSessionRow.id == session_id)
                .values(message_count=ChatSessionRow.message_count + 1)
            )
            session.flush()
            return _message(row)

    def list_messages(self, session_id: str) -> List[ChatMessage]:
        with self.Session() as session:
            rows = session.scalars(
                select(ChatMessageRow)
                .where(ChatMessageRow.session_id == session_id)
                .order_by(ChatMessageRow.sent_at, ChatMessageRow.id)
            ).all()
            return [_message(row) for row in rows]

    # Analytics

    def top_matched_entries(self, chatbot_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Entries most often used to answer, by count of matched bot messages."""
        with self.Session() as session:
            hits = func.count(ChatMessageRow.id).label("hits")
            rows = session.execute(
                select(QuestionRow.id, QuestionRow.question, hits)
                .join(ChatMessageRow, ChatMessageRow.matched_question_id == QuestionRow.id)
                .where(QuestionRow.chatbot_id == chatbot_id, ChatMessageRow.sender == "bot")
                .group_by(QuestionRow.id, QuestionRow.question)
                .order_by(hits.desc(), QuestionRow.id)
                .limit(limit)
            ).all()
            return [{"entry_id": r.id, "question": r.question, "count": r.hits} for r in rows]

    def session_stats(self, chatbot_id: str) -> Dict[str, Any]:
        with self.Session() as session:
            total_sessions, total_messages, avg_duration = session.execute(
                select(
                    func.count(ChatSessionRow.id),
                    func.coalesce(func.sum(ChatSessionRow.message_count), 0),
                    func.avg(ChatSessionRow.duration_seconds),
                ).where(ChatSessionRow.chatbot_id == chatbot_id)
            ).one()
            return {
                "total_sessions": total_sessions,
                "total_messages": int(total_messages),
                "avg_duration_seconds": float(avg_duration) if avg_duration is not None else None,
            }

    def recent_queries(self, chatbot_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Latest visitor messages across the chatbot's sessions."""
        with self.Session() as session:
            rows = session.execute(
                select(ChatMessageRow.message_text, ChatMessageRow.sent_at, ChatMessageRow.session_id)
                .join(ChatSessionRow, ChatSessionRow.id == ChatMessageRow.session_id)
                .where(ChatSessionRow.chatbot_id == chatbot_id, ChatMessageRow.sender == "user")
                .order_by(ChatMessageRow.sent_at.desc(), ChatMessageRow.id.desc())
                .limit(limit)
            ).all()
            return [
                {"query": r.message_text, "time": _as_utc(r.sent_at).isoformat(), "session_id": r.session_id}
                for r in rows
            ]

    def daily_session_counts(self, chatbot_id: str, days: int = 30,
                             today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Sessions started per UTC day, oldest first, covering ``days`` days before ``today`` and today."""
        today = today or utcnow().date()
        first_day = today - timedelta(days=days)
        counts = {first_day + timedelta(days=i): 0 for i in range(days + 1)}
        since = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
        with self.Session() as session:
            started = session.scalars(
                select(ChatSessionRow.started_at)
                .where(ChatSessionRow.chatbot_id == chatbot_id, ChatSessionRow.started_at >= since)
            ).all()
        for started_at in started:
            day = _as_utc(started_at).date()
            if day in counts:
                counts[day] += 1
        return [{"date": day.isoformat(), "conversations": count} for day, count in counts.items()]
