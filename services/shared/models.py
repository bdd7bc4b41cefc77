"""SQLAlchemy models backing the knowledge-base store."""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index, Boolean, Enum
from sqlalchemy.orm import declarative_base, relationship

from pipelines.models import EntryState

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatbotRow(Base):
    """A chatbot and its widget-facing messages."""
    __tablename__ = 'chatbots'

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    welcome_message = Column(Text, nullable=False)
    fallback_message = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    questions = relationship("QuestionRow", back_populates="chatbot")
    crawled_pages = relationship("CrawledPageRow", back_populates="chatbot")


class QuestionRow(Base):
    """Q&A entry. Rows are retired, never deleted."""
    __tablename__ = 'questions'

    id = Column(Integer, primary_key=True)
    chatbot_id = Column(String(64), ForeignKey('chatbots.id'), nullable=False)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    keywords = Column(JSON, nullable=False, default=list)
    state = Column(Enum(EntryState, values_callable=lambda e: [m.value for m in e]),
                   nullable=False, default=EntryState.ACTIVE)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    chatbot = relationship("ChatbotRow", back_populates="questions")

    __table_args__ = (
        Index('idx_questions_chatbot_state', 'chatbot_id', 'state'),
    )


class CrawledPageRow(Base):
    """Append-only crawl history; one row per successful extraction."""
    __tablename__ = 'crawled_content'

    id = Column(Integer, primary_key=True)
    chatbot_id = Column(String(64), ForeignKey('chatbots.id'), nullable=False)
    url = Column(String(2048), nullable=False)
    raw_text = Column(Text, nullable=False)
    extracted_title = Column(String(500), nullable=True)
    extracted_description = Column(Text, nullable=True)
    crawled_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    chatbot = relationship("ChatbotRow", back_populates="crawled_pages")

    __table_args__ = (
        Index('idx_crawled_content_chatbot', 'chatbot_id'),
    )


class ChatSessionRow(Base):
    __tablename__ = 'chat_sessions'

    id = Column(String(64), primary_key=True)
    chatbot_id = Column(String(64), ForeignKey('chatbots.id'), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    user_ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    messages = relationship("ChatMessageRow", back_populates="session")

    __table_args__ = (
        Index('idx_chat_sessions_chatbot', 'chatbot_id'),
    )


class ChatMessageRow(Base):
    __tablename__ = 'chat_messages'

    id = Column(Integer, primary_key=True)
    session_id = Column(String(64), ForeignKey('chat_sessions.id'), nullable=False)
    sender = Column(String(10), nullable=False)
    message_text = Column(Text, nullable=False)
    matched_question_id = Column(Integer, ForeignKey('questions.id'), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    session = relationship("ChatSessionRow", back_populates="messages")

    __table_args__ = (
        Index('idx_chat_messages_session', 'session_id'),
        Index('idx_chat_messages_matched', 'matched_question_id'),
    )
