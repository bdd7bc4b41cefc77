"""Chat runtime: answers each message from stored Q&A first, the LLM second.

Every reply is resolved in this order:

1. keyword matcher over the chatbot's active entries (no network call)
2. knowledge-base grounded generation over the chatbot's crawled pages
3. the chatbot's fallback (apology) message
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from observability.metrics import record_error, record_resolution
from pipelines.errors import GenerationError, InvalidInput
from pipelines.models import Chatbot, ChatSession, CrawledPage
from .matcher import Match, match

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 30000
HISTORY_TURNS = 6
MAX_CACHED_SESSIONS = 1000

SOURCE_MATCH = "match"
SOURCE_GENERATED = "generated"
SOURCE_FALLBACK = "fallback"


@dataclass
class Turn:
    sender: str
    text: str


@dataclass
class Reply:
    text: str
    source: str
    match: Optional[Match] = None
    message_id: Optional[int] = None

    @property
    def matched_entry_id(self) -> Optional[int]:
        return self.match.entry.id if self.match else None

    def to_dict(self) -> Dict:
        return {
            "success": True,
            "answer": self.text,
            "source": self.source,
            "matched_question_id": self.matched_entry_id,
            "score": self.match.score if self.match else None,
            "message_id": self.message_id,
        }


def build_knowledge_context(pages: Sequence[CrawledPage], limit: int = MAX_CONTEXT_CHARS) -> str:
    """Concatenate crawled pages into grounding text, truncated to ``limit`` characters."""
    blocks = [
        f"SOURCE: {page.url}\nTITLE: {page.title or 'No Title'}\nCONTENT:\n{page.raw_text}\n---\n"
        for page in pages
    ]
    return "\n".join(blocks)[:limit]


def build_chat_prompt(context: str, history: Sequence[Turn], message: str) -> str:
    conversation = "\n".join(f"{turn.sender.upper()}: {turn.text}" for turn in history)
    return f"""You are a helpful customer support AI assistant for a website.
Use the following Knowledge Base to answer the user's question.
If the answer is found in the Knowledge Base, be concise and helpful.
If the answer is NOT in the Knowledge Base, you may answer using general knowledge but be polite and mention you don't have specific info on that from the website.
Always check the Knowledge Base first.

Knowledge Base:
{context or "No website content available yet."}

Conversation so far:
{conversation or "(none)"}

USER: {message}
ASSISTANT:"""


@dataclass
class Conversation:
    session: ChatSession
    turns: List[Turn] = field(default_factory=list)


class ConversationRuntime:
    """Holds recent per-session history and resolves each inbound message.

    Only the most recently used ``max_sessions`` conversations stay in memory;
    an evicted one is rebuilt from the store on its next message.
    """

    def __init__(self, store, generator=None, context_limit: int = MAX_CONTEXT_CHARS,
                 max_sessions: int = MAX_CACHED_SESSIONS):
        self.store = store
        self.generator = generator
        self.context_limit = context_limit
        self.max_sessions = max_sessions
        self._conversations: "OrderedDict[str, Conversation]" = OrderedDict()

    def start_session(self, chatbot_id: str, user_ip: Optional[str] = None,
                      user_agent: Optional[str] = None) -> ChatSession:
        session = self.store.create_session(chatbot_id, user_ip=user_ip, user_agent=user_agent)
        self._remember(Conversation(session=session))
        logger.info(f"Started session {session.id} for chatbot {chatbot_id}")
        return session

    def end_session(self, session_id: str) -> ChatSession:
        session = self.store.end_session(session_id)
        self._conversations.pop(session_id, None)
        logger.info(f"Ended session {session_id} after {session.message_count} messages")
        return session

    def history(self, session_id: str) -> List[Turn]:
        conversation = self._conversations.get(session_id)
        return list(conversation.turns) if conversation else []

    def _remember(self, conversation: Conversation) -> None:
        self._conversations[conversation.session.id] = conversation
        self._conversations.move_to_end(conversation.session.id)
        while len(self._conversations) > self.max_sessions:
            self._conversations.popitem(last=False)

    def _conversation(self, chatbot_id: str, session_id: str) -> Conversation:
        conversation = self._conversations.get(session_id)
        if conversation is None:
            # Evicted or started by another process; rebuild history from the store.
            session = self.store.get_session(session_id)
            turns = [Turn(m.sender, m.text) for m in self.store.list_messages(session_id)]
            conversation = Conversation(session=session, turns=turns[-HISTORY_TURNS:])
        self._remember(conversation)
        if conversation.session.chatbot_id != chatbot_id:
            raise InvalidInput("Session does not belong to this chatbot")
        if conversation.session.ended_at is not None:
            raise InvalidInput("Session has ended")
        return conversation

    async def respond(self, chatbot_id: str, session_id: str, message: str) -> Reply:
        """Answer one user message.

        Raises:
            InvalidInput: Missing fields, or a session that is not this chatbot's
            ChatbotNotFound / SessionNotFound: Unknown identifiers
        """
        if not chatbot_id or not session_id or not message or not message.strip():
            raise InvalidInput("Missing required fields")

        chatbot = self.store.get_chatbot(chatbot_id)
        conversation = self._conversation(chatbot_id, session_id)

        self.store.add_message(session_id, "user", message)
        prior_turns = conversation.turns[-HISTORY_TURNS:]
        conversation.turns.append(Turn("user", message))

        result = match(message, self.store.list_active_entries(chatbot_id))
        if result is not None:
            reply = Reply(text=result.entry.answer, source=SOURCE_MATCH, match=result)
            logger.debug(f"Matched question {result.entry.id} with score {result.score}")
        else:
            reply = await self._escalate(chatbot, message, prior_turns)

        record_resolution(reply.source)
        conversation.turns.append(Turn("bot", reply.text))
        del conversation.turns[:-HISTORY_TURNS]
        reply.message_id = self._store_bot_message(session_id, reply)
        return reply

    async def _escalate(self, chatbot: Chatbot, message: str, history: Sequence[Turn]) -> Reply:
        if self.generator is None:
            return Reply(text=chatbot.fallback_message, source=SOURCE_FALLBACK)

        pages = self.store.list_crawled_pages(chatbot.id)
        if not pages:
            logger.info(f"No knowledge base found for chatbot {chatbot.id}")
        context = build_knowledge_context(pages, self.context_limit)

        try:
            text = await self.generator.generate(build_chat_prompt(context, history, message))
        except GenerationError as e:
            record_error("GenerationError", "chat")
            logger.warning(f"Escalation failed for chatbot {chatbot.id}: {e}")
            return Reply(text=chatbot.fallback_message, source=SOURCE_FALLBACK)

        if not text or not text.strip():
            return Reply(text=chatbot.fallback_message, source=SOURCE_FALLBACK)
        return Reply(text=text.strip(), source=SOURCE_GENERATED)

    def _store_bot_message(self, session_id: str, reply: Reply) -> Optional[int]:
        # The answer is already computed; losing the transcript row must not lose the reply.
        try:
            stored = self.store.add_message(
                session_id, "bot", reply.text, matched_entry_id=reply.matched_entry_id
            )
        except Exception as e:
            record_error(type(e).__name__, "chat_storage")
            logger.error(f"Failed to save bot message to DB: {e}")
            return None
        return stored.id
