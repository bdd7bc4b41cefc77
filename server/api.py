"""HTTP API for SupportBot: crawl review, Q&A management, widget and chat."""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from config.settings import AppSettings, get_settings
from observability.logging import setup_logging
from observability.metrics import record_error, render_metrics
from pipelines.crawler import CrawlMode
from pipelines.errors import (
    ChatbotNotFound,
    EntryNotFound,
    ExtractionTooThin,
    FetchFailure,
    InvalidInput,
    NoContentExtracted,
    SessionNotFound,
    SupportBotError,
)
from pipelines.models import QAEntry
from runtime.conversation import ConversationRuntime
from runtime.sources import ChatbotLoader, StaticSource, StoreSource, demo_profile
from services.generation import build_text_generator
from services.shared.store import KnowledgeStore
from .crawl_service import CrawlService
from .jobs import CrawlJobManager
from .security import setup_api_security

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
MAX_ANALYTICS_DAYS = 365


class CrawlRequest(BaseModel):
    url: Optional[str] = None
    mode: str = CrawlMode.SINGLE_PAGE.value
    chatbot_id: Optional[str] = None


class JobCommitRequest(BaseModel):
    chatbot_id: str
    selected: List[int] = Field(default_factory=list)


class QuestionPayload(BaseModel):
    question: str
    answer: str
    keywords: List[str] = Field(default_factory=list)


class CommitQuestionsRequest(BaseModel):
    questions: List[QuestionPayload] = Field(default_factory=list)


class QuestionUpdate(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    keywords: Optional[List[str]] = None


class ChatbotCreate(BaseModel):
    name: str
    id: Optional[str] = None
    welcome_message: Optional[str] = None
    fallback_message: Optional[str] = None


class ChatbotUpdate(BaseModel):
    name: Optional[str] = None
    welcome_message: Optional[str] = None
    fallback_message: Optional[str] = None
    is_active: Optional[bool] = None


class SessionCreate(BaseModel):
    chatbot_id: Optional[str] = None


class ChatRequest(BaseModel):
    chatbot_id: Optional[str] = None
    session_id: Optional[str] = None
    message: Optional[str] = None


NOT_FOUND_ERRORS = (ChatbotNotFound, EntryNotFound, SessionNotFound)


def status_for(error: SupportBotError) -> int:
    """HTTP status code for a SupportBot error."""
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, FetchFailure):
        return 408 if error.timed_out else 502
    if isinstance(error, (ExtractionTooThin, NoContentExtracted)):
        return 422
    if isinstance(error, NOT_FOUND_ERRORS):
        return 404
    return 500


def describe_validation_error(exc: RequestValidationError) -> str:
    """One readable line for a request body or query that failed validation."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        location = location or "request body"
        if error.get("type") == "missing":
            messages.append(f"{location} is required")
        else:
            messages.append(f"{location}: {error.get('msg')}")
    return "; ".join(messages) or "Invalid request"


def parse_mode(value: str) -> CrawlMode:
    try:
        return CrawlMode(value)
    except ValueError:
        raise InvalidInput(f"Unknown crawl mode {value!r}; use 'single' or 'site'")


def _to_entry(payload: QuestionPayload) -> QAEntry:
    return QAEntry(question=payload.question, answer=payload.answer, keywords=payload.keywords)


def create_app(settings: Optional[AppSettings] = None,
               store: Optional[KnowledgeStore] = None,
               generator=None,
               chat_generator=None,
               fetcher_factory=None) -> FastAPI:
    """Build the API application.

    Generators default to OpenAI-backed ones when an API key is configured;
    tests pass fakes for the generators and the fetcher factory.
    """
    settings = settings or get_settings()
    if store is None:
        store = KnowledgeStore(settings.storage.database_url, echo=settings.storage.echo)
    store.create_tables()
    if generator is None:
        generator = build_text_generator(settings.generation)
    if chat_generator is None:
        chat_generator = build_text_generator(
            settings.generation, max_tokens=settings.generation.chat_max_tokens
        )

    crawl_service = CrawlService(settings, store=store, generator=generator,
                                 fetcher_factory=fetcher_factory)
    job_manager = CrawlJobManager(crawl_service)
    runtime = ConversationRuntime(store, generator=chat_generator)
    loader = ChatbotLoader([
        StoreSource(store),
        StaticSource(default=demo_profile(), name="demo"),
    ])

    app = FastAPI(title="SupportBot API", version=VERSION)
    app.state.settings = settings
    app.state.store = store
    app.state.crawl_service = crawl_service
    app.state.job_manager = job_manager
    app.state.runtime = runtime
    app.state.loader = loader
    setup_api_security(app)

    @app.exception_handler(SupportBotError)
    async def supportbot_error_handler(request: Request, exc: SupportBotError):
        status_code = status_for(exc)
        record_error(type(exc).__name__, "api")
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": str(exc), "error_type": type(exc).__name__},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = describe_validation_error(exc)
        record_error(InvalidInput.__name__, "api")
        logger.info(f"{request.method} {request.url.path} -> 400: {message}")
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": message, "error_type": InvalidInput.__name__},
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cancel running crawls and release the database."""
        try:
            await job_manager.shutdown()
        except Exception as e:
            logger.error(f"Error during job manager shutdown: {e}")
        store.close()

    @app.get("/health")
    def health():
        return {"status": "ok", "version": VERSION}

    @app.get("/metrics")
    def metrics():
        """Prometheus metrics endpoint."""
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)

    # Crawling

    @app.post("/api/crawl")
    async def crawl(body: CrawlRequest):
        """Run a crawl and return candidate Q&As for review. Nothing is committed."""
        mode = parse_mode(body.mode)
        url = crawl_service.validate(body.url)
        if body.chatbot_id:
            store.get_chatbot(body.chatbot_id)
        report = await crawl_service.crawl(url, mode, chatbot_id=body.chatbot_id)
        return report.to_dict()

    @app.post("/api/crawl-jobs", status_code=202)
    async def create_crawl_job(body: CrawlRequest):
        mode = parse_mode(body.mode)
        if body.chatbot_id:
            store.get_chatbot(body.chatbot_id)
        record = job_manager.enqueue(body.url, mode, chatbot_id=body.chatbot_id)
        return {"success": True, "job_id": record.id, "status": record.status.value}

    @app.get("/api/crawl-jobs")
    def list_crawl_jobs(limit: int = 20):
        return {"success": True, "jobs": [j.to_dict() for j in job_manager.list_jobs(limit=limit)]}

    @app.get("/api/crawl-jobs/{job_id}")
    def get_crawl_job(job_id: str):
        record = job_manager.get(job_id)
        if record is None:
            return JSONResponse(status_code=404, content={"success": False, "error": "Job not found"})
        return {"success": True, "job": record.to_dict()}

    @app.post("/api/crawl-jobs/{job_id}/stop")
    def stop_crawl_job(job_id: str):
        if job_manager.get(job_id) is None:
            return JSONResponse(status_code=404, content={"success": False, "error": "Job not found"})
        return {"success": True, "stopping": job_manager.stop(job_id)}

    @app.post("/api/crawl-jobs/{job_id}/commit")
    def commit_crawl_job(job_id: str, body: JobCommitRequest):
        """Commit the selected candidates of a finished crawl job."""
        created = job_manager.commit(job_id, body.chatbot_id, body.selected)
        return {"success": True, "questions": [e.to_dict() for e in created]}

    # Chatbots and Q&A entries

    @app.post("/api/chatbots", status_code=201)
    def create_chatbot(body: ChatbotCreate):
        chatbot = store.create_chatbot(
            body.name,
            chatbot_id=body.id,
            welcome_message=body.welcome_message,
            fallback_message=body.fallback_message,
        )
        return {"success": True, "chatbot": chatbot.to_dict()}

    @app.get("/api/chatbots")
    def list_chatbots(include_inactive: bool = False):
        chatbots = store.list_chatbots(include_inactive=include_inactive)
        return {"success": True, "chatbots": [c.to_dict() for c in chatbots]}

    @app.get("/api/chatbots/{chatbot_id}")
    def get_chatbot(chatbot_id: str):
        return {"success": True, "chatbot": store.get_chatbot(chatbot_id).to_dict()}

    @app.put("/api/chatbots/{chatbot_id}")
    def update_chatbot(chatbot_id: str, body: ChatbotUpdate):
        chatbot = store.update_chatbot(
            chatbot_id,
            name=body.name,
            welcome_message=body.welcome_message,
            fallback_message=body.fallback_message,
            is_active=body.is_active,
        )
        return {"success": True, "chatbot": chatbot.to_dict()}

    @app.delete("/api/chatbots/{chatbot_id}")
    def delete_chatbot(chatbot_id: str):
        """Soft delete: the widget stops serving the chatbot, its data stays."""
        store.retire_chatbot(chatbot_id)
        return {"success": True}

    @app.get("/api/chatbot/{chatbot_id}")
    def widget_config(chatbot_id: str):
        """Chatbot profile for the embeddable widget."""
        profile = loader.load(chatbot_id)
        return {"success": True, **profile.to_dict()}

    @app.get("/api/chatbots/{chatbot_id}/questions")
    def list_questions(chatbot_id: str):
        store.get_chatbot(chatbot_id)
        entries = store.list_active_entries(chatbot_id)
        return {"success": True, "questions": [e.to_dict() for e in entries]}

    @app.post("/api/chatbots/{chatbot_id}/questions", status_code=201)
    def create_question(chatbot_id: str, body: QuestionPayload):
        created = store.create_entry(chatbot_id, _to_entry(body))
        return {"success": True, "question": created.to_dict()}

    @app.post("/api/chatbots/{chatbot_id}/questions/commit", status_code=201)
    def commit_questions(chatbot_id: str, body: CommitQuestionsRequest):
        """Commit reviewed candidates from a synchronous crawl."""
        entries = [_to_entry(q) for q in body.questions]
        if not entries:
            raise InvalidInput("No questions selected")
        created = store.create_entries(chatbot_id, entries)
        return {"success": True, "questions": [e.to_dict() for e in created]}

    @app.put("/api/questions/{entry_id}")
    def update_question(entry_id: int, body: QuestionUpdate):
        updated = store.update_entry(
            entry_id, question=body.question, answer=body.answer, keywords=body.keywords
        )
        return {"success": True, "question": updated.to_dict()}

    @app.delete("/api/questions/{entry_id}")
    def delete_question(entry_id: int):
        store.soft_delete_entry(entry_id)
        return {"success": True}

    @app.get("/api/chatbots/{chatbot_id}/crawls")
    def list_crawls(chatbot_id: str):
        store.get_chatbot(chatbot_id)
        pages = store.list_crawled_pages(chatbot_id)
        return {"success": True, "pages": [p.to_dict() for p in pages]}

    # Sessions and chat

    @app.get("/api/chatbots/{chatbot_id}/sessions")
    def list_sessions(chatbot_id: str, limit: Optional[int] = None):
        store.get_chatbot(chatbot_id)
        sessions = store.list_sessions(chatbot_id, limit=limit)
        return {"success": True, "sessions": [s.to_dict() for s in sessions]}

    @app.post("/api/sessions", status_code=201)
    def start_session(body: SessionCreate, request: Request):
        if not body.chatbot_id:
            raise InvalidInput("chatbot_id is required")
        session = runtime.start_session(
            body.chatbot_id,
            user_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        return {"success": True, "session": session.to_dict()}

    @app.post("/api/sessions/{session_id}/end")
    def end_session(session_id: str):
        session = runtime.end_session(session_id)
        return {"success": True, "session": session.to_dict()}

    @app.get("/api/sessions/{session_id}/messages")
    def list_messages(session_id: str):
        store.get_session(session_id)
        return {"success": True, "messages": [m.to_dict() for m in store.list_messages(session_id)]}

    @app.post("/api/chat")
    async def chat(body: ChatRequest):
        reply = await runtime.respond(body.chatbot_id, body.session_id, body.message)
        return reply.to_dict()

    # Analytics

    @app.get("/api/chatbots/{chatbot_id}/analytics/top-questions")
    def top_questions(chatbot_id: str, limit: int = 10):
        store.get_chatbot(chatbot_id)
        return {"success": True, "questions": store.top_matched_entries(chatbot_id, limit=limit)}

    @app.get("/api/chatbots/{chatbot_id}/analytics/sessions")
    def session_analytics(chatbot_id: str):
        store.get_chatbot(chatbot_id)
        return {"success": True, **store.session_stats(chatbot_id)}

    @app.get("/api/chatbots/{chatbot_id}/analytics/recent-queries")
    def recent_queries(chatbot_id: str, limit: int = 20):
        store.get_chatbot(chatbot_id)
        return {"success": True, "data": store.recent_queries(chatbot_id, limit=limit)}

    @app.get("/api/chatbots/{chatbot_id}/analytics/conversations-over-time")
    def conversations_over_time(chatbot_id: str, days: int = 30):
        if not 1 <= days <= MAX_ANALYTICS_DAYS:
            raise InvalidInput(f"days must be between 1 and {MAX_ANALYTICS_DAYS}")
        store.get_chatbot(chatbot_id)
        return {"success": True, "data": store.daily_session_counts(chatbot_id, days=days)}

    logger.info(
        f"SupportBot API ready (generation {'enabled' if generator else 'disabled'}, "
        f"page budget {settings.crawl.page_budget})"
    )
    return app


def build_default_app() -> FastAPI:
    """Application factory for ``uvicorn --factory server.api:build_default_app``."""
    settings = get_settings()
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.log_file,
        use_json=settings.logging.use_json,
    )
    return create_app(settings)
