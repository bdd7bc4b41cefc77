"""Crawl orchestration for SupportBot.

Drives a crawl through ``INPUT -> CRAWLING -> GENERATING -> REVIEW``:

* single-page mode fetches one URL and summarizes it directly; any fetch or
  extraction failure ends the crawl.
* whole-site mode walks same-domain links breadth first, up to the page
  budget, one page at a time with a courtesy delay between pages. Page level
  failures are logged and skipped. The collected content is summarized in a
  single batched generation call once traversal ends.

Stopping is cooperative: ``request_stop`` raises a flag that the loop checks
once per page, so an in-flight fetch always finishes.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Set
from urllib.parse import urlparse

from observability.logging import get_structured_logger
from observability.metrics import record_crawl, record_error, record_page
from .errors import (
    ExtractionTooThin, FetchFailure, GenerationError, InvalidInput, NoContentExtracted
)
from .extractor import MAX_LINKS, extract
from .models import CollectedPage, CrawledPage, ExtractedPage, PageContext, QAEntry
from .security import canonicalize_url, validate_seed_url
from .summarizer import SummaryGenerator, fallback_entry

logger = logging.getLogger(__name__)
slog = get_structured_logger(__name__, component="crawler")

DEFAULT_PAGE_BUDGET = 10
DEFAULT_PAGE_DELAY = 1.0


class CrawlMode(str, Enum):
    SINGLE_PAGE = "single"
    WHOLE_SITE = "site"


class CrawlState(str, Enum):
    INPUT = "input"
    CRAWLING = "crawling"
    GENERATING = "generating"
    REVIEW = "review"


@dataclass
class CrawlWarning:
    url: str
    reason: str
    kind: str = "fetch"

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "reason": self.reason, "kind": self.kind}


@dataclass
class CrawlProgress:
    """Snapshot handed to progress callbacks."""
    state: CrawlState
    current_url: Optional[str]
    pages_visited: int
    pages_collected: int
    page_budget: int
    stopping: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "current_url": self.current_url,
            "pages_visited": self.pages_visited,
            "pages_collected": self.pages_collected,
            "page_budget": self.page_budget,
            "stopping": self.stopping,
        }


@dataclass
class CrawlJob:
    """Traversal state owned by a single orchestration call."""
    budget: int
    queue: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    collected: List[CollectedPage] = field(default_factory=list)
    stop_requested: bool = False
    _queued: Set[str] = field(default_factory=set, repr=False)

    def should_continue(self) -> bool:
        return bool(self.queue) and len(self.visited) < self.budget and not self.stop_requested

    def next_url(self) -> str:
        url = self.queue.popleft()
        self._queued.discard(url)
        return url

    def enqueue(self, links: Iterable[str]) -> int:
        """Queue links that are neither visited nor already waiting. Returns how many were added."""
        added = 0
        for link in links:
            link = canonicalize_url(link)
            if link in self.visited or link in self._queued:
                continue
            self.queue.append(link)
            self._queued.add(link)
            added += 1
        return added


@dataclass
class CrawlReport:
    """Outcome of a successful crawl: candidates awaiting review plus metadata."""
    mode: CrawlMode
    seed_url: str
    candidates: List[QAEntry]
    pages_visited: int
    pages_collected: int
    warnings: List[CrawlWarning] = field(default_factory=list)
    stopped: bool = False
    generation_failed: bool = False
    duration_seconds: float = 0.0

    def select(self, indices: Iterable[int]) -> List[QAEntry]:
        """Return the reviewer-selected candidates in candidate order.

        Raises:
            InvalidInput: If an index is out of range
        """
        chosen = sorted(set(indices))
        for index in chosen:
            if not 0 <= index < len(self.candidates):
                raise InvalidInput(f"Candidate index {index} out of range")
        return [self.candidates[i] for i in chosen]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "mode": self.mode.value,
            "url": self.seed_url,
            "questions": [entry.to_candidate() for entry in self.candidates],
            "metadata": {
                "pages_visited": self.pages_visited,
                "pages_collected": self.pages_collected,
                "stopped": self.stopped,
                "generation_failed": self.generation_failed,
                "duration_seconds": round(self.duration_seconds, 3),
                "warnings": [w.to_dict() for w in self.warnings],
            },
        }


ProgressCallback = Callable[[CrawlProgress], None]


class CrawlOrchestrator:
    """Runs crawl jobs and tracks the crawl state machine."""

    def __init__(self,
                 fetcher,
                 summarizer: SummaryGenerator,
                 store=None,
                 page_budget: int = DEFAULT_PAGE_BUDGET,
                 page_delay: float = DEFAULT_PAGE_DELAY,
                 max_links_per_page: int = MAX_LINKS,
                 use_fallback_entry: bool = True,
                 allow_private_hosts: bool = False,
                 on_progress: Optional[ProgressCallback] = None):
        """Initialize orchestrator.

        Args:
            fetcher: Object exposing ``async fetch_html(url) -> str``
            summarizer: Summary generator used once per crawl
            store: Optional knowledge store; extracted pages are saved to it
            page_budget: Maximum pages visited in whole-site mode
            page_delay: Courtesy delay between pages in seconds
            max_links_per_page: Cap on links followed from one page
            use_fallback_entry: Substitute a default entry when generation fails
            allow_private_hosts: Permit literal private IP seed URLs
            on_progress: Callback invoked with a ``CrawlProgress`` snapshot
        """
        if page_budget < 1:
            raise ValueError("page_budget must be at least 1")
        self.fetcher = fetcher
        self.summarizer = summarizer
        self.store = store
        self.page_budget = page_budget
        self.page_delay = page_delay
        self.max_links_per_page = max_links_per_page
        self.use_fallback_entry = use_fallback_entry
        self.allow_private_hosts = allow_private_hosts
        self.on_progress = on_progress

        self._state = CrawlState.INPUT
        self._job: Optional[CrawlJob] = None
        self._current_url: Optional[str] = None

    @property
    def state(self) -> CrawlState:
        return self._state

    @property
    def job(self) -> Optional[CrawlJob]:
        return self._job

    def request_stop(self) -> bool:
        """Ask a running whole-site crawl to stop after the current page.

        Returns:
            True if a crawl was running and will stop, False otherwise
        """
        if self._state != CrawlState.CRAWLING or self._job is None:
            logger.debug(f"Stop requested while {self._state.value}; nothing to stop")
            return False
        self._job.stop_requested = True
        slog.info("Stop requested", pages_visited=len(self._job.visited))
        self._emit()
        return True

    def reset(self) -> None:
        """Return to ``INPUT`` from ``REVIEW`` (or after a failure)."""
        if self._state in (CrawlState.CRAWLING, CrawlState.GENERATING):
            raise RuntimeError("Cannot reset while a crawl is in progress")
        self._state = CrawlState.INPUT
        self._job = None
        self._current_url = None

    def progress(self) -> CrawlProgress:
        job = self._job
        return CrawlProgress(
            state=self._state,
            current_url=self._current_url,
            pages_visited=len(job.visited) if job else 0,
            pages_collected=len(job.collected) if job else 0,
            page_budget=job.budget if job else self.page_budget,
            stopping=bool(job and job.stop_requested),
        )

    def _transition(self, state: CrawlState) -> None:
        logger.debug(f"Crawl state {self._state.value} -> {state.value}")
        self._state = state
        self._emit()

    def _emit(self) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.progress())
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def run(self, url: str, mode: CrawlMode = CrawlMode.SINGLE_PAGE,
                  chatbot_id: Optional[str] = None) -> CrawlReport:
        """Run one crawl from ``url``.

        Raises:
            InvalidInput: Malformed or disallowed seed URL
            FetchFailure: Single-page fetch failed
            ExtractionTooThin: Single-page content too thin
            NoContentExtracted: Whole-site crawl collected nothing
        """
        if self._state in (CrawlState.CRAWLING, CrawlState.GENERATING):
            raise RuntimeError("A crawl is already in progress")
        if self._state == CrawlState.REVIEW:
            self.reset()

        mode = CrawlMode(mode)
        seed_url = validate_seed_url(url, allow_private=self.allow_private_hosts)

        budget = 1 if mode == CrawlMode.SINGLE_PAGE else self.page_budget
        self._job = CrawlJob(budget=budget)
        self._job.enqueue([seed_url])
        self._current_url = None
        start_time = time.time()

        log = slog.bind(seed=seed_url, mode=mode.value)
        log.info("Starting crawl", page_budget=budget)
        self._transition(CrawlState.CRAWLING)

        try:
            if mode == CrawlMode.SINGLE_PAGE:
                report = await self._run_single_page(seed_url, chatbot_id)
            else:
                report = await self._run_whole_site(seed_url, chatbot_id)
        except Exception as e:
            self._state = CrawlState.INPUT
            self._current_url = None
            record_crawl(mode.value, "failed", time.time() - start_time)
            log.warning("Crawl failed", error=str(e), error_type=type(e).__name__)
            self._emit()
            raise

        report.duration_seconds = time.time() - start_time
        self._current_url = None
        self._transition(CrawlState.REVIEW)
        record_crawl(mode.value, "stopped" if report.stopped else "completed", report.duration_seconds)
        log.info(
            "Crawl finished",
            pages_visited=report.pages_visited,
            candidates=len(report.candidates),
            warnings=len(report.warnings),
        )
        return report

    async def _run_single_page(self, seed_url: str, chatbot_id: Optional[str]) -> CrawlReport:
        job = self._job
        url = job.next_url()
        job.visited.add(url)
        self._current_url = url
        self._emit()

        page = await self._fetch_page(url, urlparse(seed_url).netloc)
        warnings: List[CrawlWarning] = []
        self._save_page(page, chatbot_id, warnings)
        job.collected.append(CollectedPage(url=page.url, title=page.title, content=page.main_text))

        self._transition(CrawlState.GENERATING)
        candidates, failed = await self._generate(PageContext.from_page(page), warnings)

        return CrawlReport(
            mode=CrawlMode.SINGLE_PAGE,
            seed_url=seed_url,
            candidates=candidates,
            pages_visited=len(job.visited),
            pages_collected=len(job.collected),
            warnings=warnings,
            generation_failed=failed,
        )

    async def _run_whole_site(self, seed_url: str, chatbot_id: Optional[str]) -> CrawlReport:
        job = self._job
        domain = urlparse(seed_url).netloc
        warnings: List[CrawlWarning] = []

        while job.should_continue():
            url = job.next_url()
            if url in job.visited:
                continue
            job.visited.add(url)
            self._current_url = url
            self._emit()

            try:
                page = await self._fetch_page(url, domain)
            except (FetchFailure, ExtractionTooThin) as e:
                kind = "extraction" if isinstance(e, ExtractionTooThin) else "fetch"
                logger.warning(f"Skipping {url}: {e}")
                warnings.append(CrawlWarning(url=url, reason=str(e), kind=kind))
            else:
                self._save_page(page, chatbot_id, warnings)
                job.collected.append(CollectedPage(url=page.url, title=page.title, content=page.main_text))
                added = job.enqueue(page.links)
                logger.debug(f"Collected {url}; queued {added} new links ({len(job.queue)} waiting)")

            self._emit()
            if job.should_continue() and self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

        stopped = job.stop_requested
        if not job.collected:
            raise NoContentExtracted("No content could be extracted from the website.")

        self._current_url = None
        self._transition(CrawlState.GENERATING)
        candidates, failed = await self._generate(list(job.collected), warnings)

        return CrawlReport(
            mode=CrawlMode.WHOLE_SITE,
            seed_url=seed_url,
            candidates=candidates,
            pages_visited=len(job.visited),
            pages_collected=len(job.collected),
            warnings=warnings,
            stopped=stopped,
            generation_failed=failed,
        )

    async def _fetch_page(self, url: str, domain: str) -> ExtractedPage:
        try:
            html = await self.fetcher.fetch_html(url)
        except FetchFailure:
            record_page("fetch_failed")
            raise
        try:
            page = extract(html, url, domain=domain, max_links=self.max_links_per_page)
        except ExtractionTooThin:
            record_page("too_thin")
            raise
        record_page("ok")
        return page

    def _save_page(self, page: ExtractedPage, chatbot_id: Optional[str],
                   warnings: List[CrawlWarning]) -> None:
        """Persist the page; storage failures are logged and the crawl continues."""
        if self.store is None or not chatbot_id:
            return
        try:
            self.store.save_crawled_page(chatbot_id, CrawledPage.from_page(page))
        except Exception as e:
            record_error(type(e).__name__, "crawl_storage")
            logger.error(f"Failed to save crawled content for {page.url}: {e}")
            warnings.append(CrawlWarning(url=page.url, reason=f"Content not saved: {e}", kind="storage"))

    async def _generate(self, context, warnings: List[CrawlWarning]):
        """Summarize collected content. Generation failures never fail the crawl."""
        try:
            return await self.summarizer.summarize(context), False
        except GenerationError as e:
            logger.warning(f"Q&A generation failed: {e}")
            url = self._job.collected[0].url
            warnings.append(CrawlWarning(url=url, reason=str(e), kind="generation"))
            if self.use_fallback_entry:
                return [fallback_entry(context)], True
            return [], True


def commit_selected(store, chatbot_id: str, report: CrawlReport,
                    indices: Sequence[int]) -> List[QAEntry]:
    """Persist the reviewer-selected candidates; everything else is discarded."""
    selected = report.select(indices)
    created = store.create_entries(chatbot_id, selected)
    logger.info(f"Committed {len(created)} of {len(report.candidates)} candidates to chatbot {chatbot_id}")
    return created
