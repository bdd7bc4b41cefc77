"""Wiring between settings, the knowledge store and crawl orchestrators."""

import logging
from typing import Callable, Optional

from config.settings import AppSettings
from pipelines.crawler import CrawlMode, CrawlOrchestrator, CrawlReport, ProgressCallback
from pipelines.fetcher import PageFetcher
from pipelines.security import validate_seed_url
from pipelines.summarizer import SummaryGenerator

logger = logging.getLogger(__name__)


class CrawlService:
    """Builds one orchestrator per crawl, each with its own fetcher session."""

    def __init__(self, settings: AppSettings, store=None, generator=None,
                 fetcher_factory: Optional[Callable] = None):
        self.settings = settings
        self.store = store
        self.generator = generator
        self.fetcher_factory = fetcher_factory or self._default_fetcher

    def _default_fetcher(self) -> PageFetcher:
        return PageFetcher(
            request_timeout=self.settings.crawl.request_timeout,
            user_agent=self.settings.crawl.user_agent,
        )

    def validate(self, url: str) -> str:
        return validate_seed_url(url, allow_private=self.settings.crawl.allow_private_hosts)

    def create_orchestrator(self, fetcher,
                            on_progress: Optional[ProgressCallback] = None) -> CrawlOrchestrator:
        crawl = self.settings.crawl
        generation = self.settings.generation
        return CrawlOrchestrator(
            fetcher=fetcher,
            summarizer=SummaryGenerator(self.generator, max_entries=generation.max_entries),
            store=self.store,
            page_budget=crawl.page_budget,
            page_delay=crawl.page_delay,
            max_links_per_page=crawl.max_links_per_page,
            use_fallback_entry=generation.use_fallback_entry,
            allow_private_hosts=crawl.allow_private_hosts,
            on_progress=on_progress,
        )

    async def crawl(self, url: str, mode: CrawlMode,
                    chatbot_id: Optional[str] = None) -> CrawlReport:
        """Run a crawl to completion and return its report."""
        async with self.fetcher_factory() as fetcher:
            orchestrator = self.create_orchestrator(fetcher)
            return await orchestrator.run(url, mode=mode, chatbot_id=chatbot_id)
