"""Pipelines package for SupportBot.

Provides crawling, content extraction and Q&A summarization.
"""

from .crawler import (
    CrawlOrchestrator,
    CrawlMode,
    CrawlState,
    CrawlJob,
    CrawlReport,
    CrawlProgress,
    CrawlWarning,
    commit_selected
)
from .extractor import extract, extract_links
from .fetcher import PageFetcher, FetchResponse
from .summarizer import SummaryGenerator, parse_entries, fallback_entry
from .models import QAEntry, EntryState, CrawledPage, CollectedPage, PageContext, ExtractedPage
from .errors import (
    SupportBotError,
    InvalidInput,
    FetchFailure,
    ExtractionTooThin,
    GenerationError,
    NoContentExtracted
)

__all__ = [
    # Crawler
    'CrawlOrchestrator',
    'CrawlMode',
    'CrawlState',
    'CrawlJob',
    'CrawlReport',
    'CrawlProgress',
    'CrawlWarning',
    'commit_selected',

    # Extraction and fetching
    'extract',
    'extract_links',
    'PageFetcher',
    'FetchResponse',

    # Summarization
    'SummaryGenerator',
    'parse_entries',
    'fallback_entry',

    # Models
    'QAEntry',
    'EntryState',
    'CrawledPage',
    'CollectedPage',
    'PageContext',
    'ExtractedPage',

    # Errors
    'SupportBotError',
    'InvalidInput',
    'FetchFailure',
    'ExtractionTooThin',
    'GenerationError',
    'NoContentExtracted'
]
