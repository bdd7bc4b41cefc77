"""Error taxonomy for crawling, extraction, generation and answer resolution."""

from typing import Optional


class SupportBotError(Exception):
    """Base class for all SupportBot errors."""


class InvalidInput(SupportBotError, ValueError):
    """Malformed URL or missing required field; raised before any network or AI call."""


class FetchFailure(SupportBotError):
    """Network error, timeout, or non-2xx response while fetching a page."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None,
                 timed_out: bool = False):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        self.timed_out = timed_out
        super().__init__(f"Failed to fetch {url}: {reason}")


class ExtractionTooThin(SupportBotError):
    """Extracted main text is too short to be usable."""

    def __init__(self, url: str, length: int, minimum: int):
        self.url = url
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Could not extract enough content from {url} "
            f"({length} characters, need at least {minimum})"
        )


class GenerationError(SupportBotError):
    """The text-generation call errored, returned nothing, or yielded no valid entries."""


class NoContentExtracted(SupportBotError):
    """A whole-site crawl could not extract content from any page."""


class SourceUnavailable(SupportBotError):
    """A chatbot data source could not serve the request."""


class ChatbotNotFound(SupportBotError):
    pass


class EntryNotFound(SupportBotError):
    pass


class SessionNotFound(SupportBotError):
    pass
