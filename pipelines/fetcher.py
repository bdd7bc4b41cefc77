"""HTTP page fetching for the crawl orchestrator."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp

from config.settings import DEFAULT_USER_AGENT
from .errors import FetchFailure

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """Raw result of one HTTP GET."""
    url: str
    status: int
    body: str
    content_type: str = ""
    final_url: Optional[str] = None  # After redirects
    response_time: Optional[float] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class PageFetcher:
    """Fetches pages one at a time with a bounded timeout and a descriptive User-Agent."""

    def __init__(self,
                 request_timeout: float = 10.0,
                 user_agent: str = DEFAULT_USER_AGENT,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize fetcher.

        Args:
            request_timeout: Total timeout per request in seconds
            user_agent: User-Agent header value
            session: Existing session to reuse; the fetcher will not close it
        """
        self.request_timeout = request_timeout
        self.user_agent = user_agent
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent}
            )
            self._owns_session = True

    async def close(self):
        """Close the underlying session if this fetcher created it."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def fetch(self, url: str) -> FetchResponse:
        """GET ``url`` and return the response regardless of status.

        Raises:
            FetchFailure: On network errors and timeouts
        """
        await self._ensure_session()
        start_time = time.time()

        try:
            logger.debug(f"Fetching {url}")
            async with self.session.get(
                url,
                allow_redirects=True,
                headers={'User-Agent': self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                body = await response.text(errors="replace")
                return FetchResponse(
                    url=url,
                    status=response.status,
                    body=body,
                    content_type=response.headers.get('content-type', ''),
                    final_url=str(response.url),
                    response_time=time.time() - start_time,
                )
        except asyncio.TimeoutError:
            logger.warning(f"Timeout fetching {url} after {self.request_timeout}s")
            raise FetchFailure(url, "Request timeout. The website took too long to respond.",
                               timed_out=True)
        except aiohttp.ClientError as e:
            logger.warning(f"Client error fetching {url}: {e}")
            raise FetchFailure(url, f"Could not connect to the website: {e}")

    async def fetch_html(self, url: str) -> str:
        """Fetch ``url`` and return its body, treating non-2xx and non-HTML responses as failures."""
        response = await self.fetch(url)

        if not response.ok:
            raise FetchFailure(
                url,
                f"Failed to fetch website. Status: {response.status}.",
                status_code=response.status,
            )

        content_type = response.content_type.lower()
        if content_type and 'html' not in content_type and not content_type.startswith('text/'):
            raise FetchFailure(url, f"Non-HTML content type: {response.content_type}",
                               status_code=response.status)

        return response.body
