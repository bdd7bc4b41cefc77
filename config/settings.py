"""Application settings for SupportBot.

Settings are plain pydantic models with sensible defaults; ``AppSettings.from_env``
overlays ``SUPPORTBOT_*`` environment variables on top of them.
"""

import os
import logging
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SupportBotBuilder/1.0; +https://supportbot.dev/crawler)"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class CrawlSettings(BaseModel):
    """Crawl orchestration limits."""
    page_budget: int = Field(default=10, ge=1, description="Maximum pages visited by a whole-site crawl")
    request_timeout: float = Field(default=10.0, gt=0, description="Per-page fetch timeout in seconds")
    page_delay: float = Field(default=1.0, ge=0, description="Courtesy delay between pages in seconds")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent sent with every fetch")
    max_links_per_page: int = Field(default=20, ge=1, description="Outbound link cap per extracted page")
    allow_private_hosts: bool = Field(default=False, description="Permit crawling literal private IP hosts")


class GenerationSettings(BaseModel):
    """Text-generation service configuration."""
    base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint")
    api_key: Optional[str] = Field(default=None, description="API key for the generation service")
    model: str = Field(default="gpt-4o-mini", description="Model name")
    temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=1500, ge=1)
    chat_max_tokens: int = Field(default=500, ge=1)
    timeout: float = Field(default=60.0, gt=0, description="Generation timeout in seconds")
    max_entries: int = Field(default=5, ge=2, le=5, description="Q&A entries requested per crawl")
    use_fallback_entry: bool = Field(default=True, description="Substitute a default entry on generation failure")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class StorageSettings(BaseModel):
    """Knowledge-base store configuration."""
    database_url: str = Field(default="sqlite:///supportbot.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Log SQL statements")


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO")
    use_json: bool = Field(default=False)
    log_file: Optional[str] = Field(default=None)


class AppSettings(BaseModel):
    """Top level settings container."""
    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_env(cls) -> 'AppSettings':
        """Create settings from environment variables."""
        crawl = CrawlSettings(
            page_budget=int(os.getenv('SUPPORTBOT_PAGE_BUDGET', '10')),
            request_timeout=float(os.getenv('SUPPORTBOT_REQUEST_TIMEOUT', '10')),
            page_delay=float(os.getenv('SUPPORTBOT_PAGE_DELAY', '1.0')),
            user_agent=os.getenv('SUPPORTBOT_USER_AGENT', DEFAULT_USER_AGENT),
            max_links_per_page=int(os.getenv('SUPPORTBOT_MAX_LINKS_PER_PAGE', '20')),
            allow_private_hosts=_env_bool('SUPPORTBOT_ALLOW_PRIVATE_HOSTS', False),
        )
        generation = GenerationSettings(
            base_url=os.getenv('SUPPORTBOT_LLM_BASE_URL') or None,
            api_key=os.getenv('SUPPORTBOT_LLM_API_KEY') or os.getenv('OPENAI_API_KEY') or None,
            model=os.getenv('SUPPORTBOT_LLM_MODEL', 'gpt-4o-mini'),
            temperature=float(os.getenv('SUPPORTBOT_LLM_TEMPERATURE', '0.3')),
            timeout=float(os.getenv('SUPPORTBOT_LLM_TIMEOUT', '60')),
            max_entries=int(os.getenv('SUPPORTBOT_MAX_ENTRIES', '5')),
            use_fallback_entry=_env_bool('SUPPORTBOT_USE_FALLBACK_ENTRY', True),
        )
        storage = StorageSettings(
            database_url=os.getenv('SUPPORTBOT_DATABASE_URL', 'sqlite:///supportbot.db'),
            echo=_env_bool('SUPPORTBOT_DATABASE_ECHO', False),
        )
        log_settings = LoggingSettings(
            level=os.getenv('SUPPORTBOT_LOG_LEVEL', 'INFO'),
            use_json=_env_bool('SUPPORTBOT_LOG_JSON', False),
            log_file=os.getenv('SUPPORTBOT_LOG_FILE') or None,
        )
        return cls(crawl=crawl, generation=generation, storage=storage, logging=log_settings)


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Return the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = AppSettings.from_env()
        logger.debug("Settings loaded from environment")
    return _settings


def reset_settings(settings: Optional[AppSettings] = None) -> None:
    """Replace (or clear) the cached settings. Used by tests and the CLI."""
    global _settings
    _settings = settings
