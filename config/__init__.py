"""Configuration module for SupportBot.

Provides settings for crawling, text generation, storage and logging.
"""

from .settings import (
    AppSettings,
    CrawlSettings,
    GenerationSettings,
    StorageSettings,
    LoggingSettings,
    get_settings,
    reset_settings
)

__all__ = [
    'AppSettings',
    'CrawlSettings',
    'GenerationSettings',
    'StorageSettings',
    'LoggingSettings',
    'get_settings',
    'reset_settings'
]
