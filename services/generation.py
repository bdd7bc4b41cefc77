"""Text-generation service client.

The rest of the system only depends on ``TextGenerator.generate(prompt) -> str``;
``OpenAITextGenerator`` implements it against any OpenAI-compatible chat
completions endpoint.
"""

import logging
from typing import Optional, Protocol

import openai

from config.settings import GenerationSettings
from pipelines.errors import GenerationError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class OpenAITextGenerator:
    """Chat-completions backed text generator."""

    def __init__(self,
                 api_key: str,
                 model: str = "gpt-4o-mini",
                 base_url: Optional[str] = None,
                 temperature: float = 0.3,
                 max_tokens: int = 1500,
                 timeout: float = 60.0,
                 client: Optional[openai.AsyncOpenAI] = None):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: GenerationSettings,
                      max_tokens: Optional[int] = None) -> 'OpenAITextGenerator':
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            max_tokens=max_tokens or settings.max_tokens,
            timeout=settings.timeout,
        )

    async def generate(self, prompt: str) -> str:
        """Send ``prompt`` as a single user message and return the reply text.

        Raises:
            GenerationError: If the service call fails
        """
        logger.info(f"Sending generation request to {self.model} ({len(prompt)} chars)")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            logger.error(f"Generation request failed: {e}")
            raise GenerationError(f"AI service error: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def build_text_generator(settings: GenerationSettings,
                         max_tokens: Optional[int] = None) -> Optional[OpenAITextGenerator]:
    """Return a configured generator, or ``None`` when no API key is set."""
    if not settings.enabled:
        logger.warning("No generation API key configured; AI summarization and escalation disabled")
        return None
    return OpenAITextGenerator.from_settings(settings, max_tokens=max_tokens)
