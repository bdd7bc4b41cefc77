"""AI-assisted summarization of crawled content into Q&A entries.

``SummaryGenerator`` owns the prompt and the response contract; the actual
model call is delegated to a ``TextGenerator``. The model is asked for a raw
JSON array of ``{"question", "answer", "keywords"}`` objects. Responses
wrapped in markdown code fences are accepted, invalid elements are dropped.
"""

import json
import logging
import re
from typing import Any, List, Sequence, Union

from observability.metrics import record_generation
from .errors import GenerationError, InvalidInput
from .models import CollectedPage, PageContext, QAEntry, normalize_keywords

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 5
MAX_COMBINED_CHARS = 30000
FALLBACK_ANSWER_CHARS = 400

_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_WORD = re.compile(r"[a-z0-9][a-z0-9'-]{2,}")
_STOPWORDS = {
    "the", "and", "for", "with", "from", "that", "this", "your", "you", "our",
    "are", "was", "home", "page", "welcome", "about",
}

SummaryContext = Union[PageContext, Sequence[CollectedPage]]

RESPONSE_FORMAT = """Return ONLY valid JSON in this exact format (no markdown, no code blocks, just raw JSON):
[
  {
    "question": "Question here?",
    "answer": "Detailed answer here.",
    "keywords": ["keyword1", "keyword2", "keyword3", "keyword4"]
  }
]"""


def combine_pages(pages: Sequence[CollectedPage], limit: int = MAX_COMBINED_CHARS) -> str:
    """Join collected pages into one source block, capped at ``limit`` characters."""
    blocks = [
        f"SOURCE: {page.url}\nTITLE: {page.title or 'No Title'}\nCONTENT:\n{page.content}\n---\n"
        for page in pages
    ]
    return "\n".join(blocks)[:limit]


def build_page_prompt(context: PageContext, max_entries: int) -> str:
    return f"""You are a helpful assistant that creates FAQ questions and answers based on website content.

Website Title: {context.title}
Description: {context.description}

Content:
{context.text}

Based on this content, generate exactly {max_entries} frequently asked questions with detailed answers. Focus on:
- Practical questions users would actually ask
- Clear, complete answers (2-4 sentences each)
- Relevant keywords for pattern matching (4-6 keywords per question)

{RESPONSE_FORMAT}

Make sure questions are specific to this website's content."""


def build_batch_prompt(pages: Sequence[CollectedPage], max_entries: int,
                       limit: int = MAX_COMBINED_CHARS) -> str:
    return f"""You are a helpful assistant that creates FAQ questions and answers for a customer support chatbot.
The content below was collected from {len(pages)} pages of the same website.

{combine_pages(pages, limit)}

Based on all of this content, generate exactly {max_entries} frequently asked questions with detailed answers. Focus on:
- The questions customers are most likely to ask about this website as a whole
- Clear, complete answers (2-4 sentences each) grounded only in the content above
- Relevant keywords for pattern matching (4-6 short, lower-case keywords per question)

{RESPONSE_FORMAT}"""


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    return _FENCE.sub("", text.strip()).strip()


def parse_entries(text: str, max_entries: int = DEFAULT_MAX_ENTRIES) -> List[QAEntry]:
    """Parse a generator response into validated entries.

    Raises:
        GenerationError: Empty text, invalid JSON, a non-array payload, or no valid elements
    """
    if not text or not text.strip():
        raise GenerationError("No content generated.")

    try:
        payload = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise GenerationError(f"Failed to parse AI response: {e}") from e

    if not isinstance(payload, list):
        raise GenerationError("AI response is not a JSON array.")

    entries: List[QAEntry] = []
    for index, item in enumerate(payload):
        entry = _to_entry(item)
        if entry is None:
            logger.debug(f"Discarding invalid generated element #{index}")
            continue
        entries.append(entry)
        if len(entries) >= max_entries:
            break

    if not entries:
        raise GenerationError("Failed to generate valid questions.")
    return entries


def _to_entry(item: Any):
    if not isinstance(item, dict):
        return None
    question, answer, keywords = item.get("question"), item.get("answer"), item.get("keywords")
    if not isinstance(question, str) or not isinstance(answer, str):
        return None
    if not isinstance(keywords, list):
        return None
    try:
        return QAEntry(question=question, answer=answer, keywords=keywords)
    except InvalidInput:
        return None


def fallback_entry(context: SummaryContext) -> QAEntry:
    """Build the single default entry used when generation fails."""
    if isinstance(context, PageContext):
        title, description, text = context.title, context.description, context.text
    else:
        first = context[0]
        title, description, text = first.title, "", first.content

    subject = title.strip() or "this website"
    answer = description.strip() or text.strip()[:FALLBACK_ANSWER_CHARS]
    if not answer:
        answer = f"Please browse {subject} for more information."

    keywords = [w for w in _WORD.findall(subject.lower()) if w not in _STOPWORDS][:6]
    keywords = normalize_keywords(keywords) or ["about", "information"]

    return QAEntry(question=f"What is {subject} about?", answer=answer, keywords=keywords)


class SummaryGenerator:
    """Turns page content into Q&A entries through a text-generation service."""

    def __init__(self, generator, max_entries: int = DEFAULT_MAX_ENTRIES,
                 max_combined_chars: int = MAX_COMBINED_CHARS):
        """Initialize summary generator.

        Args:
            generator: Object exposing ``async generate(prompt) -> str``
            max_entries: Maximum number of entries returned (2-5)
            max_combined_chars: Cap on combined multi-page content
        """
        if not 2 <= max_entries <= 5:
            raise ValueError("max_entries must be between 2 and 5")
        self.generator = generator
        self.max_entries = max_entries
        self.max_combined_chars = max_combined_chars

    def build_prompt(self, context: SummaryContext) -> str:
        if isinstance(context, PageContext):
            return build_page_prompt(context, self.max_entries)
        if not context:
            raise InvalidInput("No page content to summarize")
        return build_batch_prompt(context, self.max_entries, self.max_combined_chars)

    async def summarize(self, context: SummaryContext) -> List[QAEntry]:
        """Generate Q&A entries for one page or a batch of collected pages.

        Raises:
            GenerationError: If the service errors, returns nothing, or yields no valid entries
        """
        prompt = self.build_prompt(context)
        purpose = "page" if isinstance(context, PageContext) else "batch"

        if self.generator is None:
            record_generation(purpose, "unavailable")
            raise GenerationError("AI service is not configured.")

        try:
            text = await self.generator.generate(prompt)
            entries = parse_entries(text, self.max_entries)
        except GenerationError:
            record_generation(purpose, "error")
            raise
        except Exception as e:
            record_generation(purpose, "error")
            logger.error(f"Unexpected generation failure: {e}")
            raise GenerationError(f"AI service error: {e}") from e

        record_generation(purpose, "ok")
        logger.info(f"Generated {len(entries)} Q&A entries ({purpose})")
        return entries
