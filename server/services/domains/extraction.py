"""Vocabulary extraction pass with strict response parsing.

The provider is asked for a JSON array of {"word", "definition"} objects.
parse_vocabulary() accepts that array or nothing: a response that is not
valid JSON, not an array, or that contains a single invalid or duplicate
item is rejected as a whole.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from core.exceptions import InsufficientContentError, ValidationError
from core.logging import get_logger
from models.content import VocabList
from services.fallback import count_words
from services.providers import TextProvider

logger = get_logger(__name__)

# A single fenced block wrapping the whole response, e.g. ```json [...] ```
_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

EXTRACTION_SYSTEM = (
    "You are an English teacher selecting vocabulary for intermediate learners. "
    "Return only a JSON array, no markdown, no commentary."
)

EXTRACTION_PROMPT = """Pick up to {limit} useful English words or short phrases from the text below.
For each, give a simple definition (under 20 words) that fits how it is used in the text.
Skip names, numbers and very common words.

Return ONLY a JSON array in this exact format:
[{{"word": "example", "definition": "a simple definition"}}]

Text:
{text}"""


def strip_code_fence(raw: Optional[str]) -> str:
    """Trimmed response with one wrapping code fence removed, if present."""
    text = (raw or "").strip()
    fenced = _FENCE.match(text)
    return fenced.group(1) if fenced else text


@dataclass
class ParseResult:
    """Outcome of parsing a provider response: items on success, error otherwise."""
    items: List[Dict[str, str]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, items: List[Dict[str, str]]) -> "ParseResult":
        return cls(items=items)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(error=error)


def parse_vocabulary(raw: Optional[str], max_items: int) -> ParseResult:
    """Validate a raw provider response as a vocabulary batch."""
    text = strip_code_fence(raw)

    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseResult.failure(f"response is not valid JSON: {e.msg}")

    if not isinstance(data, list):
        return ParseResult.failure("response is not a JSON array")
    if not data:
        return ParseResult.failure("response array is empty")

    try:
        items = VocabList.validate_python(data)
    except SchemaError as e:
        return ParseResult.failure(f"invalid item: {e.errors()[0].get('msg')}")

    seen = set()
    for item in items:
        term = item.word.lower()
        if term in seen:
            return ParseResult.failure(f"duplicate term: {term}")
        seen.add(term)

    return ParseResult.success([item.model_dump() for item in items[:max_items]])


class VocabularyExtractor:
    """Secondary pass deriving vocabulary from finalized text."""

    def __init__(self, text_provider: TextProvider, min_source_words: int, max_items: int):
        self.text_provider = text_provider
        self.min_source_words = min_source_words
        self.max_items = max_items

    async def extract(self, text: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Raises InsufficientContentError before calling the provider for short text."""
        limit = min(limit or self.max_items, self.max_items)
        word_count = count_words(text)
        if word_count < self.min_source_words:
            raise InsufficientContentError(
                f"source has {word_count} words, extraction needs {self.min_source_words}"
            )

        raw = await self.text_provider.generate_text(
            EXTRACTION_PROMPT.format(limit=limit, text=text),
            system=EXTRACTION_SYSTEM,
            max_tokens=500,
            temperature=0.3,
        )
        result = parse_vocabulary(raw, limit)
        if not result.ok:
            logger.warning("Vocabulary response rejected", error=result.error)
            raise ValidationError(result.error)
        return result.items
