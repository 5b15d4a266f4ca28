"""Building blocks shared by the content domains.

A ContentDomain tells the pipeline how to identify a request (raw identifier,
normalization kind, context fields), how to generate content for it, and what
to serve when generation fails. The pipeline itself is domain-agnostic.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import ConfigurationError, GenerationError, ValidationError
from core.logging import get_logger
from models.content import ContentRequest
from services.fallback import count_words
from services.keys import FULL_KEY_LENGTH
from services.providers import TextProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """What a request is cached under.

    key, when set, replaces the normalized-identifier hash (used for items
    without a stable identifier).
    """
    raw: str
    kind: str
    context: Tuple = ()
    key: Optional[str] = None


@dataclass
class GeneratedContent:
    payload: Dict[str, Any]
    note: Optional[str] = None


class Generator:
    """Produces high-quality content for one request, or raises GenerationError."""

    def __init__(self, providers: List[Any]):
        self.providers = providers

    def ensure_configured(self) -> None:
        missing = [provider.name for provider in self.providers if not provider.configured]
        if missing:
            raise ConfigurationError(f"Missing credentials for: {', '.join(missing)}")

    async def generate(self, request: ContentRequest, key: str) -> GeneratedContent:
        raise NotImplementedError


class ContentDomain:
    """One content type served through the cache-aside pipeline."""

    namespace = "content"
    key_length = FULL_KEY_LENGTH
    category: Optional[str] = None

    def __init__(self, generator: Generator):
        self.generator = generator

    def identify(self, request: ContentRequest) -> Identity:
        """Raises RequestShapeError when required fields are missing."""
        raise NotImplementedError

    def fallback(self, request: ContentRequest) -> Dict[str, Any]:
        """Always-available payload. Must not raise."""
        raise NotImplementedError

    def category_for(self, request: ContentRequest) -> Optional[str]:
        return self.category

    def ensure_configured(self) -> None:
        self.generator.ensure_configured()


# =============================================================================
# Multi-pass text generation
# =============================================================================

@dataclass
class QualityGateResult:
    text: str
    word_count: int
    passes: int
    extended: bool


class QualityGate:
    """Primary pass plus at most one extension pass.

    When the primary result has fewer than min_words words, exactly one
    extension pass is issued with the primary text as seed. The extension is
    kept only if it clears the threshold; otherwise the primary stands.
    """

    def __init__(self, text_provider: TextProvider, min_words: int, max_tokens: int):
        self.text_provider = text_provider
        self.min_words = min_words
        self.max_tokens = max_tokens

    async def run(self, prompt: str, extension_prompt: str, system: Optional[str] = None) -> QualityGateResult:
        primary = await self.text_provider.generate_text(prompt, system=system,
                                                         max_tokens=self.max_tokens)
        primary = (primary or "").strip()
        if not primary:
            raise ValidationError("primary pass returned empty text")

        primary_words = count_words(primary)
        if primary_words >= self.min_words:
            return QualityGateResult(primary, primary_words, passes=1, extended=False)

        logger.info("Primary pass below word threshold, extending",
                    word_count=primary_words, min_words=self.min_words)
        try:
            extended = await self.text_provider.generate_text(
                extension_prompt.format(seed=primary, min_words=self.min_words),
                system=system,
                max_tokens=self.max_tokens,
            )
        except GenerationError as e:
            logger.warning("Extension pass failed, keeping primary", error=str(e))
            return QualityGateResult(primary, primary_words, passes=2, extended=False)

        extended = (extended or "").strip()
        extended_words = count_words(extended)
        if extended_words >= self.min_words:
            return QualityGateResult(extended, extended_words, passes=2, extended=True)

        logger.info("Extension pass rejected, keeping primary",
                    word_count=extended_words, min_words=self.min_words)
        return QualityGateResult(primary, primary_words, passes=2, extended=False)
