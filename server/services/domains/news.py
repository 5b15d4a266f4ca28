"""Summarized news articles with vocabulary.

Items are keyed by canonical URL when they have one, by feed id otherwise,
and by title + publish date as a last resort.
"""

from typing import Any, Dict, Optional

from core.exceptions import GenerationError, InsufficientContentError, RequestShapeError
from core.logging import get_logger
from models.content import ArticleRequest
from services.domains.base import (
    ContentDomain, GeneratedContent, Generator, Identity, QualityGate,
)
from services.domains.extraction import VocabularyExtractor
from services.fallback import count_words, news_fallback, synthesize_vocabulary
from services.keys import TEXT, URL, derive_title_date_key
from services.providers import TextProvider

logger = get_logger(__name__)

SUMMARY_SYSTEM = (
    "You are a news editor writing for intermediate English learners. "
    "Write clear, neutral prose in B1-B2 English. Plain text only, no markdown."
)

SUMMARY_PROMPT = """Summarize this news story in 150-200 words.
Keep every fact from the source; do not invent details.

Title: {title}
Description: {description}
Content: {content}"""

EXTENSION_PROMPT = """The summary below is too short. Rewrite it as a fuller summary of at least
{min_words} words, adding background and context a learner would need.
Keep every fact; do not invent details.

Summary:
{seed}"""


class NewsGenerator(Generator):
    """Summary with quality gate, then vocabulary from the finalized summary."""

    def __init__(self, text_provider: TextProvider, quality_gate: QualityGate,
                 extractor: VocabularyExtractor, fallback_vocab_size: int = 5):
        super().__init__([text_provider])
        self.quality_gate = quality_gate
        self.extractor = extractor
        self.fallback_vocab_size = fallback_vocab_size

    async def generate(self, request: ArticleRequest, key: str) -> GeneratedContent:
        prompt = SUMMARY_PROMPT.format(
            title=request.title.strip(),
            description=(request.description or "").strip(),
            content=(request.content or "").strip(),
        )
        summary = await self.quality_gate.run(prompt, EXTENSION_PROMPT, system=SUMMARY_SYSTEM)

        note: Optional[str] = None
        try:
            source_words = count_words(request.content or request.description or "")
            if source_words < self.extractor.min_source_words:
                # Measured on the article itself, not the generated summary
                raise InsufficientContentError(
                    f"article has {source_words} words, "
                    f"needs {self.extractor.min_source_words} for vocabulary"
                )
            vocab = await self.extractor.extract(summary.text)
            vocab_source = "ai"
        except GenerationError as e:
            # The summary stands on its own; only the vocabulary degrades
            vocab = synthesize_vocabulary(f"{request.title} {summary.text}",
                                          self.fallback_vocab_size,
                                          definition="Key word from headline")
            vocab_source = "fallback"
            note = f"{type(e).__name__}: {e}"
            logger.info("News vocabulary fell back", cache_key=key, error=str(e))

        return GeneratedContent(payload={
            "title": request.title.strip(),
            "summary": summary.text,
            "image": request.image or "",
            "category": request.category or "general",
            "tag": "Live",
            "source_url": request.url,
            "published_at": request.published_at,
            "vocab": vocab,
            "vocab_source": vocab_source,
            "word_count": summary.word_count,
            "passes": summary.passes,
        }, note=note)


class NewsDomain(ContentDomain):
    namespace = "news"
    category = "news"

    def identify(self, request: ArticleRequest) -> Identity:
        url = (request.url or "").strip()
        if url:
            return Identity(raw=url, kind=URL)

        item_id = (request.id or "").strip()
        if item_id:
            return Identity(raw=item_id, kind=TEXT, context=("id",))

        title = (request.title or "").strip()
        if not title:
            raise RequestShapeError("url, id or title is required")
        published_at = (request.published_at or "").strip()
        return Identity(raw=f"{title}|{published_at}", kind=TEXT,
                        key=derive_title_date_key(self.namespace, title, published_at))

    def fallback(self, request: ArticleRequest) -> Dict[str, Any]:
        return news_fallback(request.raw_fields())

    def category_for(self, request: ArticleRequest) -> Optional[str]:
        return request.category or self.category
