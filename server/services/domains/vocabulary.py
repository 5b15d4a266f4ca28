"""Vocabulary extracted from arbitrary text."""

from typing import Any, Dict

from core.exceptions import RequestShapeError
from models.content import VocabularyRequest
from services.domains.base import ContentDomain, GeneratedContent, Generator, Identity
from services.domains.extraction import VocabularyExtractor
from services.fallback import count_words, vocabulary_fallback
from services.keys import TEXT
from services.providers import TextProvider


class VocabularyGenerator(Generator):

    def __init__(self, text_provider: TextProvider, extractor: VocabularyExtractor):
        super().__init__([text_provider])
        self.extractor = extractor

    async def generate(self, request: VocabularyRequest, key: str) -> GeneratedContent:
        text = request.text.strip()
        items = await self.extractor.extract(text, request.limit)
        return GeneratedContent(payload={
            "vocabulary": items,
            "source_word_count": count_words(text),
        })


class VocabularyDomain(ContentDomain):
    namespace = "vocabulary"
    category = "vocabulary"

    def __init__(self, generator: VocabularyGenerator, default_limit: int = 8,
                 fallback_size: int = 5):
        super().__init__(generator)
        self.default_limit = default_limit
        self.fallback_size = fallback_size

    def _limit(self, request: VocabularyRequest) -> int:
        return request.limit or self.default_limit

    def identify(self, request: VocabularyRequest) -> Identity:
        text = (request.text or "").strip()
        if not text:
            raise RequestShapeError("text is required")
        # Texts that agree on their first 700 normalized characters share a key
        return Identity(raw=text, kind=TEXT, context=(self._limit(request),))

    def fallback(self, request: VocabularyRequest) -> Dict[str, Any]:
        return vocabulary_fallback(request.text, min(self._limit(request), self.fallback_size))
