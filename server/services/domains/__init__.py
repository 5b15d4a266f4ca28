"""Content domains served through the cache-aside pipeline.

- base.py: ContentDomain, Generator and the primary/extension QualityGate
- extraction.py: vocabulary extraction pass with strict response parsing
- speech.py: text-to-speech audio stored in object storage
- news.py: article summaries with vocabulary
- vocabulary.py: vocabulary from arbitrary text
- images.py: phrase illustrations stored in object storage
- topics.py: daily batch of self-improvement articles
"""

from .base import (
    ContentDomain,
    GeneratedContent,
    Generator,
    Identity,
    QualityGate,
    QualityGateResult,
)
from .extraction import ParseResult, VocabularyExtractor, parse_vocabulary
from .speech import SpeechDomain, SpeechGenerator
from .news import NewsDomain, NewsGenerator
from .vocabulary import VocabularyDomain, VocabularyGenerator
from .images import ImageDomain, ImageGenerator
from .topics import TopicArticlesDomain, TopicArticlesGenerator

__all__ = [
    "ContentDomain",
    "GeneratedContent",
    "Generator",
    "Identity",
    "QualityGate",
    "QualityGateResult",
    "ParseResult",
    "VocabularyExtractor",
    "parse_vocabulary",
    "SpeechDomain",
    "SpeechGenerator",
    "NewsDomain",
    "NewsGenerator",
    "VocabularyDomain",
    "VocabularyGenerator",
    "ImageDomain",
    "ImageGenerator",
    "TopicArticlesDomain",
    "TopicArticlesGenerator",
]
