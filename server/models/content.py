"""Pydantic request models for the content domains.

Required fields are validated by each domain rather than by pydantic so that
a missing value yields a 400 with a readable message, the same as an empty
one.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from services.fallback import is_stopword


# =============================================================================
# BASE MODELS
# =============================================================================

class ContentRequest(BaseModel):
    """Base class for all content requests."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    refresh: bool = False


# =============================================================================
# DOMAIN REQUESTS
# =============================================================================

class SpeechRequest(ContentRequest):
    """Text-to-speech for a word or phrase."""
    text: str = ""
    voice: Optional[str] = None
    rate: Optional[float] = None


class ArticleRequest(ContentRequest):
    """A raw news item to summarize."""
    url: Optional[str] = None
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    content: Optional[str] = None
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    image: Optional[str] = Field(default=None, alias="urlToImage")
    category: Optional[str] = None

    def raw_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"refresh"})


class VocabularyRequest(ContentRequest):
    """Vocabulary extraction from a body of text."""
    text: str = ""
    limit: Optional[int] = Field(default=None, ge=1, le=30)


class TopicArticlesRequest(ContentRequest):
    """A day's batch of self-improvement articles.

    date is a UTC day (YYYY-MM-DD); the service fills in today when it is missing.
    """
    date: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1, le=16)


class ImageRequest(ContentRequest):
    """Illustration of a phrase in a given sense."""
    phrase: str = ""
    sense: str = ""
    example: str = ""
    style: Optional[str] = None
    quality: Optional[str] = None
    size: Optional[str] = None


# =============================================================================
# EXTRACTED VOCABULARY
# =============================================================================

MIN_TERM_LENGTH = 3
MIN_DEFINITION_LENGTH = 3
MAX_DEFINITION_LENGTH = 200


class VocabItem(BaseModel):
    """One extracted term. Validation rejects rather than repairs."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    word: str = Field(min_length=MIN_TERM_LENGTH, max_length=48)
    definition: str = Field(min_length=MIN_DEFINITION_LENGTH, max_length=MAX_DEFINITION_LENGTH)

    @field_validator("word")
    @classmethod
    def validate_word(cls, v: str) -> str:
        if not all(ch.isalpha() or ch in " -'" for ch in v):
            raise ValueError("term must contain only letters, spaces, hyphens or apostrophes")
        if is_stopword(v):
            raise ValueError("term is a stopword")
        return v


VocabList = TypeAdapter(List[VocabItem])


# =============================================================================
# TOPIC ARTICLES
# =============================================================================

class QuizQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    correct_index: int = Field(alias="correctIndex", ge=0, le=3)


class TopicArticleDraft(BaseModel):
    """One generated article as the provider returns it."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    vocab: List[VocabItem] = Field(min_length=1)
    quiz: List[QuizQuestion] = Field(default_factory=list)
    key_takeaways: List[str] = Field(default_factory=list, alias="keyTakeaways")
    daily_challenge: str = Field(default="", alias="dailyChallenge")
