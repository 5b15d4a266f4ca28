"""Daily self-improvement articles for learners.

One cache entry per UTC day holds the whole batch. Topics for a day are
picked deterministically from the date, generated one at a time with a
pause between calls, and parsed strictly: an article that does not match
the expected shape is dropped, not repaired.
"""

import asyncio
import json
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as SchemaError

from core.exceptions import GenerationError, RequestShapeError, ValidationError
from core.logging import get_logger
from models.content import TopicArticleDraft, TopicArticlesRequest
from services.domains.base import ContentDomain, GeneratedContent, Generator, Identity
from services.domains.extraction import strip_code_fence
from services.fallback import topic_articles_fallback
from services.keys import TEXT
from services.providers import TextProvider

logger = get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"

MAX_VOCAB = 5
MAX_QUIZ = 3
MAX_TAKEAWAYS = 3


@dataclass(frozen=True)
class Topic:
    subject: str
    tag: str


TOPICS = (
    Topic("time management", "Productivity"),
    Topic("morning routine and habits", "Lifestyle"),
    Topic("focus and concentration techniques", "Focus"),
    Topic("goal setting and achievement", "Goals"),
    Topic("work-life balance", "Balance"),
    Topic("stress management and mental wellness", "Wellness"),
    Topic("learning and skill development", "Learning"),
    Topic("communication and relationships", "Life Tips"),
    Topic("personal finance and money habits", "Finance"),
    Topic("sleep and energy optimization", "Health"),
    Topic("mindfulness and meditation", "Mindfulness"),
    Topic("decision making and problem solving", "Thinking"),
    Topic("motivation and overcoming procrastination", "Motivation"),
    Topic("digital minimalism and screen time", "Digital Life"),
    Topic("building confidence and self-esteem", "Growth"),
    Topic("creativity and innovation", "Creativity"),
)

_UNSPLASH = "https://images.unsplash.com/{}?auto=format&fit=crop&w=1600&q=80"

TAG_IMAGES = {
    "Productivity": _UNSPLASH.format("photo-1484480974693-6ca0a78fb36b"),
    "Lifestyle": _UNSPLASH.format("photo-1506126613408-eca07ce68773"),
    "Focus": _UNSPLASH.format("photo-1499750310107-5fef28a66643"),
    "Goals": _UNSPLASH.format("photo-1504805572947-34fad45aed93"),
    "Balance": _UNSPLASH.format("photo-1545205597-3d9d02c29597"),
    "Wellness": _UNSPLASH.format("photo-1544367567-0f2fcb009e0b"),
    "Learning": _UNSPLASH.format("photo-1456513080510-7bf3a84b82f8"),
    "Life Tips": _UNSPLASH.format("photo-1522075469751-3a6694fb2f61"),
    "Finance": _UNSPLASH.format("photo-1554224155-6726b3ff858f"),
    "Health": _UNSPLASH.format("photo-1541781774459-bb2af2f05b55"),
    "Mindfulness": _UNSPLASH.format("photo-1508672019048-805c876b67e2"),
    "Thinking": _UNSPLASH.format("photo-1507003211169-0a1dd7228f2d"),
    "Motivation": _UNSPLASH.format("photo-1493612276216-ee3925520721"),
    "Digital Life": _UNSPLASH.format("photo-1512486130939-2c4f79935e4f"),
    "Growth": _UNSPLASH.format("photo-1531746790731-6c087fecd65a"),
    "Creativity": _UNSPLASH.format("photo-1513364776144-60967b0f800f"),
}
DEFAULT_IMAGE = _UNSPLASH.format("photo-1483058712412-4245e9b90334")

ARTICLE_SYSTEM = (
    "You are a helpful life coach and English teacher. Write practical, actionable "
    "articles that help people improve their lives. Always return valid JSON only, no markdown."
)

ARTICLE_PROMPT = """Write a helpful, practical article about "{subject}" for someone learning English and wanting to improve their life.

Requirements:
1. Title: catchy, actionable title (5-10 words)
2. Summary: the full article, 250-300 words of practical advice with specific tips
3. Tone: friendly, encouraging, easy to understand (B1-B2 English)
4. Vocabulary: 4-5 useful English words or phrases with simple definitions
5. Quiz: 3 comprehension questions, multiple choice with exactly 4 options each
6. Key takeaways: 3 short points summarizing the main ideas
7. Daily challenge: one simple action the reader can do today

Return ONLY valid JSON in this exact format:
{{
  "title": "Article title",
  "summary": "The full article...",
  "vocab": [{{"word": "example", "definition": "a simple definition"}}],
  "quiz": [{{"question": "What is the main idea?", "options": ["A", "B", "C", "D"], "correctIndex": 0}}],
  "keyTakeaways": ["First point", "Second point", "Third point"],
  "dailyChallenge": "Try this simple action today..."
}}"""


def utc_day(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(DATE_FORMAT)


def pick_topics(date: str, count: int) -> List[Topic]:
    """The same date always yields the same topics in the same order."""
    count = max(1, min(count, len(TOPICS)))
    return random.Random(date).sample(TOPICS, count)


def parse_topic_article(raw: Optional[str]) -> TopicArticleDraft:
    """Raises ValidationError unless the response is one well-formed article object."""
    text = strip_code_fence(raw)
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"article is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValidationError("article is not a JSON object")
    try:
        return TopicArticleDraft.model_validate(data)
    except SchemaError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error.get("loc", ()))
        raise ValidationError(f"invalid article field {location}: {error.get('msg')}") from e


class TopicArticlesGenerator(Generator):
    """Generates a day's batch sequentially, keeping the articles that parse."""

    def __init__(self, text_provider: TextProvider, count: int = 8, delay: float = 0.5,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], float] = time.time):
        super().__init__([text_provider])
        self.text_provider = text_provider
        self.count = count
        self.delay = delay
        self.sleep = sleep
        self.clock = clock

    async def _article(self, topic: Topic) -> Dict[str, Any]:
        raw = await self.text_provider.generate_text(
            ARTICLE_PROMPT.format(subject=topic.subject),
            system=ARTICLE_SYSTEM,
            max_tokens=1200,
            temperature=0.8,
        )
        draft = parse_topic_article(raw)
        return {
            "title": draft.title,
            "summary": draft.summary,
            "image": TAG_IMAGES.get(topic.tag, DEFAULT_IMAGE),
            "category": "lifestyle",
            "tag": topic.tag,
            "topic": topic.subject,
            "vocab": [item.model_dump() for item in draft.vocab[:MAX_VOCAB]],
            "quiz": [question.model_dump() for question in draft.quiz[:MAX_QUIZ]],
            "key_takeaways": draft.key_takeaways[:MAX_TAKEAWAYS],
            "daily_challenge": draft.daily_challenge,
            "generated_at": datetime.fromtimestamp(self.clock(), tz=timezone.utc).isoformat(),
        }

    async def generate(self, request: TopicArticlesRequest, key: str) -> GeneratedContent:
        topics = pick_topics(request.date, request.count or self.count)
        articles = []
        failed = []
        for index, topic in enumerate(topics):
            if index and self.delay > 0:
                await self.sleep(self.delay)
            try:
                articles.append(await self._article(topic))
            except GenerationError as e:
                logger.warning("Topic article failed", tag=topic.tag, cache_key=key, error=str(e))
                failed.append(topic.tag)

        if not articles:
            raise ValidationError(f"no article generated for {len(topics)} topics")

        note = None
        if failed:
            note = f"{len(failed)} of {len(topics)} topics failed: {', '.join(failed)}"
        logger.info("Topic articles generated", date=request.date,
                    generated=len(articles), failed=len(failed))
        return GeneratedContent(payload={"date": request.date, "articles": articles}, note=note)


class TopicArticlesDomain(ContentDomain):
    namespace = "topics"
    category = "lifestyle"

    def __init__(self, generator: TopicArticlesGenerator, default_count: int = 8):
        super().__init__(generator)
        self.default_count = default_count

    def identify(self, request: TopicArticlesRequest) -> Identity:
        date = (request.date or "").strip()
        try:
            datetime.strptime(date, DATE_FORMAT)
        except ValueError:
            raise RequestShapeError("date must be a day in YYYY-MM-DD form")
        return Identity(raw=date, kind=TEXT, context=(request.count or self.default_count,))

    def fallback(self, request: TopicArticlesRequest) -> Dict[str, Any]:
        return topic_articles_fallback(request.date)
