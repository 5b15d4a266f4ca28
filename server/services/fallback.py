"""Dependency-free fallback content.

Used whenever a provider is down, unconfigured, or returns something
unusable. Nothing here performs I/O or raises for any input.
"""

import re
from typing import Any, Dict, List, Optional

MIN_TOKEN_LENGTH = 4
DEFAULT_LIMIT = 5

PLACEHOLDER_WORD = "vocabulary"
DEFAULT_DEFINITION = "Key word from this text"

STOPWORDS = frozenset({
    "a", "about", "above", "after", "again", "against", "all", "also", "am", "an",
    "and", "any", "are", "as", "at", "be", "because", "been", "before", "being",
    "below", "between", "both", "but", "by", "can", "could", "did", "do", "does",
    "doing", "down", "during", "each", "even", "every", "few", "for", "from",
    "further", "had", "has", "have", "having", "he", "her", "here", "hers",
    "herself", "him", "himself", "his", "how", "however", "i", "if", "in", "into",
    "is", "it", "its", "itself", "just", "like", "made", "make", "many", "may",
    "me", "might", "more", "most", "much", "must", "my", "myself", "never", "new",
    "no", "nor", "not", "now", "of", "off", "on", "once", "only", "or", "other",
    "our", "ours", "ourselves", "out", "over", "own", "said", "same", "says",
    "she", "should", "since", "so", "some", "still", "such", "than", "that",
    "the", "their", "theirs", "them", "themselves", "then", "there", "these",
    "they", "this", "those", "through", "to", "too", "under", "until", "up",
    "upon", "us", "very", "was", "we", "were", "what", "when", "where", "which",
    "while", "who", "whom", "why", "will", "with", "within", "without", "would",
    "year", "years", "yet", "you", "your", "yours", "yourself", "yourselves",
})

_TOKEN = re.compile(r"[A-Za-z][A-Za-z'-]*")


def is_stopword(word: str) -> bool:
    return word.lower() in STOPWORDS


def qualifying_tokens(text: Optional[str]) -> List[str]:
    """Lowercased tokens long enough and not stopwords, first-seen order, deduplicated."""
    seen = set()
    tokens = []
    for match in _TOKEN.finditer(text or ""):
        token = match.group(0).strip("'-").lower()
        if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


def synthesize_vocabulary(text: Optional[str], limit: int = DEFAULT_LIMIT,
                          definition: str = DEFAULT_DEFINITION) -> List[Dict[str, str]]:
    """Pick vocabulary straight from the text.

    Always returns at least one item: when nothing qualifies, a single
    placeholder entry is returned instead.
    """
    limit = max(1, limit)
    words = qualifying_tokens(text)[:limit]
    if not words:
        return [{"word": PLACEHOLDER_WORD, "definition": definition}]
    return [{"word": word, "definition": definition} for word in words]


def count_words(text: Optional[str]) -> int:
    return len((text or "").split())


# =============================================================================
# Per-domain fallback payloads
# =============================================================================

def news_fallback(article: Dict[str, Any], vocab_size: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    """Article payload built from the raw feed item."""
    title = (article.get("title") or article.get("description") or "Daily update").strip()
    summary = (article.get("content") or article.get("description") or title).strip()
    return {
        "title": title,
        "summary": summary,
        "image": article.get("image") or "",
        "category": article.get("category") or "general",
        "tag": "Live",
        "source_url": article.get("url"),
        "published_at": article.get("published_at"),
        "vocab": synthesize_vocabulary(f"{title} {summary}", vocab_size,
                                       definition="Key word from headline"),
        "vocab_source": "fallback",
        "word_count": count_words(summary),
    }


def vocabulary_fallback(text: str, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    return {
        "vocabulary": synthesize_vocabulary(text, limit),
        "source_word_count": count_words(text),
    }


def speech_fallback(text: str, voice: str, rate: float) -> Dict[str, Any]:
    """No audio; tells the client to speak the text on-device."""
    return {
        "storage_path": None,
        "playback": "device",
        "text": text,
        "voice": voice,
        "rate": rate,
    }


def image_fallback(phrase: str, sense: str, image_url: Optional[str] = None) -> Dict[str, Any]:
    return {
        "storage_path": None,
        "image_url": image_url,
        "keywords": [item["word"] for item in synthesize_vocabulary(f"{phrase} {sense}")],
    }


def topic_articles_fallback(date: Optional[str]) -> Dict[str, Any]:
    """No articles. The service reports an error and the next request regenerates."""
    return {"date": date, "articles": []}
