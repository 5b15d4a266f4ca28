"""Speech audio for words and phrases.

Keys are short (16 hex chars): the domain is single words and phrases, where
collisions are not a practical concern. Audio lives in object storage; the
cache entry holds only its path.
"""

from typing import Any, Dict

from core.exceptions import RequestShapeError
from models.content import SpeechRequest
from services.domains.base import ContentDomain, GeneratedContent, Generator, Identity
from services.fallback import speech_fallback
from services.keys import SHORT_KEY_LENGTH, TEXT
from services.providers import ObjectStorage, SpeechProvider

DEFAULT_VOICE = "shimmer"
DEFAULT_RATE = 1.0
MIN_RATE = 0.25
MAX_RATE = 4.0
CONTENT_TYPE = "audio/mpeg"


def resolve_voice(request: SpeechRequest) -> str:
    return (request.voice or "").strip() or DEFAULT_VOICE


def resolve_rate(request: SpeechRequest) -> float:
    if request.rate is None:
        return DEFAULT_RATE
    return max(MIN_RATE, min(MAX_RATE, float(request.rate)))


def storage_path(key: str) -> str:
    return f"tts/{key}.mp3"


class SpeechGenerator(Generator):
    """Synthesizes audio and uploads it; payload is the object path."""

    def __init__(self, speech_provider: SpeechProvider, storage: ObjectStorage):
        super().__init__([speech_provider, storage])
        self.speech_provider = speech_provider
        self.storage = storage

    async def generate(self, request: SpeechRequest, key: str) -> GeneratedContent:
        text = request.text.strip()
        voice = resolve_voice(request)
        rate = resolve_rate(request)

        # Leading and trailing spaces give clearer pronunciation at the edges
        audio = await self.speech_provider.generate_speech(f"  {text}  ", voice, rate)
        path = await self.storage.put_object(storage_path(key), audio, CONTENT_TYPE)

        return GeneratedContent(payload={
            "storage_path": path,
            "playback": "url",
            "content_type": CONTENT_TYPE,
            "voice": voice,
            "rate": rate,
        })


class SpeechDomain(ContentDomain):
    namespace = "speech"
    key_length = SHORT_KEY_LENGTH
    category = "tts"

    def identify(self, request: SpeechRequest) -> Identity:
        text = (request.text or "").strip()
        if not text:
            raise RequestShapeError("text is required")
        return Identity(raw=text, kind=TEXT,
                        context=(resolve_voice(request), f"{resolve_rate(request):.2f}"))

    def fallback(self, request: SpeechRequest) -> Dict[str, Any]:
        return speech_fallback(request.text.strip(), resolve_voice(request), resolve_rate(request))
