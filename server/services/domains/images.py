"""Illustrations of a phrase in a particular sense.

Every rendering option is part of the key, along with the model, output
format and a cache version that can be bumped to force regeneration.
"""

import re
from typing import Any, Dict, Optional

from core.config import Settings
from core.exceptions import ProviderError, RequestShapeError
from core.logging import get_logger
from models.content import ImageRequest
from services.domains.base import ContentDomain, GeneratedContent, Generator, Identity
from services.fallback import image_fallback
from services.keys import TEXT, normalize_text
from services.providers import ImageProvider, ObjectStorage

logger = get_logger(__name__)

STYLES = ("flat", "editorial", "comic", "painterly", "3d", "photo")
QUALITIES = ("low", "medium", "high")
SIZES = ("1024x1024", "1024x1536", "1536x1024", "auto")

CONTENT_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "webp": "image/webp"}
EXTENSIONS = {"png": "png", "jpeg": "jpg", "webp": "webp"}

STYLE_PRESETS = {
    "flat": [
        "Flat vector illustration, minimal, clean shapes, simple lighting, modern app illustration style.",
        "Simple background, clear subject, easy-to-read visual metaphor.",
    ],
    "editorial": [
        "Editorial illustration, textured shading, rich lighting, crisp edges, modern magazine style.",
        "Balanced colors, slightly higher contrast, more depth.",
    ],
    "comic": [
        "Comic illustration style, bold outlines, expressive characters, dynamic scene, rich colors.",
        "Clean linework, clear action, no text bubbles.",
    ],
    "painterly": [
        "Digital painting, soft brush textures, cinematic lighting, realistic proportions.",
        "Background context, still simple enough to understand instantly.",
    ],
    "3d": [
        "3D render illustration, soft studio lighting, detailed materials, no existing characters.",
        "Clean scene, clear objects, high readability.",
    ],
    "photo": [
        "Photorealistic scene, DSLR look, natural lighting, shallow depth of field.",
        "No brands, no logos, no readable text.",
    ],
}

RULES = [
    "No text, no subtitles, no watermarks, no logos, no brand names, no UI elements.",
    "Keep the main subject centered and clear.",
    "Illustrate the meaning of the phrase in this sense, not its literal words.",
]

# (phrase, sense pattern, hint) for phrases whose literal reading is a common trap
DISAMBIGUATION = [
    ("make up", re.compile(r"\b(invent|excuse|story|lie)\b"), "Avoid cosmetics or makeup imagery."),
    ("turn down", re.compile(r"\b(reject|decline|refuse|offer|invitation)\b"),
     "Avoid speakers, volume knobs or audio controls."),
    ("look up", re.compile(r"\b(dictionary|search|find|information)\b"),
     "Show searching for information, not looking up at the sky."),
]


def _pick(raw: Optional[str], default: str, allowed: tuple, fallback: str) -> str:
    value = normalize_text(raw or default)
    if value in allowed:
        return value
    return fallback


def build_prompt(phrase: str, sense: str, example: str, style: str) -> str:
    lines = list(STYLE_PRESETS.get(style, STYLE_PRESETS["editorial"]))
    lines.extend(RULES)
    lines.append(f'Phrase: "{phrase}".')
    lines.append(f'Meaning: "{sense}".')
    if example:
        lines.append(f'Example: "{example}".')

    phrase_key = phrase.lower().strip()
    context = f"{sense} {example}".lower()
    hints = [hint for target, pattern, hint in DISAMBIGUATION
             if phrase_key == target and pattern.search(context)]
    if hints:
        lines.append("Avoid: " + " ".join(hints))
    return "\n".join(lines)


def build_safe_prompt(phrase: str, sense: str) -> str:
    """Abstract prompt used once when moderation blocks the main prompt."""
    return "\n".join([
        "Abstract symbolic illustration, no people, no sensitive content, no text.",
        "Use simple objects, icons and metaphors to represent meaning.",
        "Clean background.",
        f'Phrase: "{phrase}".',
        f'Meaning: "{sense}".',
    ])


class ImageOptions:
    """Rendering options resolved against settings defaults and allowlists."""

    def __init__(self, request: ImageRequest, settings: Settings):
        self.style = _pick(request.style, settings.image_default_style, STYLES, "editorial")
        self.quality = _pick(request.quality, settings.image_default_quality, QUALITIES, "medium")
        self.size = _pick(request.size, settings.image_default_size, SIZES, "1024x1536")
        self.model = settings.image_model
        self.output_format = settings.image_output_format
        self.cache_version = settings.image_cache_version

    def context(self, sense: str) -> tuple:
        return (normalize_text(sense), self.style, self.quality, self.size, self.model,
                f"v{self.cache_version}", self.output_format)


class ImageGenerator(Generator):

    def __init__(self, image_provider: ImageProvider, storage: ObjectStorage, settings: Settings):
        super().__init__([image_provider, storage])
        self.image_provider = image_provider
        self.storage = storage
        self.settings = settings

    async def generate(self, request: ImageRequest, key: str) -> GeneratedContent:
        options = ImageOptions(request, self.settings)
        phrase = request.phrase.strip()
        sense = request.sense.strip()

        note = None
        try:
            image = await self.image_provider.generate_image(
                build_prompt(phrase, sense, request.example.strip(), options.style),
                options.size, options.quality, options.output_format,
            )
        except ProviderError as e:
            if e.code != "moderation_blocked":
                raise
            logger.info("Image prompt blocked by moderation, retrying with safe prompt",
                        cache_key=key)
            image = await self.image_provider.generate_image(
                build_safe_prompt(phrase, sense),
                options.size, options.quality, options.output_format,
            )
            note = "safe prompt used after moderation block"

        path = (f"{options.style}/{options.quality}/{options.size}/"
                f"{key}.{EXTENSIONS[options.output_format]}")
        await self.storage.put_object(path, image, CONTENT_TYPES[options.output_format])

        return GeneratedContent(payload={
            "storage_path": path,
            "image_url": None,
            "phrase": phrase,
            "sense": sense,
            "meta": {
                "model": options.model,
                "style": options.style,
                "quality": options.quality,
                "size": options.size,
                "format": options.output_format,
            },
        }, note=note)


class ImageDomain(ContentDomain):
    namespace = "image"
    category = "story"

    def __init__(self, generator: ImageGenerator, settings: Settings):
        super().__init__(generator)
        self.settings = settings

    def identify(self, request: ImageRequest) -> Identity:
        phrase = (request.phrase or "").strip()
        sense = (request.sense or "").strip()
        if len(phrase) < 2:
            raise RequestShapeError("phrase is required")
        if len(sense) < 3:
            raise RequestShapeError("sense is required")
        options = ImageOptions(request, self.settings)
        return Identity(raw=phrase, kind=TEXT, context=options.context(sense))

    def fallback(self, request: ImageRequest) -> Dict[str, Any]:
        return image_fallback(request.phrase.strip(), request.sense.strip(),
                              self.settings.image_fallback_url)
