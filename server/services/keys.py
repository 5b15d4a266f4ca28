"""Identifier normalization and content-addressable cache keys.

normalize() turns a raw identifier into a canonical string so that logically
equivalent inputs share a key; derive_key() hashes the canonical string
together with every parameter that changes the generated output.
"""

import hashlib
import re
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from core.exceptions import NormalizationError
from core.logging import get_logger

logger = get_logger(__name__)

URL = "url"
TEXT = "text"

MAX_TEXT_LENGTH = 700

# Digest lengths in hex characters
FULL_KEY_LENGTH = 64
SHORT_KEY_LENGTH = 16

TRACKING_PARAMS = frozenset({"fbclid", "gclid"})
TRACKING_PREFIXES = ("utm_",)

_WHITESPACE = re.compile(r"\s+")


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def normalize_url(raw: str) -> str:
    """Canonicalize a URL; raises NormalizationError when it is not one."""
    trimmed = raw.strip()
    try:
        parts = urlsplit(trimmed)
        # Accessing .port validates the netloc
        parts.port
    except ValueError as e:
        raise NormalizationError(f"unparseable url: {e}") from e

    if not parts.scheme or not parts.hostname:
        raise NormalizationError("url has no scheme or host")

    host = parts.hostname.lower()
    # hostname drops the brackets around IPv6 literals
    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if parts.port is not None:
        netloc = f"{host}:{parts.port}"
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials = f"{credentials}:{parts.password}"
        netloc = f"{credentials}@{netloc}"

    path = parts.path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = [(name, value) for name, value in parse_qsl(parts.query, keep_blank_values=True)
             if not _is_tracking_param(name)]

    return urlunsplit((parts.scheme.lower(), netloc, path, urlencode(query), ""))


def normalize_text(raw: str) -> str:
    collapsed = _WHITESPACE.sub(" ", raw.strip())
    return collapsed.lower()[:MAX_TEXT_LENGTH]


def normalize(raw: Optional[str], kind: str) -> str:
    """Canonicalize an identifier. Never fails on bad input.

    URLs that cannot be parsed fall back to the trimmed raw string.
    """
    raw = raw or ""
    if kind == URL:
        try:
            return normalize_url(raw)
        except NormalizationError as e:
            logger.debug("URL normalization fell back to raw input", error=str(e))
            return raw.strip()
    if kind == TEXT:
        return normalize_text(raw)
    raise ValueError(f"Unknown identifier kind: {kind}")


def derive_key(namespace: str, normalized: str, context_fields: Iterable = (),
               length: int = FULL_KEY_LENGTH) -> str:
    """SHA-256 of namespace | normalized | context fields, as hex.

    Pass every field that changes the output for the same normalized input
    (voice, rate, sense, style...); leaving one out makes distinct outputs
    share a key.
    """
    if not 1 <= length <= FULL_KEY_LENGTH:
        raise ValueError(f"Key length must be between 1 and {FULL_KEY_LENGTH}")
    context = "|".join("" if field is None else str(field) for field in context_fields)
    material = f"{namespace}|{normalized}|{context}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:length]


def derive_title_date_key(namespace: str, title: str, published_at: Optional[str]) -> str:
    """Key for items that carry neither URL nor id.

    Weaker than URL keys: two different items with an identical title and
    publish date map to the same key.
    """
    return derive_key(namespace, f"{normalize_text(title)}|{(published_at or '').strip()}")
