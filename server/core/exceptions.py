"""Content service exception hierarchy."""

from typing import Optional


class ContentServiceError(Exception):
    """Base exception for all content service errors."""


class NormalizationError(ContentServiceError):
    """Identifier could not be parsed into its canonical form."""


class CacheReadError(ContentServiceError):
    """Backing store failed while reading an entry."""


class CacheWriteError(ContentServiceError):
    """Backing store failed while writing an entry."""


class GenerationError(ContentServiceError):
    """Generator could not produce content. Always recovered via fallback."""


class ProviderError(GenerationError):
    """Error from an external content provider.

    kind is one of "network", "timeout" or "status".
    """

    def __init__(self, provider: str, kind: str, message: str,
                 status_code: Optional[int] = None, code: Optional[str] = None):
        self.provider = provider
        self.kind = kind
        self.status_code = status_code
        self.code = code
        super().__init__(f"[{provider}] {kind}: {message}")

    @property
    def retryable(self) -> bool:
        if self.kind in ("network", "timeout"):
            return True
        return self.status_code is not None and (self.status_code == 429 or self.status_code >= 500)


class ValidationError(GenerationError):
    """Provider response did not match the expected structure."""


class InsufficientContentError(ValidationError):
    """Source text is too short to run a generation pass on."""


class ConfigurationError(ContentServiceError):
    """Required credentials or settings are missing. Fatal."""


class RequestShapeError(ContentServiceError):
    """Inbound request is missing a required field. Fatal."""
