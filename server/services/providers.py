"""External content providers.

Thin async clients for the capabilities the generators consume:

    TextProvider.generate_text(prompt)            -> str
    SpeechProvider.generate_speech(text, ...)     -> bytes
    ImageProvider.generate_image(prompt, ...)     -> bytes
    ObjectStorage.put_object(path, data)          -> path
    ObjectStorage.get_signed_url(path, ttl)       -> url

Every failure surfaces as ProviderError (network, timeout or status) or
ValidationError (2xx response without the expected content). Transient
errors are retried according to the configured RetryPolicy.
"""

import base64
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import openai
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from core.config import Settings
from core.exceptions import ProviderError, ValidationError
from core.logging import get_logger, log_api_call
from services.retry import RetryPolicy, call_with_retry

logger = get_logger(__name__)


def _error_details(response: httpx.Response) -> tuple:
    """Extract (code, message) from an error response body."""
    try:
        parsed = response.json()
    except ValueError:
        parsed = None
    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or response.text[:300]
    if isinstance(error, str):
        return None, error
    return None, response.text[:300] or f"HTTP {response.status_code}"


class HTTPProvider:
    """Shared httpx plumbing: timeouts, error classification and retries."""

    name = "http"

    def __init__(self, settings: Settings, retry_policy: Optional[RetryPolicy] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._transport = transport

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.settings.ai_timeout,
                                         transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, "timeout", str(e) or "request timed out") from e
        except httpx.RequestError as e:
            raise ProviderError(self.name, "network", str(e) or type(e).__name__) from e

        if not response.is_success:
            code, message = _error_details(response)
            raise ProviderError(self.name, "status", message,
                                status_code=response.status_code, code=code)
        return response

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        return await call_with_retry(
            self.retry_policy, f"{self.name}.{operation}",
            lambda: self._send(method, url, **kwargs)
        )


class TextProvider:
    """Chat-completion text generation through LangChain."""

    name = "openai"

    def __init__(self, settings: Settings, retry_policy: Optional[RetryPolicy] = None):
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    def create_model(self, max_tokens: int, temperature: float) -> ChatOpenAI:
        return ChatOpenAI(
            model=self.settings.text_model,
            api_key=self.settings.openai_api_key,
            base_url=self.settings.openai_base_url,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=self.settings.ai_timeout,
            max_retries=0,
        )

    async def _invoke(self, chat_model: ChatOpenAI, messages) -> str:
        try:
            response = await chat_model.ainvoke(messages)
        except openai.APITimeoutError as e:
            raise ProviderError(self.name, "timeout", str(e)) from e
        except openai.APIConnectionError as e:
            raise ProviderError(self.name, "network", str(e)) from e
        except openai.APIStatusError as e:
            body = e.body if isinstance(e.body, dict) else {}
            raise ProviderError(self.name, "status", e.message,
                                status_code=e.status_code, code=body.get("code")) from e

        content = response.content
        if isinstance(content, list):
            content = "".join(part.get("text", "") if isinstance(part, dict) else str(part)
                              for part in content)
        return (content or "").strip()

    async def generate_text(self, prompt: str, system: Optional[str] = None,
                            max_tokens: int = 600, temperature: float = 0.7) -> str:
        start_time = time.time()
        messages = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))

        chat_model = self.create_model(max_tokens, temperature)
        try:
            text = await call_with_retry(self.retry_policy, "openai.generate_text",
                                         lambda: self._invoke(chat_model, messages))
        except ProviderError as e:
            log_api_call(logger, self.name, self.settings.text_model, "generate_text", False,
                         error=str(e))
            raise

        log_api_call(logger, self.name, self.settings.text_model, "generate_text", True,
                     execution_time_seconds=round(time.time() - start_time, 4))
        return text


class SpeechProvider(HTTPProvider):
    """Text-to-speech through the OpenAI audio API."""

    name = "openai_speech"

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    async def generate_speech(self, text: str, voice: str, rate: float) -> bytes:
        response = await self._request(
            "generate_speech", "POST",
            f"{self.settings.openai_base_url}/audio/speech",
            headers={"Authorization": f"Bearer {self.settings.openai_api_key}"},
            json={
                "model": self.settings.speech_model,
                "voice": voice,
                "input": text,
                "response_format": "mp3",
                "speed": rate,
            },
        )
        if not response.content:
            raise ValidationError("speech provider returned no audio")

        log_api_call(logger, self.name, self.settings.speech_model, "generate_speech", True,
                     bytes=len(response.content))
        return response.content


class ImageProvider(HTTPProvider):
    """Image generation through the OpenAI images API."""

    name = "openai_image"

    @property
    def configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    async def generate_image(self, prompt: str, size: str, quality: str,
                             output_format: str = "png") -> bytes:
        body: Dict[str, Any] = {
            "model": self.settings.image_model,
            "prompt": prompt,
            "size": size,
            "quality": quality,
            "output_format": output_format,
        }
        if output_format in ("webp", "jpeg"):
            body["output_compression"] = 80

        response = await self._request(
            "generate_image", "POST",
            f"{self.settings.openai_base_url}/images/generations",
            headers={"Authorization": f"Bearer {self.settings.openai_api_key}"},
            json=body,
        )

        try:
            item = response.json()["data"][0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ValidationError("image provider returned no image") from e

        encoded = None
        if isinstance(item, dict):
            encoded = item.get("b64_json") or item.get("b64")
        if not isinstance(encoded, str) or not encoded:
            raise ValidationError("image provider returned no image")

        try:
            data = base64.b64decode(encoded, validate=True)
        except ValueError as e:
            raise ValidationError("image provider returned invalid base64") from e

        log_api_call(logger, self.name, self.settings.image_model, "generate_image", True,
                     bytes=len(data))
        return data


class ObjectStorage(HTTPProvider):
    """Bucket in a Supabase-compatible storage REST API."""

    name = "storage"

    def __init__(self, settings: Settings, bucket: str,
                 retry_policy: Optional[RetryPolicy] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(settings, retry_policy, transport)
        self.bucket = bucket

    @property
    def configured(self) -> bool:
        return self.settings.storage_configured

    @property
    def _base(self) -> str:
        return f"{(self.settings.supabase_url or '').rstrip('/')}/storage/v1"

    @property
    def _headers(self) -> Dict[str, str]:
        key = self.settings.supabase_service_role_key or ""
        return {"Authorization": f"Bearer {key}", "apikey": key}

    async def put_object(self, path: str, data: bytes, content_type: str) -> str:
        """Upload (overwriting) and return the object path."""
        await self._request(
            "put_object", "POST",
            f"{self._base}/object/{self.bucket}/{quote(path)}",
            headers={**self._headers, "Content-Type": content_type, "x-upsert": "true",
                     "Cache-Control": "max-age=31536000"},
            content=data,
        )
        logger.debug("Stored object", bucket=self.bucket, path=path, bytes=len(data))
        return path

    async def get_signed_url(self, path: str, ttl: int) -> str:
        """Mint a time-limited URL for an existing object."""
        response = await self._request(
            "get_signed_url", "POST",
            f"{self._base}/object/sign/{self.bucket}/{quote(path)}",
            headers=self._headers,
            json={"expiresIn": ttl},
        )
        try:
            signed = response.json().get("signedURL") or response.json().get("signedUrl")
        except (ValueError, AttributeError) as e:
            raise ValidationError("storage returned no signed URL") from e
        if not signed:
            raise ValidationError("storage returned no signed URL")
        if signed.startswith("http"):
            return signed
        return f"{self._base}{signed}"
