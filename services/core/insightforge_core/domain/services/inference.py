"""Inference client for LLM operations.

Talks to an OpenAI-compatible ``/v1/chat/completions`` endpoint. Prompts
may carry images, which are sent inline as base64 data URIs.

Usage:
    config = InferenceConfig(base_url="https://llm.example.com", api_key="...")
    client = InferenceClient(config=config)

    response = await client.complete(
        "Summarize this post", images=[ImageInput(data=png, media_type="image/png")]
    )
    print(response.content, response.model_info.input_tokens)
"""

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from insightforge_core.config import Settings

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InferenceError(Exception):
    """Base exception for inference errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionInferenceError(InferenceError):
    pass


class TimeoutInferenceError(InferenceError):
    pass


class RateLimitInferenceError(InferenceError):
    """Server kept answering 429 after all retries."""

    pass


class ResponseInferenceError(InferenceError):
    """Error payload or malformed body from the server."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class InferenceConfig:
    """Configuration for the inference client.

    Attributes:
        base_url: URL of the inference server
        model_name: Model used when a call does not name one
        timeout: Request timeout in seconds
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        api_key: Bearer token for the server
        max_retries: Retries on HTTP 429 before giving up
        retry_base_delay: First backoff delay in seconds, doubled per retry
    """

    base_url: str
    model_name: str = "default"
    timeout: float = 60.0
    max_tokens: int = 2048
    temperature: float = 0.2
    api_key: Optional[str] = None
    max_retries: int = 3
    retry_base_delay: float = 2.0


@dataclass
class ImageInput:
    """Image bytes attached to a prompt."""

    data: bytes
    media_type: str = "image/jpeg"

    def to_content_part(self) -> dict:
        encoded = base64.b64encode(self.data).decode("ascii")
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{self.media_type};base64,{encoded}"},
        }


@dataclass
class ModelInfo:
    model_name: str
    input_tokens: int
    output_tokens: int
    latency_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ChatResponse:
    content: str
    model_info: ModelInfo
    finish_reason: str = "unknown"


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


def parse_completion(data: dict, model_name: str, latency_ms: int = 0) -> ChatResponse:
    """Turn a chat-completions body into a ChatResponse.

    Raises:
        ResponseInferenceError: If the body is an error payload or has no choices.
    """
    if "error" in data:
        raise ResponseInferenceError(f"LLM server error: {_error_message(data['error'])}")

    choices = data.get("choices") or []
    if not choices:
        raise ResponseInferenceError("Invalid response: no choices")

    try:
        choice = choices[0]
        usage = data.get("usage") or {}
        return ChatResponse(
            content=(choice.get("message") or {}).get("content") or "",
            finish_reason=choice.get("finish_reason") or "unknown",
            model_info=ModelInfo(
                model_name=model_name,
                input_tokens=int(usage.get("prompt_tokens", 0)),
                output_tokens=int(usage.get("completion_tokens", 0)),
                latency_ms=latency_ms,
            ),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ResponseInferenceError(f"Invalid response format: {e}") from e


# =============================================================================
# INFERENCE CLIENT
# =============================================================================


class InferenceClient:
    """Client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        config: InferenceConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            config: Inference configuration.
            http_client: Pre-built client (tests pass one with a mock transport).
            sleep: Coroutine used for 429 backoff.
        """
        self.config = config
        self._http_client = http_client
        self._sleep = sleep

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=headers,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _post(self, payload: dict) -> dict:
        """POST a chat completion, backing off exponentially on 429.

        Raises:
            InferenceError: On connection, timeout, rate-limit or HTTP errors
        """
        for attempt in range(self.config.max_retries + 1):
            try:
                response = await self.http_client.post(CHAT_COMPLETIONS_PATH, json=payload)
            except httpx.ConnectError as e:
                raise ConnectionInferenceError(f"Connection error: {e}") from e
            except httpx.TimeoutException as e:
                raise TimeoutInferenceError(f"Timeout error: {e}") from e

            if response.status_code == 429:
                if attempt == self.config.max_retries:
                    break
                delay = self.config.retry_base_delay * (2 ** attempt)
                logger.warning(f"LLM rate limited (attempt {attempt + 1}), retrying in {delay:.1f}s")
                await self._sleep(delay)
                continue

            if response.is_error:
                raise InferenceError(
                    f"HTTP {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            try:
                return response.json()
            except ValueError as e:
                raise ResponseInferenceError(f"Response is not JSON: {e}") from e

        raise RateLimitInferenceError(
            f"Rate limited after {self.config.max_retries + 1} attempts", status_code=429
        )

    async def complete(
        self,
        prompt: str,
        images: Optional[list[ImageInput]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Single user-turn completion, optionally with images.

        Raises:
            InferenceError: On errors during inference
        """
        content: Any = prompt
        if images:
            content = [image.to_content_part() for image in images]
            content.append({"type": "text", "text": prompt})

        model_name = model or self.config.model_name
        payload = {
            "model": model_name,
            "messages": [{"role": "user", "content": content}],
            "temperature": self.config.temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }

        started = time.monotonic()
        data = await self._post(payload)
        response = parse_completion(data, model_name, int((time.monotonic() - started) * 1000))
        logger.debug(
            f"LLM {model_name}: {response.model_info.input_tokens} in / "
            f"{response.model_info.output_tokens} out in {response.model_info.latency_ms}ms"
        )
        return response


# =============================================================================
# FACTORY FUNCTION
# =============================================================================


def build_inference_client(settings: Settings) -> Optional[InferenceClient]:
    """Create an InferenceClient from settings, or None when no LLM is configured."""
    if not settings.llm_enabled:
        return None

    config = InferenceConfig(
        base_url=settings.inference_url,
        model_name=settings.extraction_model,
        timeout=settings.inference_timeout,
        api_key=settings.inference_api_key,
        max_retries=settings.inference_max_retries,
    )
    return InferenceClient(config=config)


__all__ = [
    "ChatResponse",
    "ConnectionInferenceError",
    "ImageInput",
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "ModelInfo",
    "RateLimitInferenceError",
    "ResponseInferenceError",
    "TimeoutInferenceError",
    "build_inference_client",
    "parse_completion",
]
