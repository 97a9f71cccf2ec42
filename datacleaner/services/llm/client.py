"""LLM client for OpenRouter-compatible chat completion APIs.

The remote capability is treated as opaque: a request carries a model id,
role-tagged messages, an output-shape declaration and an output budget; the
response's ``choices[0].message.content`` holds the model's text.

No automatic retries: a failed call raises and the caller decides.

Example:
    client = OpenRouterClient(LLMConfig(api_key="sk-..."))
    response = await client.chat(
        [{"role": "system", "content": "..."}, {"role": "user", "content": text}],
        response_format={"type": "json_object"},
    )
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from datacleaner.api.metrics import record_llm_request
from datacleaner.config.settings import Settings, get_settings
from datacleaner.utils.errors import ConfigurationError, ParseError, RemoteError

logger = structlog.get_logger(__name__)

ChatMessage = dict[str, Any]


@dataclass
class LLMConfig:
    """Configuration for LLM client."""
    model: str = "google/gemini-2.0-flash-001"
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: Optional[str] = None
    timeout: float = 120.0
    max_tokens: int = 64000
    app_title: str = "Data Cleaner Tool"
    referer: str = "http://localhost"

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
    ) -> "LLMConfig":
        """Build a config from settings; an explicit key overrides the env key."""
        settings = settings or get_settings()
        return cls(
            model=settings.llm_model,
            base_url=settings.openrouter_base_url,
            api_key=api_key or settings.openrouter_api_key,
            timeout=settings.llm_timeout_seconds,
            max_tokens=settings.llm_max_tokens,
            app_title=settings.app_title,
            referer=settings.app_referer,
        )


@dataclass
class LLMResponse:
    """Response from LLM."""
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)
    raw_body: Optional[str] = None

    @property
    def tokens_used(self) -> int:
        """Total tokens used in this response."""
        return self.usage.get("total_tokens", 0)


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or LLMConfig()
        self._log = logger.bind(component="LLMClient", model=self.config.model)

    def ensure_configured(self) -> None:
        """Fail fast, before any request, if the credential is missing."""
        if not self.config.api_key:
            raise ConfigurationError(
                "请输入 OpenRouter API Key",
                details={"setting": "openrouter_api_key"},
            )

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        response_format: Optional[dict[str, Any]] = None,
        max_tokens: Optional[int] = None,
        operation: str = "chat",
    ) -> LLMResponse:
        """Send one chat completion request.

        Args:
            messages: Role-tagged messages
            response_format: Output-shape declaration (json_schema / json_object)
            max_tokens: Override default max tokens
            operation: Label for logs and metrics (extract, filter, vision)

        Returns:
            LLMResponse with the model's text content

        Raises:
            ConfigurationError: Missing credential
            RemoteError: Network failure or non-2xx status
            ParseError: Success status but no usable content
        """

    async def close(self) -> None:
        """Release transport resources."""


class OpenRouterClient(LLMClient):
    """httpx-based client for the OpenRouter chat completions endpoint."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.config.referer,
            "X-Title": self.config.app_title,
        }

    @staticmethod
    def _error_message(status_code: int, body: str) -> str:
        """Prefer the provider's error.message; fall back to the status."""
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError):
            return f"API Error: {status_code}"
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return f"API Error: {status_code}"

    async def chat(
        self,
        messages: list[ChatMessage],
        response_format: Optional[dict[str, Any]] = None,
        max_tokens: Optional[int] = None,
        operation: str = "chat",
    ) -> LLMResponse:
        """Send one chat completion request to OpenRouter."""
        self.ensure_configured()
        client = await self._get_client()

        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        start = time.perf_counter()
        try:
            response = await client.post(
                "/chat/completions",
                json=payload,
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            duration = time.perf_counter() - start
            record_llm_request(self.config.model, operation, "network_error", duration)
            self._log.error(
                "llm_request_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise RemoteError(
                f"Network error: {type(e).__name__}: {e}",
                status_code=None,
                details={"operation": operation},
            ) from e

        duration = time.perf_counter() - start
        body = response.text

        if not response.is_success:
            record_llm_request(self.config.model, operation, "http_error", duration)
            self._log.warning(
                "llm_request_rejected",
                operation=operation,
                status=response.status_code,
                body_preview=body[:200],
            )
            raise RemoteError(
                self._error_message(response.status_code, body),
                status_code=response.status_code,
                raw_body=body,
                details={"operation": operation},
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            record_llm_request(self.config.model, operation, "bad_body", duration)
            raise ParseError("Response body is not JSON", raw_text=body) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        content = None
        if choices:
            content = (choices[0].get("message") or {}).get("content")
        if not content:
            record_llm_request(self.config.model, operation, "empty", duration)
            raise ParseError("Empty Content", raw_text=body)

        usage = data.get("usage") or {}
        record_llm_request(
            self.config.model,
            operation,
            "success",
            duration,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
        self._log.debug(
            "llm_request_completed",
            operation=operation,
            duration_ms=round(duration * 1000, 1),
            content_length=len(content),
        )

        return LLMResponse(
            content=content,
            model=data.get("model", self.config.model),
            usage={k: int(v) for k, v in usage.items() if isinstance(v, (int, float))},
            raw_body=body,
        )
