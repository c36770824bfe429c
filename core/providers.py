# core/providers.py
"""Wire formats for the Gemini and OpenRouter chat endpoints.

Each client turns a list of chat messages into one provider request,
races it against a timeout and hands back the raw reply text. Content is
never repaired here; callers that expect JSON run the text through
``core.sanitizer``.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from config import settings

from core.credentials import Credential
from core.errors import (
    HttpStatusError,
    MalformedResponse,
    PayloadTooLarge,
    ProviderTimeout,
    SafetyFilterError,
    TransportError,
)
from core.usage import TokenUsage

logger = structlog.get_logger(__name__)

Message = dict[str, Any]


@dataclass
class ProviderReply:
    content: str
    finish_reason: str | None = None
    truncated: bool = False
    usage: TokenUsage = field(default_factory=TokenUsage)
    candidates: list[dict[str, Any]] | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def estimate_binary_bytes(messages: list[Message]) -> int:
    """Approximate decoded size of every inline base64 part."""
    total = 0
    for message in messages:
        for part in message.get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and isinstance(inline.get("data"), str):
                total += int(len(inline["data"]) * 0.75)
    return total


def message_text(message: Message) -> str:
    content = message.get("content")
    if isinstance(content, str):
        return content
    texts = [p.get("text", "") for p in message.get("parts") or [] if "text" in p]
    return "\n".join(texts)


def _error_details(body: Any) -> tuple[str | None, str | None]:
    """Pull (code, message) out of a provider error body."""
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("status") or error.get("code")
        return (str(code) if code is not None else None), error.get("message")
    if isinstance(error, str):
        return None, error
    return None, None


class ProviderClient(ABC):
    """Shared request execution for all providers."""

    name: str = "provider"
    default_timeout: float = 30.0

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_seconds: float | None = None,
    ) -> None:
        self._client = http_client
        self.timeout_seconds = timeout_seconds or self.default_timeout

    @abstractmethod
    def build_payload(
        self,
        messages: list[Message],
        temperature: float,
        max_tokens: int,
        model_id: str,
        tools: list[dict[str, Any]] | None = None,
        config: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    def endpoint(self, model_id: str) -> str: ...

    @abstractmethod
    def headers(self, credential: Credential) -> dict[str, str]: ...

    @abstractmethod
    def parse_reply(self, data: dict[str, Any]) -> ProviderReply: ...

    def check_payload(self, messages: list[Message]) -> None:
        """Reject payloads the provider would refuse. No-op by default."""

    def timeout_for(self, messages: list[Message]) -> float:
        return self.timeout_seconds

    async def request(
        self,
        messages: list[Message],
        *,
        credential: Credential,
        model_id: str,
        temperature: float = settings.DEFAULT_TEMPERATURE,
        max_tokens: int = settings.DEFAULT_MAX_TOKENS,
        tools: list[dict[str, Any]] | None = None,
        config: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ProviderReply:
        """Send one request with one credential and normalize the reply."""
        self.check_payload(messages)
        payload = self.build_payload(
            messages, temperature, max_tokens, model_id, tools=tools, config=config
        )
        effective_timeout = timeout or self.timeout_for(messages)
        logger.debug(
            "Sending %s request.",
            self.name,
            model=model_id,
            credential=credential.label,
            timeout=effective_timeout,
        )
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self.endpoint(model_id),
                    json=payload,
                    headers=self.headers(credential),
                ),
                timeout=effective_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ProviderTimeout(self.name, effective_timeout) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"{self.name} request failed: {exc}") from exc

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError):
            data = None

        if response.status_code >= 400:
            code, message = _error_details(data)
            raise HttpStatusError(
                response.status_code,
                message or f"{self.name} API error: {response.status_code}",
                body=response.text,
                provider_code=code,
            )
        if not isinstance(data, dict):
            raise MalformedResponse(
                f"{self.name} returned a non-JSON body",
                details=response.text[:200],
            )
        code, message = _error_details(data)
        if message:
            # OpenRouter forwards upstream failures inside a 200 response.
            status = int(code) if code and code.isdigit() else 502
            raise HttpStatusError(status, message, body=response.text, provider_code=code)
        return self.parse_reply(data)


class GeminiClient(ProviderClient):
    name = "gemini"
    default_timeout = settings.GEMINI_TIMEOUT_SECONDS

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_seconds: float | None = None,
        binary_timeout_seconds: float = settings.GEMINI_BINARY_TIMEOUT_SECONDS,
        max_binary_bytes: int = settings.GEMINI_MAX_BINARY_BYTES,
        api_base: str = settings.GEMINI_API_BASE,
    ) -> None:
        super().__init__(http_client, timeout_seconds)
        self.binary_timeout_seconds = binary_timeout_seconds
        self.max_binary_bytes = max_binary_bytes
        self.api_base = api_base.rstrip("/")

    def check_payload(self, messages: list[Message]) -> None:
        size = estimate_binary_bytes(messages)
        if size > self.max_binary_bytes:
            raise PayloadTooLarge(size, self.max_binary_bytes)

    def timeout_for(self, messages: list[Message]) -> float:
        if estimate_binary_bytes(messages):
            return self.binary_timeout_seconds
        return self.timeout_seconds

    def endpoint(self, model_id: str) -> str:
        return f"{self.api_base}/models/{model_id}:generateContent"

    def headers(self, credential: Credential) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": credential.value}

    def build_payload(
        self,
        messages: list[Message],
        temperature: float,
        max_tokens: int,
        model_id: str,
        tools: list[dict[str, Any]] | None = None,
        config: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        contents: list[dict[str, Any]] = []
        system_parts: list[dict[str, Any]] = []
        for message in messages:
            role = message.get("role", "user")
            parts = message.get("parts") or [{"text": message_text(message)}]
            if role == "system":
                system_parts.extend(parts)
                continue
            contents.append(
                {"role": "model" if role in ("assistant", "model") else "user", "parts": parts}
            )
        generation_config: dict[str, Any] = {
            "maxOutputTokens": min(max_tokens, settings.GEMINI_MAX_OUTPUT_TOKENS),
            "temperature": temperature,
            "topP": settings.LLM_TOP_P,
            "topK": settings.GEMINI_TOP_K,
        }
        if config:
            generation_config.update(config)
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        if tools:
            payload["tools"] = tools
        return payload

    def parse_reply(self, data: dict[str, Any]) -> ProviderReply:
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise SafetyFilterError(
                    "Content blocked by safety filters", details=str(block_reason)
                )
            raise MalformedResponse("Gemini response contained no candidates")
        first = candidates[0]
        finish_reason = first.get("finishReason")
        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text:
            if finish_reason == "SAFETY":
                raise SafetyFilterError("Content blocked by safety filters")
            raise MalformedResponse(
                "Gemini response had no text content", details=str(finish_reason)
            )
        return ProviderReply(
            content=text,
            finish_reason=finish_reason,
            truncated=finish_reason == "MAX_TOKENS",
            usage=TokenUsage.from_provider(data.get("usageMetadata")),
            candidates=candidates,
            raw=data,
        )


class OpenRouterClient(ProviderClient):
    name = "openrouter"
    default_timeout = settings.OPENROUTER_TIMEOUT_SECONDS

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout_seconds: float | None = None,
        api_base: str = settings.OPENROUTER_API_BASE,
        referer: str = settings.OPENROUTER_REFERER,
        app_title: str = settings.OPENROUTER_APP_TITLE,
    ) -> None:
        super().__init__(http_client, timeout_seconds)
        self.api_base = api_base.rstrip("/")
        self.referer = referer
        self.app_title = app_title

    def endpoint(self, model_id: str) -> str:
        return f"{self.api_base}/chat/completions"

    def headers(self, credential: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.value}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_title,
        }

    def build_payload(
        self,
        messages: list[Message],
        temperature: float,
        max_tokens: int,
        model_id: str,
        tools: list[dict[str, Any]] | None = None,
        config: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model_id,
            "messages": [
                {"role": m.get("role", "user"), "content": message_text(m)}
                for m in messages
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": settings.LLM_TOP_P,
            "frequency_penalty": settings.OPENROUTER_FREQUENCY_PENALTY,
            "presence_penalty": settings.OPENROUTER_PRESENCE_PENALTY,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
        if config:
            payload.update(config)
        return payload

    def parse_reply(self, data: dict[str, Any]) -> ProviderReply:
        choices = data.get("choices") or []
        if not choices:
            raise MalformedResponse("OpenRouter response contained no choices")
        choice = choices[0]
        content = (choice.get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse(
                "OpenRouter response had no message content",
                details=str(choice.get("finish_reason")),
            )
        finish_reason = choice.get("finish_reason")
        return ProviderReply(
            content=content,
            finish_reason=finish_reason,
            truncated=finish_reason == "length",
            usage=TokenUsage.from_provider(data.get("usage")),
            raw=data,
        )
