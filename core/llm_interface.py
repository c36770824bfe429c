# core/llm_interface.py
"""
Handles all direct interactions with the hosted LLM providers.
Combines the provider clients, the key-failover executor and the
response sanitizer behind one asynchronous service object.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from config import settings

from core.credentials import CredentialSet
from core.errors import InvalidRequest
from core.failover import FailoverExecutor, FallbackTarget
from core.providers import (
    GeminiClient,
    Message,
    OpenRouterClient,
    ProviderClient,
    ProviderReply,
)
from core.rate_limit import InMemoryRateLimitStore, RateLimitStore
from core.sanitizer import (
    QA_RECORD_SHAPE,
    RecordShape,
    ResponseSanitizer,
    extract_json_array,
    extract_json_object,
)
from core.usage import TokenUsage

logger = structlog.get_logger(__name__)


@dataclass
class LLMCallResult:
    text: str
    model: str
    key_used: int
    attempts: int
    finish_reason: str | None = None
    truncated: bool = False
    usage: TokenUsage = field(default_factory=TokenUsage)
    candidates: list[dict[str, Any]] | None = None


def as_messages(prompt: str | list[Message], system_prompt: str | None = None) -> list[Message]:
    """Accept a bare prompt string or a ready message list."""
    if isinstance(prompt, str):
        messages: list[Message] = [{"role": "user", "content": prompt}]
    else:
        messages = list(prompt)
    if system_prompt:
        messages.insert(0, {"role": "system", "content": system_prompt})
    return messages


class LLMService:
    """Utility class for interacting with the configured LLM providers."""

    def __init__(
        self,
        timeout: float = settings.HTTPX_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
        executor: FailoverExecutor | None = None,
        rate_limit_store: RateLimitStore | None = None,
    ) -> None:
        # Use a single async client for all requests to reuse connections
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_LLM_CALLS)
        self.rate_limit_store = rate_limit_store or InMemoryRateLimitStore()
        self.executor = executor or FailoverExecutor(
            rate_limit_store=self.rate_limit_store
        )
        self.providers: dict[str, ProviderClient] = {
            "gemini": GeminiClient(self._client),
            "openrouter": OpenRouterClient(self._client),
        }
        self.sanitizer = ResponseSanitizer()
        self.usage = TokenUsage()
        self.request_count = 0
        logger.info(
            "LLMService initialized with a concurrency limit of %d.",
            settings.MAX_CONCURRENT_LLM_CALLS,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def get_provider(self, name: str) -> ProviderClient:
        try:
            return self.providers[name]
        except KeyError as exc:
            raise InvalidRequest(f"Unknown provider: {name}") from exc

    def fallback_targets(
        self,
        provider: str,
        model_name: str | None = None,
        credentials: CredentialSet | None = None,
        config: dict[str, Any] | None = None,
    ) -> list[FallbackTarget]:
        """Credential-major targets for each model in the fallback chain."""
        creds = (credentials or CredentialSet.from_settings(provider)).require()
        models = [model_name] if model_name else settings.provider_models(provider)
        return [
            FallbackTarget(credential=cred, model=model, config=config)
            for model in models
            for cred in creds
        ]

    def _log_llm_usage(self, provider: str, model_name: str, usage: TokenUsage) -> None:
        """Helper to log LLM token usage if available in the response."""
        usage_data = usage.get_if_used()
        if usage_data:
            logger.info(
                "LLM ('%s/%s') Usage - Prompt: %s tk, Comp: %s tk, Total: %s tk",
                provider,
                model_name,
                usage_data["prompt_tokens"],
                usage_data["completion_tokens"],
                usage_data["total_tokens"],
            )
        else:
            logger.debug("LLM ('%s/%s') response missing usage.", provider, model_name)

    async def async_call_llm(
        self,
        provider: str,
        prompt: str | list[Message],
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model_name: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        config: dict[str, Any] | None = None,
        timeout: float | None = None,
        credentials: CredentialSet | None = None,
        label: str | None = None,
    ) -> LLMCallResult:
        """Call ``provider`` with key and model failover; return raw text."""
        client = self.get_provider(provider)
        messages = as_messages(prompt, system_prompt)
        if not messages:
            raise InvalidRequest("Messages array is required")
        targets = self.fallback_targets(provider, model_name, credentials, config)

        async def _attempt(target: FallbackTarget) -> ProviderReply:
            self.request_count += 1
            return await client.request(
                messages,
                credential=target.credential,
                model_id=target.model,
                temperature=(
                    settings.DEFAULT_TEMPERATURE if temperature is None else temperature
                ),
                max_tokens=max_tokens or settings.DEFAULT_MAX_TOKENS,
                tools=tools,
                config=target.config,
                timeout=timeout,
            )

        async with self._semaphore:
            result = await self.executor.run(
                targets, _attempt, label=label or f"{provider} call"
            )
        reply = result.value
        self._log_llm_usage(provider, result.target.model, reply.usage)
        self.usage.add(reply.usage)
        if reply.truncated:
            logger.warning(
                "Response from %s was truncated (finish reason %s).",
                result.target.label,
                reply.finish_reason,
            )
        return LLMCallResult(
            text=reply.content,
            model=result.target.model,
            key_used=result.key_used,
            attempts=result.attempt,
            finish_reason=reply.finish_reason,
            truncated=reply.truncated,
            usage=reply.usage,
            candidates=reply.candidates,
        )

    async def async_call_llm_records(
        self,
        provider: str,
        prompt: str | list[Message],
        shape: RecordShape = QA_RECORD_SHAPE,
        **kwargs: Any,
    ) -> tuple[list[Any], LLMCallResult]:
        """Call the provider and recover a list of JSON records from the reply."""
        result = await self.async_call_llm(provider, prompt, **kwargs)
        return self.sanitizer.sanitize(result.text, shape), result

    async def async_call_llm_object(
        self, provider: str, prompt: str | list[Message], **kwargs: Any
    ) -> tuple[dict[str, Any], LLMCallResult]:
        result = await self.async_call_llm(provider, prompt, **kwargs)
        return extract_json_object(result.text), result

    async def async_call_llm_list(
        self, provider: str, prompt: str | list[Message], **kwargs: Any
    ) -> tuple[list[Any], LLMCallResult]:
        result = await self.async_call_llm(provider, prompt, **kwargs)
        return extract_json_array(result.text), result


llm_service = LLMService()
