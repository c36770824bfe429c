# agents/content_cleaning_agent.py

"""Source cleaning and theme identification."""

from __future__ import annotations

from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMCallResult, LLMService, llm_service
from prompt_renderer import render_prompt, truncate_for_prompt

from models import AugmentedContent, DomainProfile

logger = structlog.get_logger(__name__)


class ContentCleaningAgent:
    """Turns raw uploads into clean training text via Gemini."""

    def __init__(
        self,
        provider: str = "gemini",
        model_name: str | None = None,
        service: LLMService | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.service = service or llm_service

    async def clean_text(self, raw_text: str, source_name: str) -> LLMCallResult:
        """Return the model's cleaned text unmodified."""
        prompt = render_prompt(
            "content_cleaning_agent/clean_text.j2",
            {"raw_text": raw_text, "source_name": source_name},
        )
        return await self.service.async_call_llm(
            self.provider,
            prompt,
            temperature=settings.TEMPERATURE_CLEANING,
            max_tokens=settings.MAX_TOKENS_CLEANING,
            model_name=self.model_name,
            label=f"clean {source_name}",
        )

    async def clean_binary(
        self, base64_data: str, mime_type: str, source_name: str
    ) -> LLMCallResult:
        """Send a base64 document as inline data and return the extracted text."""
        instruction = render_prompt(
            "content_cleaning_agent/clean_binary.j2",
            {"source_name": source_name, "mime_type": mime_type},
        )
        messages: list[dict[str, Any]] = [
            {
                "role": "user",
                "parts": [
                    {"inlineData": {"mimeType": mime_type, "data": base64_data}},
                    {"text": instruction},
                ],
            }
        ]
        return await self.service.async_call_llm(
            self.provider,
            messages,
            temperature=settings.TEMPERATURE_CLEANING,
            max_tokens=settings.MAX_TOKENS_CLEANING,
            model_name=self.model_name,
            label=f"extract {source_name}",
        )

    async def identify_themes(
        self,
        contents: list[str],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
    ) -> list[str]:
        excerpts = [
            truncate_for_prompt(text, settings.THEME_CONTENT_CHARS) for text in contents
        ]
        prompt = render_prompt(
            "content_cleaning_agent/identify_themes.j2",
            {"excerpts": excerpts, "profile": domain_profile},
        )
        raw_themes, _ = await self.service.async_call_llm_list(
            self.provider,
            prompt,
            temperature=settings.TEMPERATURE_THEMES,
            max_tokens=settings.MAX_TOKENS_THEMES,
            model_name=self.model_name,
            label="theme identification",
        )
        themes = [t.strip() for t in raw_themes if isinstance(t, str) and t.strip()]
        logger.info("Identified %d themes.", len(themes))
        return themes

    async def augment_with_web_search(
        self,
        content: str,
        themes: list[str],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
    ) -> AugmentedContent:
        """Let Gemini ground the content with Google Search results.

        JSON output is not requested here; the search tool and a JSON
        response type do not combine.
        """
        prompt = render_prompt(
            "content_cleaning_agent/augment_with_web_search.j2",
            {
                "content": truncate_for_prompt(
                    content, settings.AUGMENTATION_CONTENT_CHARS
                ),
                "themes": themes,
                "profile": domain_profile,
            },
        )
        result = await self.service.async_call_llm(
            self.provider,
            prompt,
            temperature=settings.TEMPERATURE_AUGMENTATION,
            max_tokens=settings.MAX_TOKENS_AUGMENTATION,
            model_name=self.model_name,
            tools=[{"googleSearch": {}}],
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            label="web augmentation",
        )
        grounding = None
        if result.candidates:
            grounding = result.candidates[0].get("groundingMetadata")
        logger.info(
            "Augmented content with web search.",
            chars_before=len(content),
            chars_after=len(result.text),
            grounded=grounding is not None,
        )
        return AugmentedContent(text=result.text.strip(), grounding_metadata=grounding)
