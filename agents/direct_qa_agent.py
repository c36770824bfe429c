# agents/direct_qa_agent.py

"""Q&A pairs drawn straight from the cleaned source content."""

from __future__ import annotations

from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMService, llm_service
from core.sanitizer import QA_RECORD_SHAPE
from prompt_renderer import render_prompt, truncate_for_prompt

from models import DomainProfile

logger = structlog.get_logger(__name__)

TRUNCATION_NOTE = "[Content truncated for direct generation]"


class DirectQAAgent:
    """Builds the initial dataset that gap analysis later measures."""

    def __init__(
        self,
        provider: str = "gemini",
        model_name: str | None = None,
        service: LLMService | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.service = service or llm_service
        logger.info("DirectQAAgent initialized.", provider=provider)

    async def generate_pairs(
        self,
        content: str,
        themes: list[str],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
        count: int = settings.QA_PAIR_COUNT_TARGET,
    ) -> list[dict[str, Any]]:
        """Return at most ``count`` raw record dicts.

        Failover exhaustion and parse failures propagate to the caller.
        """
        if count <= 0:
            return []
        prompt = render_prompt(
            "direct_qa_agent/generate_pairs.j2",
            {
                "content": truncate_for_prompt(
                    content, settings.DIRECT_QA_CONTENT_CHARS, TRUNCATION_NOTE
                ),
                "themes": themes,
                "profile": domain_profile,
                "count": count,
            },
        )
        records, result = await self.service.async_call_llm_records(
            self.provider,
            prompt,
            shape=QA_RECORD_SHAPE,
            system_prompt=render_prompt("direct_qa_agent/system.j2", {}),
            temperature=settings.TEMPERATURE_DIRECT_QA,
            max_tokens=settings.MAX_TOKENS_DIRECT_QA,
            model_name=self.model_name,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            label="direct Q&A generation",
        )
        logger.info(
            "Direct generation returned %d records (key %d).",
            len(records),
            result.key_used,
        )
        return records[:count]
