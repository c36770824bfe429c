# agents/synthetic_qa_agent.py

"""Synthetic Q&A generation for a single knowledge gap."""

from __future__ import annotations

import math
from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMService, llm_service
from core.sanitizer import QA_RECORD_SHAPE
from prompt_renderer import render_prompt, truncate_for_prompt

from models import DomainProfile, GapRequestPlan, KnowledgeGap

logger = structlog.get_logger(__name__)

TRUNCATION_NOTE = "[Content truncated for generation focus]"


def split_counts(per_gap_count: int, incorrect_ratio: float) -> tuple[int, int]:
    """Return ``(correct, incorrect)`` for one gap.

    At least one deliberately incorrect record is always requested.
    """
    incorrect = max(1, math.ceil(per_gap_count * incorrect_ratio))
    incorrect = min(incorrect, per_gap_count)
    return per_gap_count - incorrect, incorrect


def plan_for_gap(
    gap: KnowledgeGap, per_gap_count: int, incorrect_ratio: float
) -> GapRequestPlan:
    correct, incorrect = split_counts(per_gap_count, incorrect_ratio)
    return GapRequestPlan(
        gap_id=gap.id, total=per_gap_count, correct=correct, incorrect=incorrect
    )


class SyntheticQAAgent:
    """Asks a provider for Q&A pairs that cover one gap."""

    def __init__(
        self,
        provider: str = "openrouter",
        model_name: str | None = None,
        service: LLMService | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.service = service or llm_service
        logger.info(
            "SyntheticQAAgent initialized.",
            provider=self.provider,
            model=self.model_name or "default chain",
        )

    def build_prompt(
        self,
        source_text: str,
        gap: KnowledgeGap,
        plan: GapRequestPlan,
        domain_profile: DomainProfile,
    ) -> str:
        reference = truncate_for_prompt(
            source_text, settings.GENERATION_CONTENT_CHARS, TRUNCATION_NOTE
        )
        return render_prompt(
            "synthetic_qa_agent/generate_for_gap.j2",
            {
                "gap": gap,
                "plan": plan,
                "profile": domain_profile,
                "reference_content": reference,
            },
        )

    async def generate_for_gap(
        self,
        source_text: str,
        gap: KnowledgeGap,
        plan: GapRequestPlan,
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
    ) -> list[dict[str, Any]]:
        """Return raw record dicts recovered from the provider reply.

        Failover exhaustion and parse failures propagate to the caller.
        """
        prompt = self.build_prompt(source_text, gap, plan, domain_profile)
        records, result = await self.service.async_call_llm_records(
            self.provider,
            prompt,
            shape=QA_RECORD_SHAPE,
            system_prompt=render_prompt("synthetic_qa_agent/system.j2", {}),
            temperature=settings.TEMPERATURE_GENERATION,
            max_tokens=settings.MAX_TOKENS_GENERATION,
            model_name=self.model_name,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            label=f"gap {gap.id}",
        )
        logger.debug(
            "Gap %s returned %d raw records (key %d, attempt %d).",
            gap.id,
            len(records),
            result.key_used,
            result.attempts,
        )
        return records
