# agents/gap_analysis_agent.py

"""Knowledge gap identification for an existing set of Q&A pairs."""

from __future__ import annotations

from typing import Any

import structlog
from config import settings
from core.llm_interface import LLMService, llm_service
from core.sanitizer import GAP_SHAPE
from prompt_renderer import render_prompt, truncate_for_prompt
from pydantic import ValidationError

from models import DomainProfile, GapPriority, KnowledgeGap

logger = structlog.get_logger(__name__)

_PRIORITIES = {p.value for p in GapPriority}


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def parse_gaps(raw_gaps: list[Any], limit: int) -> list[KnowledgeGap]:
    """Keep well-formed gap objects, at most ``limit`` of them."""
    gaps: list[KnowledgeGap] = []
    seen: set[str] = set()
    for raw in raw_gaps:
        if not isinstance(raw, dict):
            continue
        if str(raw.get("priority", "")).lower() not in _PRIORITIES:
            continue
        if not _is_str_list(raw.get("suggestedQuestionTypes", [])):
            continue
        if not _is_str_list(raw.get("relatedConcepts", [])):
            continue
        try:
            gap = KnowledgeGap.model_validate(
                {**raw, "priority": str(raw["priority"]).lower()}
            )
        except ValidationError as exc:
            logger.debug("Discarding malformed gap: %s", exc)
            continue
        if gap.id in seen:
            continue
        seen.add(gap.id)
        gaps.append(gap)
        if len(gaps) >= limit:
            break
    return gaps


class GapAnalysisAgent:
    """Finds topics in the content that the current dataset misses."""

    def __init__(
        self,
        provider: str = "openrouter",
        model_name: str | None = None,
        service: LLMService | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.service = service or llm_service
        logger.info("GapAnalysisAgent initialized.", provider=provider)

    async def identify_gaps(
        self,
        content: str,
        themes: list[str],
        existing_pairs: list[Any],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
        max_gaps: int = settings.MAX_KNOWLEDGE_GAPS,
    ) -> list[KnowledgeGap]:
        prompt = render_prompt(
            "gap_analysis_agent/identify_gaps.j2",
            {
                "content": truncate_for_prompt(content, settings.ANALYSIS_CONTENT_CHARS),
                "themes": themes,
                "existing_pairs": existing_pairs,
                "profile": domain_profile,
                "max_gaps": max_gaps,
            },
        )
        raw_gaps, _ = await self.service.async_call_llm_records(
            self.provider,
            prompt,
            shape=GAP_SHAPE,
            temperature=settings.TEMPERATURE_GAP_ANALYSIS,
            max_tokens=settings.MAX_TOKENS_GAP_ANALYSIS,
            model_name=self.model_name,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            label="gap analysis",
        )
        gaps = parse_gaps(raw_gaps, max_gaps)
        logger.info(
            "Identified %d knowledge gaps from %d candidates.", len(gaps), len(raw_gaps)
        )
        return gaps
