# orchestration/gap_orchestrator.py
"""Split a bulk synthetic generation request into per-gap requests."""

from __future__ import annotations

import asyncio
import math
import random
from collections.abc import Awaitable, Callable
from typing import Any, Literal

import structlog
from agents.synthetic_qa_agent import SyntheticQAAgent, plan_for_gap
from config import settings
from core.errors import (
    AllGapsFailed,
    ConfigurationError,
    FineFormatError,
    NoGapsProvided,
)

from models import (
    DomainProfile,
    GapRequestPlan,
    GeneratedRecord,
    GenerationReport,
    GenerationRequest,
    KnowledgeGap,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int, str], Any]


def per_gap_count(target_count: int, gap_count: int, cap: int) -> int:
    """Same count for every gap: ``min(cap, ceil(target / gaps))``."""
    return min(cap, math.ceil(target_count / gap_count))


def _first_str(raw: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def finalize_records(
    raw_records: list[Any],
    gap: KnowledgeGap | None,
    provenance: Literal["synthetic", "direct"] = "synthetic",
) -> list[GeneratedRecord]:
    """Filter provider output and tag it with gap and provenance defaults.

    Records without a gap are drawn directly from the source content.
    """
    records: list[GeneratedRecord] = []
    for raw in raw_records:
        if not isinstance(raw, dict):
            continue
        question = _first_str(raw, "question", "user")
        answer = _first_str(raw, "answer", "model")
        is_correct = raw.get("isCorrect")
        if not question or not answer or not isinstance(is_correct, bool):
            continue
        confidence = raw.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = 0.9 if is_correct else 0.2
        reasoning = _first_str(raw, "reasoning", "generationReasoning") or (
            f"Generated to address {gap.description}"
            if gap is not None
            else "Drawn directly from the source content"
        )
        records.append(
            GeneratedRecord(
                question=question,
                answer=answer,
                is_correct=is_correct,
                confidence=confidence,
                source_gap_id=gap.id if gap is not None else None,
                reasoning=reasoning,
                provenance=provenance,
                validation_status="pending",
            )
        )
    return records


class GapGenerationOrchestrator:
    """Runs gaps one at a time and merges whatever succeeds."""

    def __init__(
        self,
        agent: SyntheticQAAgent | None = None,
        inter_gap_delay: float = settings.INTER_GAP_DELAY_SECONDS,
        max_per_gap: int = settings.MAX_PAIRS_PER_GAP,
        incorrect_ratio: float = settings.INCORRECT_ANSWER_RATIO,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.agent = agent or SyntheticQAAgent()
        self.inter_gap_delay = inter_gap_delay
        self.max_per_gap = max_per_gap
        self.incorrect_ratio = incorrect_ratio
        self._sleep = sleep
        self._rng = rng or random.Random()

    def plan(self, gaps: list[KnowledgeGap], target_count: int) -> list[GapRequestPlan]:
        if not gaps:
            raise NoGapsProvided()
        if target_count <= 0:
            raise ValueError("target_count must be positive")
        count = per_gap_count(target_count, len(gaps), self.max_per_gap)
        return [plan_for_gap(gap, count, self.incorrect_ratio) for gap in gaps]

    async def generate_report(
        self,
        source_text: str,
        gaps: list[KnowledgeGap],
        domain_profile: DomainProfile,
        target_count: int,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationReport:
        plans = self.plan(gaps, target_count)
        total = len(gaps)
        logger.info(
            "Generating synthetic records for %d gaps (%d per gap, target %d).",
            total,
            plans[0].total,
            target_count,
        )

        aggregate: list[GeneratedRecord] = []
        failed: list[str] = []
        for i, (gap, plan) in enumerate(zip(gaps, plans)):
            try:
                raw = await self.agent.generate_for_gap(
                    source_text, gap, plan, domain_profile
                )
                records = finalize_records(raw, gap)
            except ConfigurationError:
                raise
            except FineFormatError as exc:
                logger.warning("Gap %s failed: %s", gap.id, exc)
                records = []
            if records:
                aggregate.extend(records)
                logger.info(
                    "Gap %s produced %d/%d records.", gap.id, len(records), plan.total
                )
            else:
                failed.append(gap.id)

            if on_progress is not None:
                on_progress(i + 1, total, gap.id)
            if i < total - 1 and self.inter_gap_delay > 0:
                await self._sleep(self.inter_gap_delay)

        if not aggregate:
            raise AllGapsFailed(failed)
        if failed:
            logger.warning(
                "%d of %d gaps failed: %s", len(failed), total, ", ".join(failed)
            )

        shuffled = list(aggregate)
        self._rng.shuffle(shuffled)
        return GenerationReport(
            records=shuffled,
            failed_gap_ids=failed,
            plans=plans,
            per_gap_count=plans[0].total,
        )

    async def generate(
        self,
        source_text: str,
        gaps: list[KnowledgeGap],
        domain_profile: DomainProfile,
        target_count: int,
        on_progress: ProgressCallback | None = None,
    ) -> list[GeneratedRecord]:
        report = await self.generate_report(
            source_text, gaps, domain_profile, target_count, on_progress
        )
        return report.records

    async def generate_from_request(
        self,
        request: GenerationRequest,
        gaps: list[KnowledgeGap],
        on_progress: ProgressCallback | None = None,
    ) -> GenerationReport:
        return await self.generate_report(
            request.source_text,
            gaps,
            request.domain_profile,
            request.target_record_count,
            on_progress,
        )
