# orchestration/dataset_pipeline.py
"""End-to-end dataset build from cleaned sources to a JSONL file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from agents.content_cleaning_agent import ContentCleaningAgent
from agents.direct_qa_agent import DirectQAAgent
from agents.gap_analysis_agent import GapAnalysisAgent
from agents.validation_agent import ValidationAgent
from config import settings
from core.errors import ConfigurationError, FineFormatError

from models import (
    AugmentedContent,
    DomainProfile,
    GeneratedRecord,
    GenerationReport,
    KnowledgeGap,
    ValidationResult,
)
from orchestration.gap_orchestrator import (
    GapGenerationOrchestrator,
    ProgressCallback,
    finalize_records,
)
from ui.progress import RichProgressReporter

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    records: list[GeneratedRecord]
    themes: list[str] = field(default_factory=list)
    gaps: list[KnowledgeGap] = field(default_factory=list)
    failed_gap_ids: list[str] = field(default_factory=list)
    validations: list[ValidationResult] = field(default_factory=list)
    augmented: bool = False
    grounding_metadata: dict[str, Any] | None = None


def load_gaps(path: str | Path) -> list[KnowledgeGap]:
    """Read gaps from a JSON file holding a list (or ``{"gaps": [...]}``)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("gaps", [])
    return [KnowledgeGap.model_validate(item) for item in data]


def write_jsonl(records: list[GeneratedRecord], path: str | Path) -> Path:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record.to_dataset_row(), ensure_ascii=False) + "\n")
    logger.info("Wrote %d records to %s", len(records), output)
    return output


class DatasetPipeline:
    """Chains the agents around the gap orchestrator."""

    def __init__(
        self,
        cleaner: ContentCleaningAgent | None = None,
        analyst: GapAnalysisAgent | None = None,
        orchestrator: GapGenerationOrchestrator | None = None,
        validator: ValidationAgent | None = None,
        direct_agent: DirectQAAgent | None = None,
    ) -> None:
        self.cleaner = cleaner or ContentCleaningAgent()
        self.analyst = analyst or GapAnalysisAgent()
        self.orchestrator = orchestrator or GapGenerationOrchestrator()
        self.validator = validator or ValidationAgent()
        self.direct_agent = direct_agent or DirectQAAgent()

    async def clean_sources(self, sources: dict[str, str]) -> list[str]:
        cleaned: list[str] = []
        for name, text in sources.items():
            result = await self.cleaner.clean_text(text, name)
            if len(result.text.strip()) > settings.PREPROCESS_MIN_TEXT_CHARS:
                cleaned.append(result.text.strip())
            else:
                logger.warning("Cleaned text for %s was too short; using raw text.", name)
                cleaned.append(text)
        return cleaned

    async def augment(
        self, content: str, themes: list[str], domain_profile: DomainProfile
    ) -> AugmentedContent | None:
        """Web augmentation is best effort; on failure the original text is kept."""
        try:
            augmented = await self.cleaner.augment_with_web_search(
                content, themes, domain_profile
            )
        except ConfigurationError:
            raise
        except FineFormatError as exc:
            logger.warning("Web augmentation failed, using original content: %s", exc)
            return None
        if len(augmented.text) <= settings.PREPROCESS_MIN_TEXT_CHARS:
            logger.warning("Augmented text was too short; using original content.")
            return None
        return augmented

    async def generate_direct(
        self,
        content: str,
        themes: list[str],
        domain_profile: DomainProfile,
        count: int,
    ) -> list[GeneratedRecord]:
        if count <= 0:
            return []
        try:
            raw = await self.direct_agent.generate_pairs(
                content, themes, domain_profile, count
            )
        except ConfigurationError:
            raise
        except FineFormatError as exc:
            logger.warning("Direct Q&A generation failed: %s", exc)
            return []
        records = finalize_records(raw, None, provenance="direct")
        logger.info("Direct generation kept %d/%d records.", len(records), count)
        return records

    async def run(
        self,
        sources: dict[str, str],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
        target_count: int = settings.SYNTHETIC_QA_TARGET,
        gaps: list[KnowledgeGap] | None = None,
        clean: bool = True,
        validate: bool = False,
        augment: bool = False,
        direct_count: int = settings.QA_PAIR_COUNT_TARGET,
        on_progress: RichProgressReporter | None = None,
    ) -> PipelineResult:
        texts = await self.clean_sources(sources) if clean else list(sources.values())
        combined = "\n\n".join(texts)

        themes: list[str] = []
        if gaps is None or augment:
            themes = await self.cleaner.identify_themes(texts, domain_profile)

        grounding_metadata: dict[str, Any] | None = None
        augmented = False
        if augment:
            augmented_content = await self.augment(combined, themes, domain_profile)
            if augmented_content is not None:
                combined = augmented_content.text
                grounding_metadata = augmented_content.grounding_metadata
                augmented = True

        direct_records = await self.generate_direct(
            combined, themes, domain_profile, direct_count
        )
        if gaps is None:
            gaps = await self.analyst.identify_gaps(
                combined, themes, direct_records, domain_profile
            )

        progress: ProgressCallback | None = (
            on_progress.phase("generation") if on_progress is not None else None
        )
        report: GenerationReport = await self.orchestrator.generate_report(
            combined, gaps, domain_profile, target_count, progress
        )
        result = PipelineResult(
            records=direct_records + report.records,
            themes=themes,
            gaps=gaps,
            failed_gap_ids=report.failed_gap_ids,
            augmented=augmented,
            grounding_metadata=grounding_metadata,
        )

        if validate:
            context = await self.validator.generate_context(
                combined, themes, direct_records, gaps, report.records, domain_profile
            )
            validated = await self.validator.validate_records(
                result.records,
                context,
                domain_profile,
                on_progress.phase("validation") if on_progress is not None else None,
            )
            result.records = [record for record, _ in validated]
            result.validations = [outcome for _, outcome in validated]
        return result
