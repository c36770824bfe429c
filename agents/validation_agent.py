# agents/validation_agent.py

"""LLM-backed validation of generated Q&A records."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from config import settings
from core.errors import ConfigurationError, FineFormatError
from core.llm_interface import LLMService, llm_service
from prompt_renderer import render_prompt, truncate_for_prompt
from pydantic import ValidationError

from models import DomainProfile, GeneratedRecord, KnowledgeGap, ValidationResult

logger = structlog.get_logger(__name__)

_REQUIRED_FIELDS = (
    "isValid",
    "confidence",
    "reasoning",
    "factualAccuracy",
    "relevanceScore",
)


class ValidationAgent:
    """Builds a validation brief and checks records against it."""

    def __init__(
        self,
        provider: str = "openrouter",
        model_name: str | None = None,
        service: LLMService | None = None,
    ) -> None:
        self.provider = provider
        self.model_name = model_name
        self.service = service or llm_service
        logger.info("ValidationAgent initialized with provider: %s", self.provider)

    async def generate_context(
        self,
        content: str,
        themes: list[str],
        initial_pairs: list[Any],
        gaps: list[KnowledgeGap],
        synthetic_pairs: list[GeneratedRecord],
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
    ) -> str:
        """Return a plain-text brief describing what a correct answer must match."""
        prompt = render_prompt(
            "validation_agent/validation_context.j2",
            {
                "content": truncate_for_prompt(
                    content, settings.VALIDATION_CONTENT_CHARS
                ),
                "themes": themes,
                "initial_count": len(initial_pairs),
                "synthetic_count": len(synthetic_pairs),
                "gaps": gaps,
                "profile": domain_profile,
            },
        )
        result = await self.service.async_call_llm(
            self.provider,
            prompt,
            system_prompt=render_prompt("validation_agent/system_context.j2", {}),
            temperature=settings.TEMPERATURE_VALIDATION_CONTEXT,
            max_tokens=settings.MAX_TOKENS_VALIDATION_CONTEXT,
            model_name=self.model_name,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            label="validation context",
        )
        return result.text.strip()

    async def validate_record(
        self,
        record: GeneratedRecord,
        context: str,
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
    ) -> ValidationResult:
        """Validate one record; any failure yields an invalid low-confidence result."""
        prompt = render_prompt(
            "validation_agent/validate_pair.j2",
            {"record": record, "context": context, "profile": domain_profile},
        )
        try:
            data, _ = await self.service.async_call_llm_object(
                self.provider,
                prompt,
                system_prompt=render_prompt("validation_agent/system_validate.j2", {}),
                temperature=settings.TEMPERATURE_VALIDATION,
                max_tokens=settings.MAX_TOKENS_VALIDATION,
                model_name=self.model_name,
                timeout=settings.GENERATION_TIMEOUT_SECONDS,
                label="record validation",
            )
            missing = [name for name in _REQUIRED_FIELDS if name not in data]
            if missing:
                raise ValueError(f"missing fields: {', '.join(missing)}")
            if not isinstance(data["isValid"], bool):
                raise ValueError("isValid is not a boolean")
            return ValidationResult.model_validate(data)
        except ConfigurationError:
            raise
        except (FineFormatError, ValidationError, ValueError, TypeError) as exc:
            logger.warning("Validation of a record failed: %s", exc)
            return ValidationResult.failed(exc)

    async def validate_records(
        self,
        records: list[GeneratedRecord],
        context: str,
        domain_profile: DomainProfile = DomainProfile.KNOWLEDGE,
        on_progress: Callable[[int, int, str], Any] | None = None,
    ) -> list[tuple[GeneratedRecord, ValidationResult]]:
        """Validate sequentially and return records with updated status."""
        results: list[tuple[GeneratedRecord, ValidationResult]] = []
        total = len(records)
        for i, record in enumerate(records):
            outcome = await self.validate_record(record, context, domain_profile)
            updated = record.model_copy(
                update={"validation_status": "valid" if outcome.is_valid else "invalid"}
            )
            results.append((updated, outcome))
            if on_progress is not None:
                on_progress(i + 1, total, record.source_gap_id or "record")
        valid = sum(1 for _, outcome in results if outcome.is_valid)
        logger.info("Validated %d records: %d valid.", total, valid)
        return results
