# models/dataset_models.py
"""Pydantic models for gaps, generated records and generation runs."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DatasetBaseModel(BaseModel):
    """Base model with camelCase aliases and mapping style access."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    def __getitem__(self, item: str) -> Any:  # pragma: no cover - convenience
        return getattr(self, item)

    def get(self, key: str, default: Any = None) -> Any:  # pragma: no cover
        return getattr(self, key, default)


class DomainProfile(str, Enum):
    """Fine-tuning goal that steers every prompt."""

    TOPIC = "topic"
    KNOWLEDGE = "knowledge"
    STYLE = "style"

    @property
    def display_name(self) -> str:
        return _PROFILE_DETAILS[self]["name"]

    @property
    def prompt_focus(self) -> str:
        return _PROFILE_DETAILS[self]["focus"]


_PROFILE_DETAILS: dict[DomainProfile, dict[str, str]] = {
    DomainProfile.TOPIC: {
        "name": "Topic/Theme Focus",
        "focus": "topic and theme understanding",
    },
    DomainProfile.KNOWLEDGE: {
        "name": "Knowledge Base",
        "focus": "factual knowledge and information retrieval",
    },
    DomainProfile.STYLE: {
        "name": "Writing/Communication Style",
        "focus": "writing style, tone, and communication patterns",
    },
}


class GapPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class KnowledgeGap(DatasetBaseModel):
    """A topic that needs more synthetic coverage."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    description: str
    theme: str = ""
    priority: GapPriority = GapPriority.MEDIUM
    suggested_question_types: list[str] = Field(
        default_factory=list, alias="suggestedQuestionTypes"
    )
    related_concepts: list[str] = Field(default_factory=list, alias="relatedConcepts")


class GeneratedRecord(DatasetBaseModel):
    """One question/answer pair destined for the dataset."""

    question: str
    answer: str
    is_correct: bool = Field(alias="isCorrect")
    confidence: float = 0.9
    source_gap_id: str | None = Field(default=None, alias="sourceGapId")
    reasoning: str = ""
    provenance: Literal["synthetic", "direct"] = "synthetic"
    validation_status: Literal["pending", "valid", "invalid"] = Field(
        default="pending", alias="validationStatus"
    )

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, float(value)))

    def to_dataset_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class AugmentedContent(DatasetBaseModel):
    """Source text rewritten with web-search findings."""

    text: str
    grounding_metadata: dict[str, Any] | None = Field(
        default=None, alias="groundingMetadata"
    )


class GenerationRequest(DatasetBaseModel):
    source_text: str = Field(alias="sourceText")
    target_record_count: int = Field(alias="targetRecordCount", gt=0)
    domain_profile: DomainProfile = Field(
        default=DomainProfile.KNOWLEDGE, alias="domainProfile"
    )


class GapRequestPlan(DatasetBaseModel):
    """How many correct and incorrect records one gap asks for."""

    gap_id: str
    total: int
    correct: int
    incorrect: int


class GenerationReport(DatasetBaseModel):
    records: list[GeneratedRecord] = Field(default_factory=list)
    failed_gap_ids: list[str] = Field(default_factory=list)
    plans: list[GapRequestPlan] = Field(default_factory=list)
    per_gap_count: int = 0

    @property
    def requested_total(self) -> int:
        return sum(plan.total for plan in self.plans)


class ValidationResult(DatasetBaseModel):
    is_valid: bool = Field(alias="isValid")
    confidence: float
    reasoning: str
    factual_accuracy: float = Field(alias="factualAccuracy")
    relevance_score: float = Field(alias="relevanceScore")
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("confidence", "factual_accuracy", "relevance_score")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return min(1.0, max(0.0, float(value)))

    @classmethod
    def failed(cls, error: BaseException | str) -> ValidationResult:
        return cls(
            is_valid=False,
            confidence=0.1,
            reasoning=f"Validation failed due to error: {error}",
            factual_accuracy=0.1,
            relevance_score=0.1,
        )
