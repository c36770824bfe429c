"""Central package for Fine Format data models."""

from .api_models import (
    ChatRequest,
    ChatResponse,
    ErrorEnvelope,
    PreprocessRequest,
    PreprocessResponse,
    PreprocessSource,
    SourceMetadata,
)
from .dataset_models import (
    AugmentedContent,
    DomainProfile,
    GapPriority,
    GapRequestPlan,
    GeneratedRecord,
    GenerationReport,
    GenerationRequest,
    KnowledgeGap,
    ValidationResult,
)

__all__ = [
    "AugmentedContent",
    "ChatRequest",
    "ChatResponse",
    "ErrorEnvelope",
    "DomainProfile",
    "GapPriority",
    "GapRequestPlan",
    "GeneratedRecord",
    "GenerationReport",
    "GenerationRequest",
    "KnowledgeGap",
    "PreprocessRequest",
    "PreprocessResponse",
    "PreprocessSource",
    "SourceMetadata",
    "ValidationResult",
]
