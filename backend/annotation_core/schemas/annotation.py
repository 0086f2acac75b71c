"""
Annotation Core - Annotation & Validation Schemas
==================================================

What:  Pydantic models for annotations, per-annotation verdicts, batch metrics,
       and processing results.
How:   Field names are snake_case in Python and camelCase on the wire
       (`implementationEffort`, `validationScore`, ...). Both spellings are
       accepted on input.
Who:   Produced by provider clients, consumed and annotated by the
       ProcessingOrchestrator, serialized by the routes.

Invariant:
    Annotation has no correction fields. Nothing in this package ever writes
    x, y, feedback, title, or description after construction.
"""

import uuid
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from annotation_core.config import settings


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# ══════════════════════════════════════════════════════════════════════════
# Enumerations
# ══════════════════════════════════════════════════════════════════════════


class Category(str, Enum):
    UX = "ux"
    VISUAL = "visual"
    ACCESSIBILITY = "accessibility"
    CONVERSION = "conversion"
    BRAND = "brand"
    CONTENT = "content"


class Severity(str, Enum):
    CRITICAL = "critical"
    SUGGESTED = "suggested"
    ENHANCEMENT = "enhancement"


class EvidenceLevel(str, Enum):
    NONE = "none"
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class ValidationMethod(str, Enum):
    COORDINATE_RANGE = "coordinate_range"
    VISUAL_EVIDENCE = "visual_evidence"
    CONTENT_ANALYSIS = "content_analysis"


class ValidationIssue(str, Enum):
    """
    Non-fatal, per-annotation problems.

    COORDINATE_OUT_OF_RANGE is terminal for the annotation (always invalid,
    confidence 0) but still never aborts the batch.
    """
    COORDINATE_OUT_OF_RANGE = "coordinate_out_of_range"
    SUSPICIOUS_COORDINATE_PATTERN = "suspicious_coordinate_pattern"
    NO_EVIDENCE_FOUND = "no_evidence_found"
    LOW_SPECIFICITY = "low_specificity"


class ProcessingStatus(str, Enum):
    """
    Batch outcome. NO_TRUSTWORTHY_ANNOTATIONS is a successful call whose
    output was emptied by filtering, which is a different situation from a
    failed provider call (that one is an exception, never a status).
    """
    OK = "ok"
    EMPTY_INPUT = "empty_input"
    NO_TRUSTWORTHY_ANNOTATIONS = "no_trustworthy_annotations"


# ══════════════════════════════════════════════════════════════════════════
# Annotation
# ══════════════════════════════════════════════════════════════════════════


def _new_annotation_id() -> str:
    return f"annotation-{uuid.uuid4().hex[:8]}"


class Annotation(CamelModel):
    """
    One piece of AI-generated feedback pinned to a point on a screenshot.

    Coordinates are percentages of the image size. Values outside 0-100 are
    accepted here: the validator has to see them to reject them.
    """
    id: str = Field(default_factory=_new_annotation_id)
    x: float
    y: float
    category: Category = Category.UX
    severity: Severity = Severity.SUGGESTED
    feedback: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    implementation_effort: Optional[str] = None
    business_impact: Optional[str] = None
    image_index: Optional[int] = None

    # ── Attached by ProcessingOrchestrator ────────────────────────────────
    validation_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    validation_passed: Optional[bool] = None
    evidence_level: Optional[EvidenceLevel] = None
    validation_method: Optional[ValidationMethod] = None
    validation_reasoning: Optional[str] = None

    @property
    def analysis_text(self) -> str:
        """Title plus description (or feedback when there is no description)."""
        return f"{self.title or ''} {self.description or self.feedback or ''}"


# ══════════════════════════════════════════════════════════════════════════
# Per-annotation verdicts
# ══════════════════════════════════════════════════════════════════════════


class StageVerdict(CamelModel):
    """Output of one heuristic stage (coordinates, evidence, or content)."""
    is_valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_level: EvidenceLevel
    reasoning: str
    validation_method: ValidationMethod
    issues: List[ValidationIssue] = Field(default_factory=list)


class ResearchAnalysis(CamelModel):
    """Output of the ResearchDetector for one annotation."""
    has_research: bool = False
    research_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    research_indicators: List[str] = Field(default_factory=list)
    research_quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    citation_count: int = 0
    category_counts: Dict[str, int] = Field(default_factory=dict)


class ValidationResult(CamelModel):
    """Final verdict for one annotation, as fed to the FilterEngine."""
    annotation_id: str
    is_valid: bool
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_level: EvidenceLevel
    reasoning: str
    validation_method: ValidationMethod
    issues: List[ValidationIssue] = Field(default_factory=list)

    has_research: bool = False
    research_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    research_indicators: List[str] = Field(default_factory=list)
    research_quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    citation_count: int = 0


# ══════════════════════════════════════════════════════════════════════════
# Batch models
# ══════════════════════════════════════════════════════════════════════════


class ProcessingOptions(CamelModel):
    """
    Per-batch switches. Anything the caller omits falls back to settings.

    min_confidence_threshold is the research-path floor: the research
    threshold used by the FilterEngine is never above this value.
    """
    enable_validation: bool = Field(default_factory=lambda: settings.enable_validation)
    enable_filtering: bool = Field(default_factory=lambda: settings.enable_filtering)
    min_confidence_threshold: float = Field(
        default_factory=lambda: settings.min_confidence_threshold, ge=0.0, le=1.0
    )
    max_invalid_annotations: int = Field(
        default_factory=lambda: settings.max_invalid_annotations, ge=0
    )
    log_validation_details: bool = Field(
        default_factory=lambda: settings.log_validation_details
    )


class FilterResult(CamelModel):
    """Partition produced by the FilterEngine. Every list keeps input order."""
    valid_annotations: List[Annotation] = Field(default_factory=list)
    filtered_annotations: List[Annotation] = Field(default_factory=list)
    research_preserved: List[Annotation] = Field(default_factory=list)
    filter_reason: Dict[str, str] = Field(default_factory=dict)
    restored: List[str] = Field(default_factory=list)


class ProcessingMetrics(CamelModel):
    total_annotations: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    average_confidence: float = 0.0
    evidence_level_distribution: Dict[str, int] = Field(default_factory=dict)
    research_backed_count: int = 0
    preserved_research_count: int = 0
    average_research_confidence: float = 0.0
    research_indicator_distribution: Dict[str, int] = Field(default_factory=dict)
    filtered_count: int = 0
    restored_count: int = 0
    retention_rate: float = 0.0


class ProcessingResult(CamelModel):
    processed_annotations: List[Annotation] = Field(default_factory=list)
    filtered_annotations: List[Annotation] = Field(default_factory=list)
    research_preserved: List[Annotation] = Field(default_factory=list)
    validation_results: List[ValidationResult] = Field(default_factory=list)
    metrics: ProcessingMetrics = Field(default_factory=ProcessingMetrics)
    processing_log: List[str] = Field(default_factory=list)
    filter_reason: Dict[str, str] = Field(default_factory=dict)
    restored: List[str] = Field(default_factory=list)
    status: ProcessingStatus = ProcessingStatus.OK
