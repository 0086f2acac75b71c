"""
Annotation Core - Confidence Combiner
======================================

What:  Merges the text/coordinate verdict with the research analysis into the
       final ValidationResult for one annotation.
How:   Research-backed text gets a quality-proportional confidence boost, an
       evidence-level upgrade, and a more lenient validity rule.
Who:   Last per-annotation stage; its output is what the FilterEngine sees.

Validity rules (first matching row wins, confidence is the boosted value):
    out-of-range coordinates                 → invalid, confidence 0
    research, quality > 0.7                  → valid iff confidence > 0.3
    research, research confidence > 0.4      → valid iff confidence > 0.45
    everything else                          → valid iff confidence ≥ 0.7
"""

from typing import Optional

from annotation_core.config import settings
from annotation_core.schemas.annotation import (
    EvidenceLevel,
    ResearchAnalysis,
    StageVerdict,
    ValidationIssue,
    ValidationResult,
)

STRONG_UPGRADE_QUALITY = 0.8
MODERATE_UPGRADE_QUALITY = 0.6
RESEARCH_PATH_CONFIDENCE = 0.4


class ConfidenceCombiner:
    """
    Combines a base verdict with research signals.

    All thresholds default to the values in settings and can be overridden
    per instance (tests and tuning experiments construct their own).
    """

    def __init__(
        self,
        standard_threshold: Optional[float] = None,
        research_threshold: Optional[float] = None,
        high_quality_threshold: Optional[float] = None,
        high_quality_score: Optional[float] = None,
        boost_factor: Optional[float] = None,
    ):
        self.standard_threshold = _pick(standard_threshold, settings.standard_confidence_threshold)
        self.research_threshold = _pick(research_threshold, settings.research_confidence_threshold)
        self.high_quality_threshold = _pick(
            high_quality_threshold, settings.high_quality_research_threshold
        )
        self.high_quality_score = _pick(high_quality_score, settings.high_quality_research_score)
        self.boost_factor = _pick(boost_factor, settings.research_confidence_boost)

    def combine(
        self,
        annotation_id: str,
        base: StageVerdict,
        research: ResearchAnalysis,
    ) -> ValidationResult:
        research_fields = dict(
            has_research=research.has_research,
            research_confidence=research.research_confidence,
            research_indicators=list(research.research_indicators),
            research_quality_score=research.research_quality_score,
            citation_count=research.citation_count,
        )

        # Out-of-range coordinates are terminal: nothing may lift them.
        if ValidationIssue.COORDINATE_OUT_OF_RANGE in base.issues:
            return ValidationResult(
                annotation_id=annotation_id,
                is_valid=False,
                confidence=0.0,
                evidence_level=base.evidence_level,
                reasoning=base.reasoning,
                validation_method=base.validation_method,
                issues=list(base.issues),
                **research_fields,
            )

        if not research.has_research:
            return ValidationResult(
                annotation_id=annotation_id,
                is_valid=base.confidence >= self.standard_threshold,
                confidence=base.confidence,
                evidence_level=base.evidence_level,
                reasoning=base.reasoning,
                validation_method=base.validation_method,
                issues=list(base.issues),
                **research_fields,
            )

        quality = research.research_quality_score
        boost = self.boost_factor * quality
        confidence = min(1.0, base.confidence + boost)

        level = base.evidence_level
        if quality > STRONG_UPGRADE_QUALITY:
            level = EvidenceLevel.STRONG
        elif quality > MODERATE_UPGRADE_QUALITY and level == EvidenceLevel.WEAK:
            level = EvidenceLevel.MODERATE

        reasoning = (
            f"Research-backed content detected ({len(research.research_indicators)} "
            f"indicators, quality: {round(quality * 100)}%, boost: +{round(boost * 100)}%). "
            f"{base.reasoning}"
        )

        return ValidationResult(
            annotation_id=annotation_id,
            is_valid=self.is_valid_with_research(confidence, research),
            confidence=confidence,
            evidence_level=level,
            reasoning=reasoning,
            validation_method=base.validation_method,
            issues=list(base.issues),
            **research_fields,
        )

    def is_valid_with_research(self, confidence: float, research: ResearchAnalysis) -> bool:
        if research.research_quality_score > self.high_quality_score:
            return confidence > self.high_quality_threshold
        if research.research_confidence > RESEARCH_PATH_CONFIDENCE:
            return confidence > self.research_threshold
        return confidence >= self.standard_threshold


def _pick(value: Optional[float], default: float) -> float:
    return default if value is None else value
