"""
Annotation Core - Filter Engine
================================

What:  Batch-level partition of validated annotations into kept / filtered,
       with a research-preferential threshold and an over-filtering safety net.
How:   One pass assigns each (annotation, result) pair to a side using the
       threshold of its path. If more than max_invalid annotations ended up
       filtered, the highest-confidence filtered ones are moved back.
Who:   Called by ProcessingOrchestrator after every ValidationResult exists
       (the restore step needs the complete batch).

Thresholds:
    ┌─────────────────────────────────────────┬───────────┐
    │ Path                                    │ default   │
    ├─────────────────────────────────────────┼───────────┤
    │ no research                             │ ≥ 0.7     │
    │ research, quality > 0.7 (preserve on)   │ ≥ 0.3     │
    │ research, otherwise                     │ ≥ 0.45    │
    └─────────────────────────────────────────┴───────────┘

Invariant:
    After restoration, len(filtered) ≤ max_invalid_annotations. Every list in
    the FilterResult keeps the input order of the batch.
"""

import logging
from typing import List, Optional, Sequence

from annotation_core.config import settings
from annotation_core.schemas.annotation import Annotation, FilterResult, ValidationResult

logger = logging.getLogger(__name__)


class FilterEngine:
    """Two-threshold batch filter with over-filtering protection."""

    def __init__(
        self,
        standard_threshold: Optional[float] = None,
        research_threshold: Optional[float] = None,
        high_quality_threshold: Optional[float] = None,
        high_quality_score: Optional[float] = None,
        max_invalid_annotations: Optional[int] = None,
        preserve_high_quality_research: bool = True,
    ):
        self.standard_threshold = (
            settings.standard_confidence_threshold
            if standard_threshold is None else standard_threshold
        )
        self.research_threshold = (
            settings.research_confidence_threshold
            if research_threshold is None else research_threshold
        )
        self.high_quality_threshold = (
            settings.high_quality_research_threshold
            if high_quality_threshold is None else high_quality_threshold
        )
        self.high_quality_score = (
            settings.high_quality_research_score
            if high_quality_score is None else high_quality_score
        )
        self.max_invalid_annotations = (
            settings.max_invalid_annotations
            if max_invalid_annotations is None else max_invalid_annotations
        )
        self.preserve_high_quality_research = preserve_high_quality_research

    def threshold_for(self, result: ValidationResult) -> float:
        """Confidence an annotation needs to survive, given its research signals."""
        if not result.has_research:
            return self.standard_threshold
        if (
            self.preserve_high_quality_research
            and result.research_quality_score > self.high_quality_score
        ):
            return self.high_quality_threshold
        return self.research_threshold

    def filter(
        self,
        annotations: Sequence[Annotation],
        results: Sequence[Optional[ValidationResult]],
    ) -> FilterResult:
        """
        Partition a batch.

        Args:
            annotations: The batch, in input order.
            results:     One ValidationResult per annotation (same index).
                         A missing result (None) filters the annotation.

        Returns:
            FilterResult with kept, filtered, research-preserved annotations,
            a reason per filtered id, and the ids restored by the safety net.
        """
        if len(annotations) != len(results):
            raise ValueError(
                f"Expected one validation result per annotation "
                f"({len(annotations)} annotations, {len(results)} results)"
            )

        kept: List[int] = []
        filtered: List[int] = []
        preserved: List[int] = []
        reasons = {}

        for index, (annotation, result) in enumerate(zip(annotations, results)):
            if result is None:
                filtered.append(index)
                reasons[index] = "No validation result"
                continue

            threshold = self.threshold_for(result)
            if result.confidence >= threshold:
                kept.append(index)
                if result.has_research:
                    preserved.append(index)
                    logger.debug(
                        "Research annotation %s preserved: confidence=%.2f threshold=%.2f "
                        "quality=%.2f",
                        annotation.id,
                        result.confidence,
                        threshold,
                        result.research_quality_score,
                    )
            else:
                filtered.append(index)
                path = "Research content" if result.has_research else "Standard content"
                reasons[index] = (
                    f"{path} below threshold: {round(result.confidence * 100)}% "
                    f"< {round(threshold * 100)}%"
                )

        restored = self._restore_overflow(filtered, results)
        if restored:
            filtered = [i for i in filtered if i not in restored]
            kept = sorted(kept + restored)
            logger.warning(
                "Over-filtering protection restored %d annotations (max filtered: %d)",
                len(restored),
                self.max_invalid_annotations,
            )

        return FilterResult(
            valid_annotations=[annotations[i] for i in kept],
            filtered_annotations=[annotations[i] for i in filtered],
            research_preserved=[annotations[i] for i in preserved],
            filter_reason={annotations[i].id: reasons[i] for i in filtered},
            restored=[annotations[i].id for i in sorted(restored)],
        )

    def _restore_overflow(
        self,
        filtered: List[int],
        results: Sequence[Optional[ValidationResult]],
    ) -> List[int]:
        """Indices of the best filtered annotations to move back, if over the cap."""
        overflow = len(filtered) - self.max_invalid_annotations
        if overflow <= 0:
            return []

        # Stable sort: equal confidences keep batch order.
        ranked = sorted(
            filtered,
            key=lambda i: results[i].confidence if results[i] is not None else 0.0,
            reverse=True,
        )
        return ranked[:overflow]
