"""
Annotation Core - Processing Orchestrator
==========================================

What:  Runs the per-annotation validation pipeline over a batch, filters the
       batch, attaches validation metadata, and computes quality metrics.
How:   Validation of one annotation is a pure function of the annotation and
       the phrase tables, so the batch may fan out over a thread pool. Results
       are joined in input order before the FilterEngine sees them.
Who:   Called by POST /api/annotations/process directly and by POST /api/analyze
       after the ProviderOrchestrator returned raw annotations.

Per-annotation pipeline:
    ┌────────────┐   out of range / suspicious
    │ Coordinate │ ─────────────────────────────────┐
    └─────┬──────┘                                  │
          │ in range                                │
    ┌─────▼──────┐  ┌─────────────┐                 │
    │  Evidence  │  │   Content   │                 │
    └─────┬──────┘  └──────┬──────┘                 │
          └──── higher ────┘                        │
                 │                                  │
          ┌──────▼──────┐   ┌──────────────────┐    │
          │  Research   │ → │ ConfidenceCombiner│ ◄──┘
          └─────────────┘   └────────┬─────────┘
                                     ▼
                              ValidationResult

Batch flow:
    1. validate every annotation (optionally in parallel, order preserved)
    2. attach metadata to copies of the annotations
    3. FilterEngine partitions the copies
    4. metrics + status

The caller's annotation objects are never modified.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from annotation_core.config import settings
from annotation_core.schemas.annotation import (
    Annotation,
    EvidenceLevel,
    ProcessingMetrics,
    ProcessingOptions,
    ProcessingResult,
    ProcessingStatus,
    ValidationIssue,
    ValidationResult,
)
from annotation_core.services.confidence_combiner import ConfidenceCombiner
from annotation_core.services.coordinate_validator import CoordinateValidator
from annotation_core.services.evidence_classifier import (
    ContentSpecificityAnalyzer,
    EvidenceClassifier,
    combine_text_verdicts,
)
from annotation_core.services.filter_engine import FilterEngine
from annotation_core.services.phrase_tables import PhraseTables, get_phrase_tables
from annotation_core.services.research_detector import ResearchDetector

logger = logging.getLogger(__name__)

# Coordinate verdicts that replace the text stages.
_COORDINATE_TERMINAL_ISSUES = (
    ValidationIssue.COORDINATE_OUT_OF_RANGE,
    ValidationIssue.SUSPICIOUS_COORDINATE_PATTERN,
)


class ProcessingOrchestrator:
    """
    Validation + filtering pipeline for one batch of annotations.

    Architecture:
        - Stateless between calls; safe to share across requests
        - Stage objects are built once from the same PhraseTables
        - Thread pool is created per batch when validation_workers > 1
    """

    def __init__(
        self,
        tables: Optional[PhraseTables] = None,
        combiner: Optional[ConfidenceCombiner] = None,
        workers: Optional[int] = None,
    ):
        self.tables = tables or get_phrase_tables()
        self.coordinate_validator = CoordinateValidator(self.tables)
        self.evidence_classifier = EvidenceClassifier(self.tables)
        self.content_analyzer = ContentSpecificityAnalyzer(self.tables)
        self.research_detector = ResearchDetector(self.tables)
        self.combiner = combiner or ConfidenceCombiner()
        self.workers = settings.validation_workers if workers is None else workers

    # ══════════════════════════════════════════════════════════════════════
    # Per-annotation validation
    # ══════════════════════════════════════════════════════════════════════

    def validate_annotation(
        self, annotation: Annotation, position: int = 0
    ) -> Tuple[ValidationResult, List[str]]:
        """
        Run every stage for one annotation.

        Args:
            annotation: The annotation to judge. Not modified.
            position:   Zero-based index in the batch, used in log entries.

        Returns:
            (ValidationResult, stage log entries in pipeline order)
        """
        label = f"Annotation {position + 1} ({annotation.id})"
        log: List[str] = []
        text = annotation.analysis_text

        coordinate = self.coordinate_validator.validate(annotation)
        log.append(f"{label} coordinates: {coordinate.reasoning}")

        if any(issue in coordinate.issues for issue in _COORDINATE_TERMINAL_ISSUES):
            base = coordinate
            log.append(f"{label} text analysis skipped: coordinate verdict is final")
        else:
            evidence = self.evidence_classifier.classify(text)
            log.append(f"{label} evidence: {evidence.reasoning}")
            content = self.content_analyzer.analyze(text)
            log.append(f"{label} content: {content.reasoning}")
            base = combine_text_verdicts(evidence, content)

        research = self.research_detector.analyze(text)
        if research.has_research:
            log.append(
                f"{label} research: {len(research.research_indicators)} indicators, "
                f"quality {round(research.research_quality_score * 100)}%, "
                f"{research.citation_count} citations"
            )
        else:
            log.append(f"{label} research: none detected")

        result = self.combiner.combine(annotation.id, base, research)
        log.append(
            f"{label} result: {'valid' if result.is_valid else 'invalid'}, "
            f"confidence {round(result.confidence * 100)}%, "
            f"evidence {result.evidence_level.value}"
        )
        return result, log

    def validate_batch(
        self, annotations: Sequence[Annotation]
    ) -> List[Tuple[ValidationResult, List[str]]]:
        """Validate every annotation; the output list follows input order."""
        if self.workers > 1 and len(annotations) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                return list(
                    pool.map(self.validate_annotation, annotations, range(len(annotations)))
                )
        return [
            self.validate_annotation(annotation, position)
            for position, annotation in enumerate(annotations)
        ]

    # ══════════════════════════════════════════════════════════════════════
    # Batch processing
    # ══════════════════════════════════════════════════════════════════════

    def process_annotations(
        self,
        annotations: Sequence[Annotation],
        options: Optional[ProcessingOptions] = None,
    ) -> ProcessingResult:
        """
        Validate, annotate, and filter a batch.

        Args:
            annotations: Raw annotations, e.g. straight from a provider.
            options:     Per-batch switches; omitted fields come from settings.

        Returns:
            ProcessingResult. An empty batch yields status EMPTY_INPUT; a
            non-empty batch that filtering emptied yields
            NO_TRUSTWORTHY_ANNOTATIONS. Neither is an error.
        """
        opts = options or ProcessingOptions()
        log: List[str] = [f"Starting processing of {len(annotations)} annotations"]

        if not annotations:
            log.append("No annotations to process")
            return ProcessingResult(processing_log=log, status=ProcessingStatus.EMPTY_INPUT)

        if not opts.enable_validation:
            log.append("Validation disabled: annotations passed through unchanged")
            total = len(annotations)
            return ProcessingResult(
                processed_annotations=list(annotations),
                metrics=ProcessingMetrics(total_annotations=total, retention_rate=1.0),
                processing_log=log,
            )

        # ── Step 1: Validate ──────────────────────────────────────────────
        log.append("Validating annotations with evidence-based approach")
        outcomes = self.validate_batch(annotations)
        results = [result for result, _ in outcomes]
        for _, entries in outcomes:
            log.extend(entries)
        valid = sum(1 for r in results if r.is_valid)
        log.append(f"Validation complete: {valid}/{len(results)} valid")

        # ── Step 2: Attach metadata to copies ─────────────────────────────
        annotated = [
            self.attach_metadata(annotation, result)
            for annotation, result in zip(annotations, results)
        ]

        # ── Step 3: Filter ────────────────────────────────────────────────
        if opts.enable_filtering:
            engine = self.build_filter_engine(opts)
            log.append(
                f"Filtering with thresholds: standard {engine.standard_threshold}, "
                f"research {engine.research_threshold}, "
                f"high-quality research {engine.high_quality_threshold}"
            )
            partition = engine.filter(annotated, results)
            processed = partition.valid_annotations
            filtered = partition.filtered_annotations
            preserved = partition.research_preserved
            reasons = partition.filter_reason
            restored = partition.restored
            for annotation in filtered:
                log.append(f"Filtered {annotation.id}: {reasons[annotation.id]}")
            if restored:
                log.append(
                    f"Restored {len(restored)} best annotations to avoid over-filtering "
                    f"(max filtered: {opts.max_invalid_annotations})"
                )
            log.append(f"Filtering complete: {len(processed)} kept, {len(filtered)} filtered")
        else:
            log.append("Filtering disabled: all annotations kept")
            processed = annotated
            filtered = []
            preserved = [a for a, r in zip(annotated, results) if r.has_research]
            reasons = {}
            restored = []

        # ── Step 4: Metrics + status ──────────────────────────────────────
        metrics = self.build_metrics(
            results, len(processed), len(filtered), len(restored), preserved_count=len(preserved)
        )
        log.extend(self._summary_entries(metrics))

        status = ProcessingStatus.OK
        if not processed:
            status = ProcessingStatus.NO_TRUSTWORTHY_ANNOTATIONS
            log.append("No trustworthy annotations remained after filtering")

        self._log_completion(metrics, opts)

        return ProcessingResult(
            processed_annotations=processed,
            filtered_annotations=filtered,
            research_preserved=preserved,
            validation_results=results,
            metrics=metrics,
            processing_log=log,
            filter_reason=reasons,
            restored=restored,
            status=status,
        )

    @staticmethod
    def attach_metadata(annotation: Annotation, result: ValidationResult) -> Annotation:
        return annotation.model_copy(
            update={
                "validation_score": result.confidence,
                "validation_passed": result.is_valid,
                "evidence_level": result.evidence_level,
                "validation_method": result.validation_method,
                "validation_reasoning": result.reasoning,
            }
        )

    @staticmethod
    def build_filter_engine(options: ProcessingOptions) -> FilterEngine:
        """
        FilterEngine for one batch.

        The research threshold is min(settings.research_confidence_threshold,
        options.min_confidence_threshold): the per-batch option can only make
        the research path more lenient, never stricter than configured.
        """
        return FilterEngine(
            research_threshold=min(
                settings.research_confidence_threshold, options.min_confidence_threshold
            ),
            max_invalid_annotations=options.max_invalid_annotations,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Metrics
    # ══════════════════════════════════════════════════════════════════════

    @staticmethod
    def build_metrics(
        results: Sequence[ValidationResult],
        processed_count: int,
        filtered_count: int,
        restored_count: int = 0,
        preserved_count: int = 0,
    ) -> ProcessingMetrics:
        total = len(results)
        valid = sum(1 for r in results if r.is_valid)

        levels: Dict[str, int] = {level.value: 0 for level in EvidenceLevel}
        for r in results:
            levels[r.evidence_level.value] += 1

        research = [r for r in results if r.has_research]
        indicators: Dict[str, int] = {}
        for r in results:
            for indicator in r.research_indicators:
                indicators[indicator] = indicators.get(indicator, 0) + 1

        kept_or_dropped = processed_count + filtered_count

        return ProcessingMetrics(
            total_annotations=total,
            valid_count=valid,
            invalid_count=total - valid,
            average_confidence=sum(r.confidence for r in results) / total if total else 0.0,
            evidence_level_distribution=levels,
            research_backed_count=len(research),
            preserved_research_count=preserved_count,
            average_research_confidence=(
                sum(r.research_confidence for r in research) / len(research) if research else 0.0
            ),
            research_indicator_distribution=indicators,
            filtered_count=filtered_count,
            restored_count=restored_count,
            retention_rate=processed_count / kept_or_dropped if kept_or_dropped else 0.0,
        )

    @staticmethod
    def _summary_entries(metrics: ProcessingMetrics) -> List[str]:
        levels = metrics.evidence_level_distribution
        valid_pct = (
            round(metrics.valid_count / metrics.total_annotations * 100)
            if metrics.total_annotations else 0
        )
        return [
            f"Quality metrics: {metrics.valid_count}/{metrics.total_annotations} valid "
            f"({valid_pct}%)",
            f"Average confidence: {round(metrics.average_confidence * 100)}%",
            f"Research-backed: {metrics.research_backed_count}, "
            f"preserved: {metrics.preserved_research_count}",
            f"Evidence distribution: Strong({levels.get('strong', 0)}), "
            f"Moderate({levels.get('moderate', 0)}), Weak({levels.get('weak', 0)}), "
            f"None({levels.get('none', 0)})",
            f"Retention rate: {round(metrics.retention_rate * 100)}%",
        ]

    @staticmethod
    def _log_completion(metrics: ProcessingMetrics, options: ProcessingOptions) -> None:
        level = logging.INFO if options.log_validation_details else logging.DEBUG
        logger.log(
            level,
            "Annotation processing complete: total=%d valid=%d filtered=%d restored=%d "
            "avg_confidence=%.2f research=%d retention=%.2f",
            metrics.total_annotations,
            metrics.valid_count,
            metrics.filtered_count,
            metrics.restored_count,
            metrics.average_confidence,
            metrics.research_backed_count,
            metrics.retention_rate,
        )


# ══════════════════════════════════════════════════════════════════════════
# Quality report
# ══════════════════════════════════════════════════════════════════════════


def build_quality_report(result: ProcessingResult) -> str:
    """Plain-text diagnostic report of one processing run, for logs and debugging."""
    metrics = result.metrics
    levels = metrics.evidence_level_distribution
    processed = len(result.processed_annotations)
    filtered = len(result.filtered_annotations)
    kept_or_dropped = processed + filtered
    retention = round(processed / kept_or_dropped * 100) if kept_or_dropped else 0

    lines = [
        "ANNOTATION PROCESSING REPORT",
        "=" * 43,
        "Quality Metrics:",
        f"   Overall Quality: {round(metrics.average_confidence * 100)}%",
        f"   Valid Annotations: {metrics.valid_count}/{metrics.total_annotations}",
        f"   Retention Rate: {retention}%",
        "",
        "Evidence Analysis:",
        f"   Strong Evidence: {levels.get('strong', 0)}",
        f"   Moderate Evidence: {levels.get('moderate', 0)}",
        f"   Weak Evidence: {levels.get('weak', 0)}",
        f"   No Evidence: {levels.get('none', 0)}",
        "",
        "Research Analysis:",
        f"   Research-Backed: {metrics.research_backed_count}",
        f"   Preserved Research: {metrics.preserved_research_count}",
        f"   Average Research Confidence: {round(metrics.average_research_confidence * 100)}%",
        "",
        "Processing Results:",
        f"   Final Annotations: {processed}",
        f"   Filtered Out: {filtered}",
        f"   Restored: {len(result.restored)}",
        f"   Status: {result.status.value}",
        "   Coordinate Corrections Applied: 0",
        "",
        "Processing Log:",
    ]
    lines.extend(f"   {entry}" for entry in result.processing_log)
    lines.append("")
    lines.append(
        "All annotations passed validation"
        if filtered == 0
        else "Some annotations were filtered for quality"
    )
    return "\n".join(lines)


# ── Singleton Instance ────────────────────────────────────────────────────
processing_orchestrator = ProcessingOrchestrator()
