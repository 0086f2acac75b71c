"""
Annotation Core - Confidence Combiner & Filter Engine Tests
============================================================

What we test:
    ✅ Research boost, evidence-level upgrade, and the three validity rules
    ✅ Out-of-range verdicts can never be lifted
    ✅ Standard / research / high-quality research thresholds in the filter
    ✅ Over-filtering protection restores the best filtered annotations
    ✅ Output lists keep input order
"""

import pytest

from annotation_core.schemas.annotation import (
    EvidenceLevel,
    ResearchAnalysis,
    StageVerdict,
    ValidationIssue,
    ValidationMethod,
    ValidationResult,
)
from annotation_core.services.confidence_combiner import ConfidenceCombiner
from annotation_core.services.filter_engine import FilterEngine


def _base(confidence, level=EvidenceLevel.MODERATE, issues=None):
    return StageVerdict(
        is_valid=confidence >= 0.7,
        confidence=confidence,
        evidence_level=level,
        reasoning="Base reasoning",
        validation_method=ValidationMethod.VISUAL_EVIDENCE,
        issues=issues or [],
    )


def _research(quality, confidence=0.5, indicators=("research shows",)):
    return ResearchAnalysis(
        has_research=True,
        research_confidence=confidence,
        research_indicators=list(indicators),
        research_quality_score=quality,
    )


def _result(annotation_id, confidence, has_research=False, quality=0.0):
    return ValidationResult(
        annotation_id=annotation_id,
        is_valid=confidence >= 0.7,
        confidence=confidence,
        evidence_level=EvidenceLevel.MODERATE,
        reasoning="",
        validation_method=ValidationMethod.VISUAL_EVIDENCE,
        has_research=has_research,
        research_quality_score=quality,
    )


class TestConfidenceCombiner:

    def setup_method(self):
        self.combiner = ConfidenceCombiner(
            standard_threshold=0.7,
            research_threshold=0.45,
            high_quality_threshold=0.3,
            high_quality_score=0.7,
            boost_factor=0.3,
        )

    def test_without_research_uses_standard_threshold(self):
        below = self.combiner.combine("a", _base(0.6), ResearchAnalysis())
        at = self.combiner.combine("b", _base(0.7), ResearchAnalysis())

        assert below.is_valid is False
        assert below.confidence == pytest.approx(0.6)
        assert at.is_valid is True

    def test_high_quality_research_boost_and_upgrade(self):
        result = self.combiner.combine("a", _base(0.1, EvidenceLevel.WEAK), _research(0.8))

        # 0.1 + 0.3 × 0.8
        assert result.confidence == pytest.approx(0.34)
        assert result.is_valid is True
        assert result.evidence_level == EvidenceLevel.MODERATE
        assert result.reasoning.startswith("Research-backed content detected (1 indicators")
        assert result.reasoning.endswith("Base reasoning")

    def test_very_high_quality_upgrades_to_strong(self):
        result = self.combiner.combine("a", _base(0.5, EvidenceLevel.WEAK), _research(0.9))
        assert result.evidence_level == EvidenceLevel.STRONG

    def test_research_path_threshold(self):
        weak = self.combiner.combine("a", _base(0.2), _research(0.65, confidence=0.5))
        strong_enough = self.combiner.combine("b", _base(0.3), _research(0.65, confidence=0.5))

        assert weak.confidence == pytest.approx(0.395)
        assert weak.is_valid is False
        assert strong_enough.confidence == pytest.approx(0.495)
        assert strong_enough.is_valid is True

    def test_low_confidence_research_falls_back_to_standard_rule(self):
        result = self.combiner.combine("a", _base(0.4), _research(0.6, confidence=0.3))
        # 0.4 + 0.18 = 0.58 < 0.7
        assert result.is_valid is False

    def test_boost_is_capped_at_one(self):
        result = self.combiner.combine("a", _base(0.9, EvidenceLevel.STRONG), _research(1.0))
        assert result.confidence == 1.0

    def test_out_of_range_is_never_boosted(self):
        base = StageVerdict(
            is_valid=False,
            confidence=0.0,
            evidence_level=EvidenceLevel.NONE,
            reasoning="Coordinates out of range",
            validation_method=ValidationMethod.COORDINATE_RANGE,
            issues=[ValidationIssue.COORDINATE_OUT_OF_RANGE],
        )
        result = self.combiner.combine("a", base, _research(1.0, confidence=0.9))

        assert result.is_valid is False
        assert result.confidence == 0.0
        assert result.has_research is True


class TestFilterEngineThresholds:

    def test_standard_threshold(self, make_annotation):
        annotations = [make_annotation(), make_annotation()]
        results = [_result(annotations[0].id, 0.69), _result(annotations[1].id, 0.7)]

        outcome = FilterEngine(max_invalid_annotations=10).filter(annotations, results)

        assert [a.id for a in outcome.valid_annotations] == [annotations[1].id]
        assert [a.id for a in outcome.filtered_annotations] == [annotations[0].id]
        assert outcome.filter_reason == {
            annotations[0].id: "Standard content below threshold: 69% < 70%"
        }
        assert outcome.research_preserved == []

    def test_high_quality_research_retained_at_031(self, make_annotation):
        annotation = make_annotation()
        result = _result(annotation.id, 0.31, has_research=True, quality=0.8)

        outcome = FilterEngine(max_invalid_annotations=10).filter([annotation], [result])

        assert outcome.valid_annotations == [annotation]
        assert outcome.research_preserved == [annotation]

    def test_research_threshold(self, make_annotation):
        annotation = make_annotation()
        result = _result(annotation.id, 0.44, has_research=True, quality=0.5)

        outcome = FilterEngine(max_invalid_annotations=10).filter([annotation], [result])

        assert outcome.filtered_annotations == [annotation]
        assert outcome.filter_reason[annotation.id] == (
            "Research content below threshold: 44% < 45%"
        )

    def test_high_quality_preservation_can_be_disabled(self, make_annotation):
        annotation = make_annotation()
        result = _result(annotation.id, 0.31, has_research=True, quality=0.8)

        engine = FilterEngine(max_invalid_annotations=10, preserve_high_quality_research=False)
        outcome = engine.filter([annotation], [result])

        assert outcome.filtered_annotations == [annotation]

    def test_missing_result_is_filtered(self, make_annotation):
        annotation = make_annotation()
        outcome = FilterEngine(max_invalid_annotations=10).filter([annotation], [None])
        assert outcome.filtered_annotations == [annotation]

    def test_length_mismatch_raises(self, make_annotation):
        with pytest.raises(ValueError):
            FilterEngine().filter([make_annotation()], [])


class TestOverFilteringProtection:

    def test_restores_best_filtered_annotations(self, make_annotation):
        annotations = [make_annotation() for _ in range(5)]
        confidences = [0.1, 0.5, 0.2, 0.6, 0.5]
        results = [_result(a.id, c) for a, c in zip(annotations, confidences)]

        outcome = FilterEngine(max_invalid_annotations=3).filter(annotations, results)

        ids = [a.id for a in annotations]
        # 0.6 first, then the earlier of the two 0.5s (stable order)
        assert outcome.restored == [ids[1], ids[3]]
        assert [a.id for a in outcome.valid_annotations] == [ids[1], ids[3]]
        assert [a.id for a in outcome.filtered_annotations] == [ids[0], ids[2], ids[4]]
        assert set(outcome.filter_reason) == {ids[0], ids[2], ids[4]}

    @pytest.mark.parametrize("max_invalid", [0, 1, 2, 3, 4])
    def test_never_more_than_max_filtered(self, make_annotation, max_invalid):
        annotations = [make_annotation() for _ in range(6)]
        results = [_result(a.id, 0.05 * i) for i, a in enumerate(annotations)]

        outcome = FilterEngine(max_invalid_annotations=max_invalid).filter(annotations, results)

        assert len(outcome.filtered_annotations) <= max_invalid
        assert len(outcome.valid_annotations) + len(outcome.filtered_annotations) == 6

    def test_no_restore_when_under_limit(self, make_annotation):
        annotations = [make_annotation(), make_annotation()]
        results = [_result(a.id, 0.1) for a in annotations]

        outcome = FilterEngine(max_invalid_annotations=3).filter(annotations, results)

        assert outcome.restored == []
        assert len(outcome.filtered_annotations) == 2

    def test_output_keeps_input_order(self, make_annotation):
        annotations = [make_annotation() for _ in range(4)]
        results = [
            _result(annotations[0].id, 0.9),
            _result(annotations[1].id, 0.1),
            _result(annotations[2].id, 0.8),
            _result(annotations[3].id, 0.2),
        ]

        outcome = FilterEngine(max_invalid_annotations=1).filter(annotations, results)

        ids = [a.id for a in annotations]
        assert [a.id for a in outcome.valid_annotations] == [ids[0], ids[2], ids[3]]
        assert [a.id for a in outcome.filtered_annotations] == [ids[1]]
