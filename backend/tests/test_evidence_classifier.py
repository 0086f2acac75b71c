"""
Annotation Core - Text Classifier Tests
========================================

What we test:
    ✅ Every row of the evidence decision table
    ✅ Every row of the content-specificity decision table
    ✅ Combination keeps the higher-confidence verdict, evidence wins ties
"""

import pytest

from annotation_core.schemas.annotation import (
    EvidenceLevel,
    StageVerdict,
    ValidationIssue,
    ValidationMethod,
)
from annotation_core.services.evidence_classifier import (
    ContentSpecificityAnalyzer,
    EvidenceClassifier,
    combine_text_verdicts,
    count_phrases,
)


class TestEvidenceClassifier:

    def setup_method(self):
        self.classifier = EvidenceClassifier()

    def test_strong_phrase_gives_strong_evidence(self):
        verdict = self.classifier.classify("I can see the submit button is visible at the top")

        assert verdict.evidence_level == EvidenceLevel.STRONG
        assert verdict.confidence >= 0.9
        assert verdict.is_valid is True
        assert verdict.validation_method == ValidationMethod.VISUAL_EVIDENCE

    def test_two_moderate_phrases(self):
        verdict = self.classifier.classify("The button in the header is misaligned")
        assert verdict.evidence_level == EvidenceLevel.MODERATE
        assert verdict.confidence == pytest.approx(0.7)

    def test_single_moderate_phrase_without_weak(self):
        verdict = self.classifier.classify("The footer looks cramped")
        assert verdict.evidence_level == EvidenceLevel.MODERATE
        assert verdict.confidence == pytest.approx(0.6)
        assert verdict.is_valid is True

    def test_many_weak_phrases(self):
        verdict = self.classifier.classify(
            "Consider adding more detail; it would benefit users and you might want to "
            "follow what we recommend"
        )
        assert verdict.evidence_level == EvidenceLevel.WEAK
        assert verdict.confidence == pytest.approx(0.3)
        assert verdict.is_valid is False

    def test_no_evidence(self):
        verdict = self.classifier.classify("Make it pop")

        assert verdict.evidence_level == EvidenceLevel.NONE
        assert verdict.confidence == pytest.approx(0.1)
        assert verdict.is_valid is False
        assert verdict.issues == [ValidationIssue.NO_EVIDENCE_FOUND]

    def test_matching_is_case_insensitive(self):
        verdict = self.classifier.classify("SCREENSHOT SHOWS a broken layout")
        assert verdict.evidence_level == EvidenceLevel.STRONG


class TestContentSpecificityAnalyzer:

    def setup_method(self):
        self.analyzer = ContentSpecificityAnalyzer()

    def test_very_short_text(self):
        verdict = self.analyzer.analyze("Nice")

        assert verdict.evidence_level == EvidenceLevel.WEAK
        assert verdict.confidence == pytest.approx(0.2)
        assert verdict.issues == [ValidationIssue.LOW_SPECIFICITY]
        assert verdict.is_valid is False

    def test_generic_text(self):
        verdict = self.analyzer.analyze("Generally usually often")

        assert verdict.confidence == pytest.approx(0.3)
        assert verdict.issues == [ValidationIssue.LOW_SPECIFICITY]

    def test_highly_specific_text(self):
        verdict = self.analyzer.analyze("Padding is 4px with low contrast")

        assert verdict.evidence_level == EvidenceLevel.STRONG
        assert verdict.confidence == pytest.approx(0.8)
        assert verdict.is_valid is True

    def test_standard_text(self):
        verdict = self.analyzer.analyze("The layout feels balanced overall here")

        assert verdict.evidence_level == EvidenceLevel.MODERATE
        assert verdict.confidence == pytest.approx(0.5)
        assert verdict.is_valid is True

    def test_ratios(self):
        words, specificity, genericity = self.analyzer.ratios("Padding is 4px with low contrast")
        assert words == 6
        assert specificity == pytest.approx(0.5)
        assert genericity == 0.0

    def test_blank_text(self):
        assert self.analyzer.ratios("   ") == (0, 0.0, 0.0)


class TestCombination:

    @staticmethod
    def _verdict(confidence, level, method, issues=None):
        return StageVerdict(
            is_valid=confidence >= 0.4,
            confidence=confidence,
            evidence_level=level,
            reasoning=f"{level.value} reasoning",
            validation_method=method,
            issues=issues or [],
        )

    def test_higher_confidence_wins(self):
        evidence = self._verdict(0.1, EvidenceLevel.NONE, ValidationMethod.VISUAL_EVIDENCE,
                                 [ValidationIssue.NO_EVIDENCE_FOUND])
        content = self._verdict(0.8, EvidenceLevel.STRONG, ValidationMethod.CONTENT_ANALYSIS)

        combined = combine_text_verdicts(evidence, content)

        assert combined.confidence == pytest.approx(0.8)
        assert combined.validation_method == ValidationMethod.CONTENT_ANALYSIS
        assert combined.reasoning == "strong reasoning. Evidence: none, Content: strong"
        assert combined.issues == [ValidationIssue.NO_EVIDENCE_FOUND]

    def test_evidence_wins_ties(self):
        evidence = self._verdict(0.6, EvidenceLevel.MODERATE, ValidationMethod.VISUAL_EVIDENCE)
        content = self._verdict(0.6, EvidenceLevel.MODERATE, ValidationMethod.CONTENT_ANALYSIS)

        combined = combine_text_verdicts(evidence, content)

        assert combined.validation_method == ValidationMethod.VISUAL_EVIDENCE


def test_count_phrases_counts_distinct_phrases():
    assert count_phrases("the button and the button", ["the button", "the link"]) == 1
