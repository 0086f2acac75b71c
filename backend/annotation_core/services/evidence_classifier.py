"""
Annotation Core - Text Evidence Classifiers
============================================

What:  Two rule-based signals gauging how "observed" an annotation's text is:
       EvidenceClassifier (phrase tiers) and ContentSpecificityAnalyzer
       (specific vs. generic term density), plus the rule that merges them.
How:   Pure functions of (text, phrase tables). Thresholds live in the
       decision tables below; vocabularies live in PhraseTables.
Who:   Second stage of the per-annotation pipeline, after the coordinate
       check and before research detection.

Both classifiers read `Annotation.analysis_text`
(title + description, or title + feedback when description is empty).
"""

import re
from typing import List, Optional, Sequence, Tuple

from annotation_core.schemas.annotation import (
    EvidenceLevel,
    StageVerdict,
    ValidationIssue,
    ValidationMethod,
)
from annotation_core.services.phrase_tables import PhraseTables, get_phrase_tables

_WORD_SPLIT = re.compile(r"\s+")

# (level, confidence) per decision-table row.
EVIDENCE_STRONG = (EvidenceLevel.STRONG, 0.9)
EVIDENCE_MODERATE_MULTI = (EvidenceLevel.MODERATE, 0.7)
EVIDENCE_MODERATE_SINGLE = (EvidenceLevel.MODERATE, 0.6)
EVIDENCE_WEAK = (EvidenceLevel.WEAK, 0.3)
EVIDENCE_NONE = (EvidenceLevel.NONE, 0.1)

CONTENT_MIN_WORDS = 3
CONTENT_VALID_CONFIDENCE = 0.4


def count_phrases(text: str, phrases: Sequence[str]) -> int:
    """Number of distinct table phrases present in already lower-cased text."""
    return sum(1 for phrase in phrases if phrase in text)


class EvidenceClassifier:
    """
    Classifies feedback text by how directly it references the screenshot.

    Decision table (first matching row wins):
        strong ≥ 1                    → strong   / 0.9
        moderate ≥ 2                  → moderate / 0.7
        moderate == 1 and weak == 0   → moderate / 0.6
        weak ≥ 3                      → weak     / 0.3
        otherwise                     → none     / 0.1
    """

    def __init__(self, tables: Optional[PhraseTables] = None):
        self.tables = tables or get_phrase_tables()

    def classify(self, text: str) -> StageVerdict:
        lowered = text.lower()
        strong = count_phrases(lowered, self.tables.strong_evidence)
        moderate = count_phrases(lowered, self.tables.moderate_evidence)
        weak = count_phrases(lowered, self.tables.weak_evidence)

        if strong >= 1:
            level, confidence = EVIDENCE_STRONG
            reasoning = f"Strong visual evidence: {strong} direct observation indicators"
        elif moderate >= 2:
            level, confidence = EVIDENCE_MODERATE_MULTI
            reasoning = f"Moderate visual evidence: {moderate} specific element references"
        elif moderate == 1 and weak == 0:
            level, confidence = EVIDENCE_MODERATE_SINGLE
            reasoning = f"Some visual evidence: {moderate} element reference"
        elif weak >= 3:
            level, confidence = EVIDENCE_WEAK
            reasoning = f"Weak evidence: {weak} generic suggestions (possible hallucination)"
        else:
            level, confidence = EVIDENCE_NONE
            reasoning = "No visual evidence indicators found"

        issues: List[ValidationIssue] = []
        if level == EvidenceLevel.NONE:
            issues.append(ValidationIssue.NO_EVIDENCE_FOUND)

        return StageVerdict(
            is_valid=level not in (EvidenceLevel.WEAK, EvidenceLevel.NONE),
            confidence=confidence,
            evidence_level=level,
            reasoning=reasoning,
            validation_method=ValidationMethod.VISUAL_EVIDENCE,
            issues=issues,
        )


class ContentSpecificityAnalyzer:
    """
    Statistical check: does the text name concrete, checkable details
    (units, color codes, interaction states, alignment) or hedge generically?

    Decision table (first matching row wins):
        words < 3               → weak     / 0.2
        genericity > 0.3        → weak     / 0.3
        specificity > 0.2       → strong   / 0.8
        specificity > 0.1       → moderate / 0.6
        otherwise               → moderate / 0.5
    """

    def __init__(self, tables: Optional[PhraseTables] = None):
        self.tables = tables or get_phrase_tables()

    @staticmethod
    def word_count(text: str) -> int:
        return len([w for w in _WORD_SPLIT.split(text.strip()) if w])

    def ratios(self, text: str) -> Tuple[int, float, float]:
        """Returns (word_count, specificity_ratio, genericity_ratio)."""
        lowered = text.lower()
        words = self.word_count(text)
        if words == 0:
            return 0, 0.0, 0.0
        specific = count_phrases(lowered, self.tables.specific_terms)
        generic = count_phrases(lowered, self.tables.generic_terms)
        return words, specific / words, generic / words

    def analyze(self, text: str) -> StageVerdict:
        words, specificity, genericity = self.ratios(text)
        issues: List[ValidationIssue] = []

        if words < CONTENT_MIN_WORDS:
            level, confidence = EvidenceLevel.WEAK, 0.2
            reasoning = f"Very brief content ({words} words) may lack detail"
            issues.append(ValidationIssue.LOW_SPECIFICITY)
        elif genericity > 0.3:
            level, confidence = EvidenceLevel.WEAK, 0.3
            reasoning = (
                f"High generic content ratio ({round(genericity * 100)}%) "
                "suggests possible hallucination"
            )
            issues.append(ValidationIssue.LOW_SPECIFICITY)
        elif specificity > 0.2:
            level, confidence = EvidenceLevel.STRONG, 0.8
            reasoning = (
                f"High specificity ratio ({round(specificity * 100)}%) "
                "indicates detailed observation"
            )
        elif specificity > 0.1:
            level, confidence = EvidenceLevel.MODERATE, 0.6
            reasoning = f"Moderate specificity ratio ({round(specificity * 100)}%)"
        else:
            level, confidence = EvidenceLevel.MODERATE, 0.5
            reasoning = "Standard content specificity"

        return StageVerdict(
            is_valid=confidence >= CONTENT_VALID_CONFIDENCE,
            confidence=confidence,
            evidence_level=level,
            reasoning=reasoning,
            validation_method=ValidationMethod.CONTENT_ANALYSIS,
            issues=issues,
        )


def combine_text_verdicts(evidence: StageVerdict, content: StageVerdict) -> StageVerdict:
    """
    Keep the higher-confidence verdict (evidence wins ties) and concatenate
    both reasonings. Issues from both stages are carried forward.
    """
    best = evidence if evidence.confidence >= content.confidence else content
    issues = list(dict.fromkeys(evidence.issues + content.issues))
    return best.model_copy(
        update={
            "reasoning": (
                f"{best.reasoning}. Evidence: {evidence.evidence_level.value}, "
                f"Content: {content.evidence_level.value}"
            ),
            "issues": issues,
        }
    )
