"""
Annotation Core - Research Detector
====================================

What:  Detects and scores citation / evidence-backed language in annotation text.
How:   Weighted multi-category phrase scan plus citation regexes, all driven by
       PhraseTables.research_categories and PhraseTables.citation_patterns.
Who:   Third stage of the per-annotation pipeline; its ResearchAnalysis feeds
       the ConfidenceCombiner and the research path of the FilterEngine.

Scoring:
    quality    = Σ(weight × hits) / Σ(hits)
                 + 0.05 per distinct category present          (cap 1.0)

    confidence = min(0.8, 0.15 × indicators)
                 + 0.1 × (academic + authority hits)
                 + min(0.1, len(text) / 1000)
                 + 0.1 if two or more categories are present   (cap 1.0)

    has_research = indicators > 0 or confidence > 0.3

Category Weights (defaults):
    academic    1.0   peer-reviewed / empirical-study language
    authority   0.9   expert-consensus language
    industry    0.8   research institutions, UX-research terms
    platform    0.7   research-tool language ("perplexity research", ...)
    competitive 0.6   market / trend analysis
"""

import logging
from typing import Dict, List, Optional

from annotation_core.schemas.annotation import ResearchAnalysis
from annotation_core.services.phrase_tables import PhraseTables, get_phrase_tables

logger = logging.getLogger(__name__)

CATEGORY_DIVERSITY_BONUS = 0.05
INDICATOR_CONFIDENCE_STEP = 0.15
INDICATOR_CONFIDENCE_CAP = 0.8
HIGH_VALUE_CATEGORY_BONUS = 0.1
LENGTH_BONUS_CAP = 0.1
LENGTH_BONUS_DIVISOR = 1000.0
MULTI_CATEGORY_BONUS = 0.1
HAS_RESEARCH_CONFIDENCE = 0.3

# Categories whose hits earn the extra confidence bonus.
HIGH_VALUE_CATEGORIES = ("academic", "authority")


class ResearchDetector:
    """Scans text for research indicators and estimates citation count."""

    def __init__(self, tables: Optional[PhraseTables] = None):
        self.tables = tables or get_phrase_tables()
        self._citation_patterns = self.tables.compiled_citation_patterns()

    def analyze(self, text: str) -> ResearchAnalysis:
        lowered = text.lower()

        indicators: List[str] = []
        counts: Dict[str, int] = {}
        for name, category in self.tables.research_categories.items():
            hits = [phrase for phrase in category.phrases if phrase in lowered]
            counts[name] = len(hits)
            indicators.extend(hits)

        quality = self.quality_score(counts)
        confidence = self.research_confidence(counts, len(indicators), len(lowered))
        citations = self.estimate_citation_count(lowered)
        has_research = len(indicators) > 0 or confidence > HAS_RESEARCH_CONFIDENCE

        if has_research:
            logger.debug(
                "Research content detected: %d indicators, quality=%.2f, "
                "confidence=%.2f, citations=%d",
                len(indicators),
                quality,
                confidence,
                citations,
            )

        return ResearchAnalysis(
            has_research=has_research,
            research_confidence=confidence,
            research_indicators=indicators,
            research_quality_score=quality,
            citation_count=citations,
            category_counts={name: n for name, n in counts.items() if n},
        )

    def quality_score(self, counts: Dict[str, int]) -> float:
        total = sum(counts.values())
        if total == 0:
            return 0.0

        weighted = sum(
            self.tables.research_categories[name].weight * n
            for name, n in counts.items()
        )
        distinct = sum(1 for n in counts.values() if n > 0)
        return min(1.0, weighted / total + distinct * CATEGORY_DIVERSITY_BONUS)

    @staticmethod
    def research_confidence(
        counts: Dict[str, int], indicator_count: int, text_length: int
    ) -> float:
        if indicator_count == 0:
            return 0.0

        base = min(INDICATOR_CONFIDENCE_CAP, indicator_count * INDICATOR_CONFIDENCE_STEP)
        high_value = sum(counts.get(name, 0) for name in HIGH_VALUE_CATEGORIES)
        length_bonus = min(LENGTH_BONUS_CAP, text_length / LENGTH_BONUS_DIVISOR)
        distinct = sum(1 for n in counts.values() if n > 0)
        diversity = MULTI_CATEGORY_BONUS if distinct > 1 else 0.0

        return min(1.0, base + high_value * HIGH_VALUE_CATEGORY_BONUS + length_bonus + diversity)

    def estimate_citation_count(self, text: str) -> int:
        return sum(len(pattern.findall(text)) for pattern in self._citation_patterns)
