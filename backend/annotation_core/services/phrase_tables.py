"""
Annotation Core - Phrase Tables
================================

What:  The vocabularies and pattern tables behind every rule-based classifier
       (evidence tiers, specificity terms, research categories, citation
       regexes, suspicious coordinate points).
How:   A single pydantic model with built-in defaults. A JSON file named by
       PHRASE_TABLES_PATH may override any subset of the top-level keys;
       omitted keys keep their defaults.
Who:   Passed into CoordinateValidator, EvidenceClassifier,
       ContentSpecificityAnalyzer and ResearchDetector at construction time.

The classifiers contain no phrase literals. Tuning a vocabulary means
editing data, not control flow.

Override file example:
    {
        "weakEvidence": ["consider adding", "you could"],
        "researchCategories": {
            "academic": {"weight": 1.0, "phrases": ["research shows"]}
        }
    }
"""

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, ValidationError, field_validator

from annotation_core.config import settings
from annotation_core.exceptions import ConfigurationError
from annotation_core.schemas.annotation import CamelModel

logger = logging.getLogger(__name__)


class SuspiciousPoint(CamelModel):
    """A default/lazy coordinate that models tend to emit as a placeholder."""
    x: float
    y: float
    tolerance: float = Field(ge=0)


class ResearchCategory(CamelModel):
    """Weighted phrase list for one kind of research backing."""
    weight: float = Field(ge=0.0, le=1.0)
    phrases: List[str]


class PhraseTables(CamelModel):
    # ── Coordinate patterns ───────────────────────────────────────────────
    suspicious_points: List[SuspiciousPoint]

    # ── Evidence tiers (direct observation → generic hedge) ──────────────
    strong_evidence: List[str]
    moderate_evidence: List[str]
    weak_evidence: List[str]

    # ── Content specificity ───────────────────────────────────────────────
    specific_terms: List[str]
    generic_terms: List[str]

    # ── Research detection ────────────────────────────────────────────────
    research_categories: Dict[str, ResearchCategory]
    citation_patterns: List[str]

    @field_validator(
        "strong_evidence",
        "moderate_evidence",
        "weak_evidence",
        "specific_terms",
        "generic_terms",
    )
    @classmethod
    def lowercase_phrases(cls, v: List[str]) -> List[str]:
        """Matching runs on lower-cased text, so the tables must be lower-case too."""
        return [phrase.lower() for phrase in v if phrase.strip()]

    @field_validator("research_categories")
    @classmethod
    def lowercase_research_phrases(
        cls, v: Dict[str, ResearchCategory]
    ) -> Dict[str, ResearchCategory]:
        for category in v.values():
            category.phrases = [p.lower() for p in category.phrases if p.strip()]
        return v

    @field_validator("citation_patterns")
    @classmethod
    def patterns_compile(cls, v: List[str]) -> List[str]:
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid citation pattern {pattern!r}: {e}")
        return v

    def compiled_citation_patterns(self) -> List["re.Pattern[str]"]:
        return [re.compile(p, re.IGNORECASE) for p in self.citation_patterns]


DEFAULT_PHRASE_TABLES = PhraseTables(
    suspicious_points=[
        SuspiciousPoint(x=50, y=50, tolerance=3),   # center
        SuspiciousPoint(x=0, y=0, tolerance=1),     # origin
        SuspiciousPoint(x=100, y=100, tolerance=1), # far corner
        SuspiciousPoint(x=25, y=25, tolerance=2),   # quarter point
        SuspiciousPoint(x=75, y=75, tolerance=2),   # three-quarter point
    ],
    strong_evidence=[
        "i can see", "visible at", "located at", "positioned at",
        "displays", "shows the", "contains text", "has color",
        "image shows", "screenshot shows", "at coordinates",
    ],
    moderate_evidence=[
        "the button", "the link", "the text", "the image",
        "top left", "bottom right", "center of", "corner",
        "navigation", "header", "footer", "sidebar",
    ],
    weak_evidence=[
        "consider adding", "should include", "would benefit",
        "might want to", "could improve", "recommend",
    ],
    specific_terms=[
        "px", "pixel", "color:", "#", "rgb", "font-size", "margin", "padding",
        "contrast", "accessibility", "wcag", "alt text", "aria-label",
        "placeholder", "hover", "focus", "active", "disabled",
        "left-aligned", "right-aligned", "centered", "justified",
    ],
    generic_terms=[
        "good practice", "best practice", "should consider", "might want",
        "could improve", "would help", "it is important", "users expect",
        "generally", "usually", "often", "typically", "commonly",
    ],
    research_categories={
        "academic": ResearchCategory(weight=1.0, phrases=[
            "research shows", "studies indicate", "according to research", "data suggests",
            "peer-reviewed", "academic research", "scientific study", "empirical evidence",
            "meta-analysis", "longitudinal study", "controlled study", "research foundation",
            "evidence-based", "validated by research", "research demonstrates", "study findings",
            "research-backed recommendation", "evidence supports", "research validates",
        ]),
        "authority": ResearchCategory(weight=0.9, phrases=[
            "according to experts", "research consensus", "established practice",
            "proven approach", "tested methodology", "verified approach",
            "authoritative source", "credible research", "reliable data",
            "trusted source", "established research", "documented evidence",
        ]),
        "industry": ResearchCategory(weight=0.8, phrases=[
            "industry standard", "best practice", "nielsen research", "nielsen norman",
            "baymard institute", "ux research", "user research", "usability study",
            "user testing", "a/b testing", "conversion research", "behavioral research",
            "design research", "industry benchmark", "industry study", "market research",
            "industry data", "expert analysis", "professional recommendation",
            "industry expert",
        ]),
        "platform": ResearchCategory(weight=0.7, phrases=[
            "perplexity research", "perplexity analysis", "perplexity data",
            "real-time research", "current research", "latest research",
            "up-to-date research", "recent studies", "current data",
            "validated information", "verified data", "cross-referenced",
        ]),
        "competitive": ResearchCategory(weight=0.6, phrases=[
            "trend analysis", "market trends", "industry trends", "emerging patterns",
            "competitor analysis", "competitive analysis", "competitive intelligence",
            "market intelligence", "industry insights", "market data",
            "competitive benchmarking", "industry comparison", "market leader",
            "industry practice",
        ]),
    },
    citation_patterns=[
        r"\([^()]*\b(?:19|20)\d{2}[a-z]?\)",  # (2023), (Smith, 2023), (Industry Study, 2022)
        r"\[\d+\]",                           # [1], [15]
        r"source\s*:",
        r"according\s+to\s+",
        r"research\s+by\s+",
        r"study\s+from\s+",
    ],
)


def load_phrase_tables(path: Optional[str] = None) -> PhraseTables:
    """
    Build phrase tables from the defaults plus an optional JSON override file.

    Raises:
        ConfigurationError: The file is missing, is not JSON, or fails validation.
    """
    if not path:
        return DEFAULT_PHRASE_TABLES

    override_path = Path(path)
    try:
        overrides = json.loads(override_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            message=f"Could not read phrase tables from {override_path.name}",
            context={"path": str(override_path), "error": str(e)},
        )
    if not isinstance(overrides, dict):
        raise ConfigurationError(
            message="Phrase table override file must contain a JSON object",
            context={"path": str(override_path)},
        )

    merged = DEFAULT_PHRASE_TABLES.model_dump(by_alias=True)
    merged.update(overrides)
    try:
        tables = PhraseTables.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(
            message="Phrase table override failed validation",
            context={"path": str(override_path), "errors": e.error_count()},
        )

    logger.info(
        "Loaded phrase table overrides from %s (keys: %s)",
        override_path.name,
        ", ".join(sorted(overrides)),
    )
    return tables


@lru_cache(maxsize=1)
def get_phrase_tables() -> PhraseTables:
    """Process-wide tables resolved from settings.phrase_tables_path."""
    return load_phrase_tables(settings.phrase_tables_path)
