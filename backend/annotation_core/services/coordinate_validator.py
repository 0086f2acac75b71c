"""
Annotation Core - Coordinate Validator
=======================================

What:  Range and placeholder-pattern sanity check on an annotation's (x, y).
How:   Two table-driven checks run in order; the first one that fires decides.
Who:   First stage of the per-annotation pipeline in ProcessingOrchestrator.

Verdict table:
    ┌──────────────────────────────┬──────────┬────────────┬──────────┐
    │ Condition                    │ evidence │ confidence │ is_valid │
    ├──────────────────────────────┼──────────┼────────────┼──────────┤
    │ x or y outside [0, 100]      │ none     │ 0.0        │ False    │
    │ near a suspicious point      │ weak     │ 0.3        │ False    │
    │ otherwise                    │ moderate │ 0.7        │ True     │
    └──────────────────────────────┴──────────┴────────────┴──────────┘

The validator returns a verdict only. It has no code path that writes to
the annotation, and out-of-range coordinates are reported, never clamped.
"""

import math
from typing import Optional

from annotation_core.schemas.annotation import (
    Annotation,
    EvidenceLevel,
    StageVerdict,
    ValidationIssue,
    ValidationMethod,
)
from annotation_core.services.phrase_tables import (
    PhraseTables,
    SuspiciousPoint,
    get_phrase_tables,
)

COORDINATE_MIN = 0.0
COORDINATE_MAX = 100.0

OUT_OF_RANGE_CONFIDENCE = 0.0
SUSPICIOUS_CONFIDENCE = 0.3
IN_RANGE_CONFIDENCE = 0.7


class CoordinateValidator:
    """Checks coordinates against the valid range and the suspicious-point table."""

    def __init__(self, tables: Optional[PhraseTables] = None):
        self.tables = tables or get_phrase_tables()

    def validate(self, annotation: Annotation) -> StageVerdict:
        x, y = annotation.x, annotation.y

        violation = self._range_violation(x, y)
        if violation:
            return StageVerdict(
                is_valid=False,
                confidence=OUT_OF_RANGE_CONFIDENCE,
                evidence_level=EvidenceLevel.NONE,
                reasoning=(
                    f"Coordinates ({x:g}, {y:g}) are outside valid range "
                    f"({COORDINATE_MIN:g}-{COORDINATE_MAX:g}): {violation}"
                ),
                validation_method=ValidationMethod.COORDINATE_RANGE,
                issues=[ValidationIssue.COORDINATE_OUT_OF_RANGE],
            )

        point = self._matching_suspicious_point(x, y)
        if point is not None:
            return StageVerdict(
                is_valid=False,
                confidence=SUSPICIOUS_CONFIDENCE,
                evidence_level=EvidenceLevel.WEAK,
                reasoning=(
                    f"Coordinates ({x:g}, {y:g}) match suspicious placeholder pattern "
                    f"({point.x:g}, {point.y:g}) ±{point.tolerance:g}"
                ),
                validation_method=ValidationMethod.COORDINATE_RANGE,
                issues=[ValidationIssue.SUSPICIOUS_COORDINATE_PATTERN],
            )

        return StageVerdict(
            is_valid=True,
            confidence=IN_RANGE_CONFIDENCE,
            evidence_level=EvidenceLevel.MODERATE,
            reasoning="Coordinates within valid range",
            validation_method=ValidationMethod.COORDINATE_RANGE,
        )

    @staticmethod
    def _range_violation(x: float, y: float) -> Optional[str]:
        """Names every violated bound, or returns None when both axes are in range."""
        problems = []
        for axis, value in (("x", x), ("y", y)):
            if not math.isfinite(value):
                problems.append(f"{axis} is not a finite number")
            elif value < COORDINATE_MIN:
                problems.append(f"{axis} < {COORDINATE_MIN:g}")
            elif value > COORDINATE_MAX:
                problems.append(f"{axis} > {COORDINATE_MAX:g}")
        return ", ".join(problems) or None

    def _matching_suspicious_point(self, x: float, y: float) -> Optional[SuspiciousPoint]:
        for point in self.tables.suspicious_points:
            if abs(x - point.x) <= point.tolerance and abs(y - point.y) <= point.tolerance:
                return point
        return None
