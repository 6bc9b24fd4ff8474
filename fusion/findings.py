"""
Finding records shared by the fusion engine and its consumers.

A finding's severity is never chosen by the code that raises it: it is
derived from the finding's confidence with fixed thresholds, so two
findings with the same confidence always carry the same severity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class FindingCategory(str, Enum):
    IMAGE_MANIPULATION = "IMAGE_MANIPULATION"
    VIDEO_MANIPULATION = "VIDEO_MANIPULATION"
    VIDEO_ANOMALY = "VIDEO_ANOMALY"
    AUDIO_MANIPULATION = "AUDIO_MANIPULATION"
    CROSS_MODAL_INCONSISTENCY = "CROSS_MODAL_INCONSISTENCY"


class ManipulationLikelihood(str, Enum):
    VERY_HIGH = "VERY_HIGH"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    VERY_LOW = "VERY_LOW"


def severity_for(confidence: float) -> Severity:
    if confidence > 0.8:
        return Severity.CRITICAL
    if confidence > 0.6:
        return Severity.HIGH
    if confidence > 0.4:
        return Severity.MEDIUM
    return Severity.LOW


@dataclass(frozen=True)
class AnalyzerFinding:
    """One observation supporting the fused verdict."""

    category: FindingCategory
    confidence: float
    description: str
    supporting_details: Tuple[str, ...] = ()
    severity: Severity = field(init=False)

    def __post_init__(self):
        conf = float(min(1.0, max(0.0, self.confidence)))
        object.__setattr__(self, "confidence", conf)
        object.__setattr__(self, "supporting_details", tuple(self.supporting_details))
        object.__setattr__(self, "severity", severity_for(conf))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "confidence": round(self.confidence, 4),
            "description": self.description,
            "supporting_details": list(self.supporting_details),
        }
