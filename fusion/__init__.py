from .engine import CrossModalConsistency, FusionEngine, FusionResult
from .findings import (
    AnalyzerFinding,
    FindingCategory,
    ManipulationLikelihood,
    Severity,
    severity_for,
)

__all__ = [
    "AnalyzerFinding",
    "CrossModalConsistency",
    "FindingCategory",
    "FusionEngine",
    "FusionResult",
    "ManipulationLikelihood",
    "Severity",
    "severity_for",
]
