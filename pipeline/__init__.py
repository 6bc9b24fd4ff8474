from .evidence_pipeline import (
    EvidenceBundle,
    EvidencePipeline,
    EvidenceReport,
    build_evidence_report,
    load_config,
)

__all__ = [
    "EvidenceBundle",
    "EvidencePipeline",
    "EvidenceReport",
    "build_evidence_report",
    "load_config",
]
