from .footer import WATERMARK, forensic_footer, verification_report
from .sealer import (
    ALGORITHM_VERSION,
    DeviceDescriptor,
    EvidenceMetadata,
    IntegritySeal,
    IntegritySealer,
    VerificationResult,
)

__all__ = [
    "ALGORITHM_VERSION",
    "DeviceDescriptor",
    "EvidenceMetadata",
    "IntegritySeal",
    "IntegritySealer",
    "VerificationResult",
    "WATERMARK",
    "forensic_footer",
    "verification_report",
]
