"""
media_forensics — Per-medium tamper analyzers.

Each analyzer is a stateless class with an ``analyze(buffer, metadata)``
method returning a frozen result record; the records share the
``tampering_score`` / ``is_tampered`` surface consumed by :mod:`fusion`.
"""

from typing import Union

from .audio import AudioAnalyzer, AudioMetadata, AudioResult
from .buffers import EvidenceRejected, Medium
from .document import DocumentAnalyzer, DocumentResult, PdfMetadata, SignatureValidity
from .image import ImageAnalyzer, ImageResult
from .video import VideoAnalyzer, VideoMetadata, VideoResult

MediumResult = Union[ImageResult, VideoResult, AudioResult, DocumentResult]

__all__ = [
    "AudioAnalyzer",
    "AudioMetadata",
    "AudioResult",
    "DocumentAnalyzer",
    "DocumentResult",
    "EvidenceRejected",
    "ImageAnalyzer",
    "ImageResult",
    "Medium",
    "MediumResult",
    "PdfMetadata",
    "SignatureValidity",
    "VideoAnalyzer",
    "VideoMetadata",
    "VideoResult",
]
