"""
FusionEngine: combines per-medium results into one manipulation verdict.

=== Weighted fusion ===

Only image, video and audio take part in the fused score; the document
score has no cross-modal counterpart and is reported on its own.  A
modality is *active* when its result was supplied and its weight is
positive.  Weights are renormalised over the active subset:

    fused = Σ w_m · score_m / Σ w_m

Several still images may be supplied; their mean score is the image
score and each tampered one gets its own finding.

=== Cross-modal consistency ===

With two or more active scores the population variance is computed.
If it exceeds 0.1, every modality scoring above ``mean + 0.2`` is
reported as a discrepancy.  Two combinations are always checked when
both sides are active:

    video > 0.5 and audio < 0.2   → possible video-only edit
    audio > 0.5 and video < 0.2   → possible audio replacement

    consistency = 1 − min(√variance, 0.5) · 2

Any discrepancy adds 0.1 to the fused score (capped at 1.0): modalities
that disagree are themselves evidence of tampering.

=== Classification ===

    VERY_HIGH  fused > 0.8 or ≥ 2 CRITICAL findings
    HIGH       fused > 0.6 or ≥ 1 CRITICAL or ≥ 3 HIGH
    MEDIUM     fused > 0.4 or ≥ 1 HIGH
    LOW        fused > 0.2 or any finding
    VERY_LOW   otherwise

Recommendations are a fixed lookup from the classification and from the
modalities that produced manipulation findings.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from media_forensics import AudioResult, DocumentResult, ImageResult, Medium, VideoResult
from media_forensics import MediumResult

from .findings import (
    AnalyzerFinding,
    FindingCategory,
    ManipulationLikelihood,
    Severity,
)

logger = logging.getLogger(__name__)

FUSED_MEDIA = (Medium.IMAGE, Medium.VIDEO, Medium.AUDIO)

VARIANCE_THRESHOLD = 0.1
OUTLIER_MARGIN = 0.2
INCONSISTENCY_BOOST = 0.1
COMBINATION_HIGH = 0.5
COMBINATION_LOW = 0.2

_OUTLIER_TEXT = {
    Medium.IMAGE: "Image manipulation indicators significantly higher than other modalities",
    Medium.VIDEO: "Video manipulation indicators significantly higher than other modalities",
    Medium.AUDIO: "Voice manipulation indicators significantly higher than other modalities",
}
VIDEO_ONLY_EDIT = "Video shows manipulation but audio appears authentic - possible video-only edit"
AUDIO_REPLACEMENT = "Audio shows manipulation but video appears authentic - possible audio replacement"

_LIKELIHOOD_RECOMMENDATIONS = {
    ManipulationLikelihood.VERY_HIGH: (
        "Exercise extreme caution - high probability of manipulation detected",
        "Seek additional verification from independent sources",
        "Consider expert forensic analysis before using as evidence",
    ),
    ManipulationLikelihood.MEDIUM: (
        "Some manipulation indicators detected - verify authenticity",
        "Cross-reference with original sources if available",
    ),
    ManipulationLikelihood.LOW: (
        "No significant manipulation indicators detected",
        "Standard verification procedures recommended",
    ),
}
_LIKELIHOOD_RECOMMENDATIONS[ManipulationLikelihood.HIGH] = _LIKELIHOOD_RECOMMENDATIONS[ManipulationLikelihood.VERY_HIGH]
_LIKELIHOOD_RECOMMENDATIONS[ManipulationLikelihood.VERY_LOW] = _LIKELIHOOD_RECOMMENDATIONS[ManipulationLikelihood.LOW]

_CATEGORY_RECOMMENDATIONS = (
    (FindingCategory.IMAGE_MANIPULATION, "Image-specific: Request original RAW files if available"),
    (FindingCategory.VIDEO_MANIPULATION, "Video-specific: Compare with other recordings of same event"),
    (FindingCategory.AUDIO_MANIPULATION, "Audio-specific: Verify speaker identity through other means"),
)
DOCUMENT_RECOMMENDATION = "Document-specific: Obtain the original file from its issuer and compare revisions"

ResultsInput = Union[
    Mapping[Medium, Union[MediumResult, Sequence[ImageResult]]], Iterable[MediumResult], None,
]


@dataclass(frozen=True)
class CrossModalConsistency:
    consistency_score: float = 1.0
    discrepancies: Tuple[str, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies


@dataclass(frozen=True)
class FusionResult:
    """The fused verdict over all supplied media."""

    overall_score: float
    per_medium_scores: Dict[Medium, float]
    cross_modal_consistency: CrossModalConsistency
    manipulation_likelihood: ManipulationLikelihood
    findings: Tuple[AnalyzerFinding, ...]
    recommendations: Tuple[str, ...]
    document_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": round(self.overall_score, 4),
            "per_medium_scores": {
                m.value: round(s, 4) for m, s in self.per_medium_scores.items()
            },
            "document_score": (
                round(self.document_score, 4) if self.document_score is not None else None
            ),
            "cross_modal_consistency": {
                "is_consistent": self.cross_modal_consistency.is_consistent,
                "consistency_score": round(self.cross_modal_consistency.consistency_score, 4),
                "discrepancies": list(self.cross_modal_consistency.discrepancies),
            },
            "manipulation_likelihood": self.manipulation_likelihood.value,
            "severity_counts": dict(Counter(f.severity.value for f in self.findings)),
            "findings": [f.to_dict() for f in self.findings],
            "recommendations": list(self.recommendations),
        }


# ---------------------------------------------------------------------------
# Detail builders
# ---------------------------------------------------------------------------

def _image_details(result: ImageResult) -> List[str]:
    details = []
    if result.ela.suspicious_region_count > 0:
        details.append(f"{result.ela.suspicious_region_count} suspicious regions detected via ELA")
    if not result.noise.is_consistent:
        details.append("Inconsistent noise patterns detected")
    if result.exif is not None and result.exif.was_edited:
        details.append("EXIF metadata indicates editing software was used")
    return details


def _video_details(result: VideoResult) -> List[str]:
    details = []
    if not result.gop.is_structure_consistent:
        details.append("GOP structure inconsistencies detected")
    if result.temporal_consistency < 0.8:
        details.append("Temporal inconsistencies between frames")
    if result.re_encoding_score > 0.5:
        details.append("Signs of re-encoding detected")
    return details


def _audio_details(result: AudioResult) -> List[str]:
    details = []
    if result.spectral.flatness > 0.8:
        details.append("Unusually flat spectrum - possible synthetic audio")
    if not result.voice_segments:
        details.append("No clear voice activity detected")
    return details


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class FusionEngine:
    """
    Fuses per-medium tampering scores into a FusionResult.

    Args:
        weights: default per-medium weights (missing media default to 1.0).
        variance_threshold: variance above which outlier modalities are
            reported.
        outlier_margin: distance above the mean that marks an outlier.
        inconsistency_boost: added to the fused score on any discrepancy.
    """

    def __init__(
        self,
        weights: Optional[Mapping[Union[Medium, str], float]] = None,
        variance_threshold: float = VARIANCE_THRESHOLD,
        outlier_margin: float = OUTLIER_MARGIN,
        inconsistency_boost: float = INCONSISTENCY_BOOST,
    ):
        self.weights = self._normalise_weights(weights)
        self.variance_threshold = float(variance_threshold)
        self.outlier_margin = float(outlier_margin)
        self.inconsistency_boost = float(inconsistency_boost)

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "FusionEngine":
        cfg = cfg or {}
        return cls(
            weights=cfg.get("weights"),
            variance_threshold=cfg.get("variance_threshold", VARIANCE_THRESHOLD),
            outlier_margin=cfg.get("outlier_margin", OUTLIER_MARGIN),
            inconsistency_boost=cfg.get("inconsistency_boost", INCONSISTENCY_BOOST),
        )

    @staticmethod
    def _normalise_weights(
        weights: Optional[Mapping[Union[Medium, str], float]],
    ) -> Dict[Medium, float]:
        out: Dict[Medium, float] = {}
        for key, value in (weights or {}).items():
            medium = key if isinstance(key, Medium) else Medium(str(key).upper())
            w = float(value)
            if w < 0:
                raise ValueError(f"Weight for {medium.value} must be >= 0, got {w}")
            out[medium] = w
        return out

    @staticmethod
    def _collect(results: ResultsInput) -> Dict[Medium, Tuple[MediumResult, ...]]:
        """Group results by medium; only images may appear more than once."""
        if results is None:
            return {}
        items: List[Tuple[Medium, MediumResult]] = []
        if isinstance(results, Mapping):
            for medium, value in results.items():
                medium = medium if isinstance(medium, Medium) else Medium(str(medium).upper())
                if isinstance(value, (list, tuple)):
                    items.extend((medium, r) for r in value)
                else:
                    items.append((medium, value))
        else:
            items = [(r.medium, r) for r in results]

        collected: Dict[Medium, List[MediumResult]] = {}
        for medium, result in items:
            if result is None:
                continue
            if result.medium is not medium:
                raise ValueError(f"{type(result).__name__} supplied under {medium.value}")
            if medium in collected and medium is not Medium.IMAGE:
                raise ValueError(f"Duplicate {medium.value} result")
            collected.setdefault(medium, []).append(result)
        return {m: tuple(rs) for m, rs in collected.items()}

    # ------------------------------------------------------------------

    def fuse(
        self,
        results: ResultsInput,
        weights: Optional[Mapping[Union[Medium, str], float]] = None,
    ) -> FusionResult:
        """Fuse any subset of medium results.

        Parameters
        ----------
        results : mapping or iterable
            ``{Medium: result}`` or a sequence of result records.  Images
            may be given as several results (a list under ``IMAGE``, or
            repeated in the sequence) and are averaged; every other medium
            takes at most one result.
        weights : mapping, optional
            Per-call weights overriding the engine defaults.

        Raises
        ------
        ValueError
            On a negative weight or a result filed under the wrong medium.
        """
        collected = self._collect(results)
        w = dict(self.weights)
        w.update(self._normalise_weights(weights))

        scores: Dict[Medium, float] = {
            m: float(np.mean([r.tampering_score for r in collected[m]]))
            for m in FUSED_MEDIA if m in collected
        }
        active = {m: s for m, s in scores.items() if w.get(m, 1.0) > 0}

        total_w = sum(w.get(m, 1.0) for m in active)
        fused = sum(w.get(m, 1.0) * s for m, s in active.items()) / total_w if total_w > 0 else 0.0

        consistency = self._cross_modal(active)
        if not consistency.is_consistent:
            fused = min(fused + self.inconsistency_boost, 1.0)
        fused = float(min(1.0, max(0.0, fused)))

        findings = self._findings(collected, consistency)
        likelihood = self._classify(fused, findings)

        document = collected.get(Medium.DOCUMENT, (None,))[0]
        recommendations = self._recommendations(likelihood, findings, document)

        logger.info(
            "Fusion: %d media, score=%.3f, likelihood=%s, %d findings",
            len(active), fused, likelihood.value, len(findings),
        )
        return FusionResult(
            overall_score=fused,
            per_medium_scores=scores,
            cross_modal_consistency=consistency,
            manipulation_likelihood=likelihood,
            findings=findings,
            recommendations=recommendations,
            document_score=float(document.tampering_score) if document is not None else None,
        )

    def _cross_modal(self, active: Dict[Medium, float]) -> CrossModalConsistency:
        if len(active) < 2:
            return CrossModalConsistency()

        values = np.array(list(active.values()), dtype=np.float64)
        mean = float(values.mean())
        variance = float(((values - mean) ** 2).mean())

        discrepancies: List[str] = []
        if variance > self.variance_threshold:
            for medium in FUSED_MEDIA:
                if medium in active and active[medium] > mean + self.outlier_margin:
                    discrepancies.append(_OUTLIER_TEXT[medium])

        if Medium.VIDEO in active and Medium.AUDIO in active:
            video, audio = active[Medium.VIDEO], active[Medium.AUDIO]
            if video > COMBINATION_HIGH and audio < COMBINATION_LOW:
                discrepancies.append(VIDEO_ONLY_EDIT)
            if audio > COMBINATION_HIGH and video < COMBINATION_LOW:
                discrepancies.append(AUDIO_REPLACEMENT)

        score = 1.0 - min(float(np.sqrt(variance)), 0.5) * 2
        return CrossModalConsistency(consistency_score=score, discrepancies=tuple(discrepancies))

    @staticmethod
    def _findings(
        collected: Dict[Medium, Tuple[MediumResult, ...]], consistency: CrossModalConsistency,
    ) -> Tuple[AnalyzerFinding, ...]:
        findings: List[AnalyzerFinding] = []

        images = collected.get(Medium.IMAGE, ())
        for n, image in enumerate(images, start=1):
            if image.is_tampered:
                label = f"Image {n}" if len(images) > 1 else "Image"
                findings.append(AnalyzerFinding(
                    category=FindingCategory.IMAGE_MANIPULATION,
                    confidence=image.tampering_score,
                    description=f"{label} shows signs of manipulation",
                    supporting_details=tuple(_image_details(image)),
                ))

        video = collected.get(Medium.VIDEO, (None,))[0]
        if video is not None:
            if video.is_tampered:
                findings.append(AnalyzerFinding(
                    category=FindingCategory.VIDEO_MANIPULATION,
                    confidence=video.tampering_score,
                    description="Video shows signs of manipulation or editing",
                    supporting_details=tuple(_video_details(video)),
                ))
            for anomaly in video.anomalies:
                findings.append(AnalyzerFinding(
                    category=FindingCategory.VIDEO_ANOMALY,
                    confidence=anomaly.confidence,
                    description=anomaly.description,
                    supporting_details=(
                        "Frames: " + ", ".join(str(i) for i in anomaly.frame_indices),
                    ),
                ))

        audio = collected.get(Medium.AUDIO, (None,))[0]
        if audio is not None and audio.is_tampered:
            findings.append(AnalyzerFinding(
                category=FindingCategory.AUDIO_MANIPULATION,
                confidence=audio.tampering_score,
                description="Audio shows signs of manipulation or synthesis",
                supporting_details=tuple(_audio_details(audio)),
            ))

        for text in consistency.discrepancies:
            findings.append(AnalyzerFinding(
                category=FindingCategory.CROSS_MODAL_INCONSISTENCY,
                confidence=1.0 - consistency.consistency_score,
                description=text,
            ))

        # sorted() is stable, so equal confidences keep generation order
        return tuple(sorted(findings, key=lambda f: -f.confidence))

    @staticmethod
    def _classify(score: float, findings: Tuple[AnalyzerFinding, ...]) -> ManipulationLikelihood:
        critical = sum(1 for f in findings if f.severity is Severity.CRITICAL)
        high = sum(1 for f in findings if f.severity is Severity.HIGH)
        if score > 0.8 or critical >= 2:
            return ManipulationLikelihood.VERY_HIGH
        if score > 0.6 or critical >= 1 or high >= 3:
            return ManipulationLikelihood.HIGH
        if score > 0.4 or high >= 1:
            return ManipulationLikelihood.MEDIUM
        if score > 0.2 or findings:
            return ManipulationLikelihood.LOW
        return ManipulationLikelihood.VERY_LOW

    @staticmethod
    def _recommendations(
        likelihood: ManipulationLikelihood,
        findings: Tuple[AnalyzerFinding, ...],
        document: Optional[DocumentResult],
    ) -> Tuple[str, ...]:
        recs = list(_LIKELIHOOD_RECOMMENDATIONS[likelihood])
        categories = {f.category for f in findings}
        for category, text in _CATEGORY_RECOMMENDATIONS:
            if category in categories:
                recs.append(text)
        if document is not None and document.is_tampered:
            recs.append(DOCUMENT_RECOMMENDATION)
        return tuple(recs)
