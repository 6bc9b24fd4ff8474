"""
media_forensics.image — Still-image tamper analysis.

Three independent signals are combined into one tampering score:

1. **Block variance (ELA-style)** — The luminance plane is split into
   non-overlapping 8×8 blocks.  Blocks whose variance exceeds twice the
   noise threshold are reported as anomalies; an edited region usually
   carries a local variance signature different from its surroundings.
2. **Global noise consistency** — The mean absolute 4-neighbour
   Laplacian residual over interior pixels.  A high residual means the
   sensor-noise field has been disturbed.
3. **EXIF flags** — Editing software named in the ``Software`` tag and
   missing capture timestamp / camera make.

The EXIF map is supplied by the decoding collaborator (see
:mod:`media_forensics.loaders`); this module never touches files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .buffers import Medium, as_pixel_grid
from .utils import clamp01, tile_view, to_luminance

logger = logging.getLogger(__name__)

NOISE_THRESHOLD = 15.0
BLOCK_SIZE = 8
# Anomaly confidence saturates at this block variance.
CONFIDENCE_VARIANCE = 50.0
EDITING_SOFTWARE = ("Photoshop", "GIMP", "Paint", "Editor", "Pixlr")

ANOMALY_MIN_COUNT = 5
ANOMALY_SATURATION = 20
WEIGHT_ANOMALIES = 0.3
WEIGHT_NOISE = 0.3
WEIGHT_EDITED = 0.4
WEIGHT_MISSING_EXIF = 0.2


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockAnomaly:
    """One 8×8 block whose variance exceeded the anomaly threshold."""

    x: int
    y: int
    width: int
    height: int
    variance: float
    confidence: float


@dataclass(frozen=True)
class ElaResult:
    average_variance: float = 0.0
    anomalies: Tuple[BlockAnomaly, ...] = ()

    @property
    def suspicious_region_count(self) -> int:
        return len(self.anomalies)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_variance": round(self.average_variance, 4),
            "suspicious_region_count": self.suspicious_region_count,
            "anomalies": [
                {
                    "x": a.x, "y": a.y, "width": a.width, "height": a.height,
                    "variance": round(a.variance, 4),
                    "confidence": round(a.confidence, 4),
                }
                for a in self.anomalies
            ],
        }


@dataclass(frozen=True)
class NoiseResult:
    average_noise: float = 0.0
    is_consistent: bool = True

    @property
    def suspicious_level(self) -> str:
        return "LOW" if self.is_consistent else "HIGH"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_noise": round(self.average_noise, 4),
            "is_consistent": self.is_consistent,
            "suspicious_level": self.suspicious_level,
        }


@dataclass(frozen=True)
class ExifData:
    """EXIF facts relevant to tampering, plus informational anomalies.

    ``anomalies`` lists human-readable observations (missing timestamp,
    partial GPS, mismatching capture dates, ...).  They are reported
    alongside the result but do not move the score.
    """

    date_time: Optional[str] = None
    date_time_original: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    software: Optional[str] = None
    gps_latitude: Optional[str] = None
    gps_longitude: Optional[str] = None
    was_edited: bool = False
    anomalies: Tuple[str, ...] = ()

    @property
    def has_timestamp(self) -> bool:
        return bool(self.date_time or self.date_time_original)

    @property
    def missing_timestamp_and_make(self) -> bool:
        return not self.has_timestamp and not self.make

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date_time": self.date_time,
            "date_time_original": self.date_time_original,
            "make": self.make,
            "model": self.model,
            "software": self.software,
            "gps_latitude": self.gps_latitude,
            "gps_longitude": self.gps_longitude,
            "was_edited": self.was_edited,
            "missing_timestamp_and_make": self.missing_timestamp_and_make,
            "anomalies": list(self.anomalies),
        }


@dataclass(frozen=True)
class ImageResult:
    medium: ClassVar[Medium] = Medium.IMAGE

    tampering_score: float = 0.0
    ela: ElaResult = field(default_factory=ElaResult)
    noise: NoiseResult = field(default_factory=NoiseResult)
    exif: Optional[ExifData] = None

    @property
    def is_tampered(self) -> bool:
        return self.tampering_score > 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medium": self.medium.value,
            "tampering_score": round(self.tampering_score, 4),
            "is_tampered": self.is_tampered,
            "ela": self.ela.to_dict(),
            "noise": self.noise.to_dict(),
            "exif": self.exif.to_dict() if self.exif is not None else None,
        }


# ---------------------------------------------------------------------------
# Signal functions
# ---------------------------------------------------------------------------

def block_variance_analysis(
    luma: np.ndarray,
    block_size: int = BLOCK_SIZE,
    anomaly_variance: float = 2 * NOISE_THRESHOLD,
    confidence_variance: float = CONFIDENCE_VARIANCE,
) -> ElaResult:
    """Per-block luminance variance over the full-block grid.

    Parameters
    ----------
    luma : np.ndarray
        2-D ``float64`` luminance plane.
    block_size : int
        Side of the square blocks in pixels.
    anomaly_variance : float
        Variance above which a block is reported.
    confidence_variance : float
        Variance mapped to confidence ``1.0``.

    Returns
    -------
    ElaResult
        Mean block variance and the anomalous blocks in raster order.
    """
    tiles, nh, nw = tile_view(luma, block_size, block_size)
    if nh == 0 or nw == 0:
        return ElaResult()

    variances = tiles.var(axis=(2, 3))
    anomalies: List[BlockAnomaly] = []
    for by, bx in zip(*np.nonzero(variances > anomaly_variance)):
        v = float(variances[by, bx])
        anomalies.append(BlockAnomaly(
            x=int(bx) * block_size,
            y=int(by) * block_size,
            width=block_size,
            height=block_size,
            variance=v,
            confidence=min(v / confidence_variance, 1.0),
        ))
    return ElaResult(average_variance=float(variances.mean()), anomalies=tuple(anomalies))


def noise_consistency(luma: np.ndarray, threshold: float = NOISE_THRESHOLD) -> NoiseResult:
    """Mean absolute 4-neighbour Laplacian residual over interior pixels."""
    H, W = luma.shape
    if H < 3 or W < 3:
        return NoiseResult()
    center = luma[1:-1, 1:-1]
    neighbours = luma[:-2, 1:-1] + luma[2:, 1:-1] + luma[1:-1, :-2] + luma[1:-1, 2:]
    avg = float(np.abs(4.0 * center - neighbours).mean())
    return NoiseResult(average_noise=avg, is_consistent=avg < threshold)


def _tag(exif: Mapping[str, Any], name: str) -> Optional[str]:
    value = exif.get(name)
    if value is None:
        return None
    text = str(value).strip().strip("\x00")
    return text or None


def scan_exif(
    exif: Mapping[str, Any],
    editing_software: Tuple[str, ...] = EDITING_SOFTWARE,
) -> ExifData:
    """Extract tamper-relevant EXIF fields and informational anomalies."""
    date_time = _tag(exif, "DateTime")
    original = _tag(exif, "DateTimeOriginal")
    make = _tag(exif, "Make")
    model = _tag(exif, "Model")
    software = _tag(exif, "Software")
    lat = _tag(exif, "GPSLatitude")
    lon = _tag(exif, "GPSLongitude")

    was_edited = bool(software) and any(
        s.lower() in software.lower() for s in editing_software
    )

    notes: List[str] = []
    if not original:
        notes.append("Missing original capture timestamp")
    if not make:
        notes.append("Camera make missing or erased")
    if bool(lat) != bool(lon):
        notes.append("Incomplete GPS coordinates")
    if date_time and original and date_time != original:
        notes.append("Modification timestamp differs from capture timestamp")
    if was_edited:
        notes.append(f"Edited with {software}")

    return ExifData(
        date_time=date_time,
        date_time_original=original,
        make=make,
        model=model,
        software=software,
        gps_latitude=lat,
        gps_longitude=lon,
        was_edited=was_edited,
        anomalies=tuple(notes),
    )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class ImageAnalyzer:
    """Stateless still-image analyzer.

    Args:
        noise_threshold: mean Laplacian residual separating consistent
            from inconsistent noise; blocks are anomalous above twice
            this value.
        block_size: side of the variance blocks.
        editing_software: substrings of ``Software`` that mark an edit.
    """

    def __init__(
        self,
        noise_threshold: float = NOISE_THRESHOLD,
        block_size: int = BLOCK_SIZE,
        editing_software: Tuple[str, ...] = EDITING_SOFTWARE,
    ):
        self.noise_threshold = float(noise_threshold)
        self.block_size = int(block_size)
        self.editing_software = tuple(editing_software)

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "ImageAnalyzer":
        cfg = cfg or {}
        return cls(
            noise_threshold=cfg.get("noise_threshold", NOISE_THRESHOLD),
            block_size=cfg.get("block_size", BLOCK_SIZE),
            editing_software=tuple(cfg.get("editing_software", EDITING_SOFTWARE)),
        )

    def analyze(self, pixels, exif: Optional[Mapping[str, Any]] = None) -> ImageResult:
        grid = as_pixel_grid(pixels)
        exif_data = scan_exif(exif, self.editing_software) if exif is not None else None
        if grid is None:
            logger.debug("Empty or unreadable image buffer; returning zero result")
            return ImageResult(exif=exif_data)

        luma = to_luminance(grid)
        ela = block_variance_analysis(
            luma, self.block_size, anomaly_variance=2 * self.noise_threshold,
        )
        noise = noise_consistency(luma, self.noise_threshold)
        score = self._score(ela, noise, exif_data)
        logger.debug(
            "Image: %d anomalous blocks, noise=%.3f, score=%.3f",
            ela.suspicious_region_count, noise.average_noise, score,
        )
        return ImageResult(tampering_score=score, ela=ela, noise=noise, exif=exif_data)

    @staticmethod
    def _score(ela: ElaResult, noise: NoiseResult, exif: Optional[ExifData]) -> float:
        score = 0.0
        n = ela.suspicious_region_count
        if n > ANOMALY_MIN_COUNT:
            score += WEIGHT_ANOMALIES * min(n / ANOMALY_SATURATION, 1.0)
        if not noise.is_consistent:
            score += WEIGHT_NOISE
        if exif is not None:
            if exif.was_edited:
                score += WEIGHT_EDITED
            if exif.missing_timestamp_and_make:
                score += WEIGHT_MISSING_EXIF
        return clamp01(score)
