"""
media_forensics.video — Frame-sequence tamper analysis.

The analyzer works on already-decoded frames.  Every 5th frame is reduced
to a perceptual hash (pHash) of 256 hex characters, one bit per pixel of
a 32×32 thumbnail.  The hash stream drives three of the four signals:

* **GOP structure** — scene boundaries where adjacent sampled hashes are
  less than 70 % similar; irregular boundary spacing hints at splicing.
* **Temporal continuity** — adjacent sampled frames should be either
  clearly similar or clearly different (a hard cut); the ambiguous middle
  band lowers the continuity score.
* **Anomalies** — repeated hashes far apart in time (duplicated footage)
  and abrupt visual discontinuities.

The fourth signal, **re-encoding artifacts**, looks at 8×8 block
boundaries of the middle frame together with the declared encoding
metadata.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .buffers import Medium, as_pixel_grid, check_frame_dimensions
from .utils import clamp01, resize_luma

logger = logging.getLogger(__name__)

SAMPLE_RATE = 5
ASSUMED_FPS = 30.0
HASH_SIZE = 32
SCENE_CHANGE_THRESHOLD = 0.7
GOP_TOLERANCE = 0.5
# Similarities inside (CUT_SIMILARITY, SMOOTH_SIMILARITY] only earn half credit.
SMOOTH_SIMILARITY = 0.3
CUT_SIMILARITY = 0.1
DISCONTINUITY_SIMILARITY = 0.2
DUPLICATE_CONFIDENCE = 0.8

REENCODE_SIZE = 64
REENCODE_BLOCK = 8
BOUNDARY_VARIANCE = 50.0
WEIGHT_ARTIFACTS = 0.5
WEIGHT_MULTI_PASS = 0.3
WEIGHT_MISSING_CREATION = 0.2


class VideoAnomalyType(str, Enum):
    DUPLICATE_FRAMES = "DUPLICATE_FRAMES"
    VISUAL_DISCONTINUITY = "VISUAL_DISCONTINUITY"
    TEMPORAL_INCONSISTENCY = "TEMPORAL_INCONSISTENCY"
    COMPRESSION_ARTIFACT = "COMPRESSION_ARTIFACT"
    SPLICING_DETECTED = "SPLICING_DETECTED"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VideoMetadata:
    """Container-level facts declared by the decoding collaborator."""

    duration: float = 0.0
    frame_rate: float = 0.0
    width: int = 0
    height: int = 0
    codec: str = ""
    encoding_passes: int = 1
    has_embedded_metadata: bool = True
    creation_date: Optional[datetime] = None


@dataclass(frozen=True)
class FrameHash:
    frame_index: int
    hash: str
    timestamp: float


@dataclass(frozen=True)
class GopAnalysis:
    gop_boundaries: Tuple[int, ...] = ()
    average_gop_length: int = 0
    is_structure_consistent: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gop_boundaries": list(self.gop_boundaries),
            "average_gop_length": self.average_gop_length,
            "is_structure_consistent": self.is_structure_consistent,
        }


@dataclass(frozen=True)
class VideoAnomaly:
    type: VideoAnomalyType
    frame_indices: Tuple[int, ...]
    confidence: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "frame_indices": list(self.frame_indices),
            "confidence": round(self.confidence, 4),
            "description": self.description,
        }


@dataclass(frozen=True)
class VideoResult:
    medium: ClassVar[Medium] = Medium.VIDEO

    tampering_score: float = 0.0
    frame_count: int = 0
    frame_hashes: Tuple[FrameHash, ...] = ()
    gop: GopAnalysis = field(default_factory=GopAnalysis)
    temporal_consistency: float = 1.0
    re_encoding_score: float = 0.0
    anomalies: Tuple[VideoAnomaly, ...] = ()

    @property
    def is_tampered(self) -> bool:
        return self.tampering_score > 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "medium": self.medium.value,
            "tampering_score": round(self.tampering_score, 4),
            "is_tampered": self.is_tampered,
            "frame_count": self.frame_count,
            "sampled_frames": len(self.frame_hashes),
            "gop": self.gop.to_dict(),
            "temporal_consistency": round(self.temporal_consistency, 4),
            "re_encoding_score": round(self.re_encoding_score, 4),
            "anomalies": [a.to_dict() for a in self.anomalies],
        }


# ---------------------------------------------------------------------------
# Perceptual hashing
# ---------------------------------------------------------------------------

def perceptual_hash(frame, size: int = HASH_SIZE) -> str:
    """Mean-threshold perceptual hash of one frame.

    The frame is downscaled to ``size × size`` luminance; each pixel
    contributes one bit (``1`` when above the mean) and bits are packed
    four per hex character, most significant first.  A 32×32 hash is
    256 hex characters long.  Unusable frames hash to ``""``.
    """
    grid = as_pixel_grid(frame)
    if grid is None:
        return ""
    luma = resize_luma(grid, size, size)
    bits = (luma > luma.mean()).ravel()
    return np.packbits(bits).tobytes().hex()


def hash_similarity(a: str, b: str) -> float:
    """Fraction of equal hex characters; ``0.0`` when lengths differ."""
    if len(a) != len(b) or not a:
        return 0.0
    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / len(a)


def _adjacent_similarities(hashes: Sequence[FrameHash]) -> List[float]:
    return [hash_similarity(hashes[i - 1].hash, hashes[i].hash) for i in range(1, len(hashes))]


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

def analyze_gop_structure(
    hashes: Sequence[FrameHash],
    scene_threshold: float = SCENE_CHANGE_THRESHOLD,
    tolerance: float = GOP_TOLERANCE,
) -> GopAnalysis:
    """Scene boundaries from the hash stream and the regularity of their spacing.

    A boundary is recorded at the frame index of the later hash whenever
    two adjacent hashes are less than *scene_threshold* similar.  GOP
    lengths are the gaps between successive boundaries, starting from
    frame 0.  The structure is consistent when every length lies within
    ``tolerance × mean`` of the mean (vacuously so without boundaries).
    """
    boundaries: List[int] = []
    for i in range(1, len(hashes)):
        if hash_similarity(hashes[i - 1].hash, hashes[i].hash) < scene_threshold:
            boundaries.append(hashes[i].frame_index)

    lengths: List[int] = []
    prev = 0
    for b in boundaries:
        lengths.append(b - prev)
        prev = b

    avg = float(np.mean(lengths)) if lengths else 0.0
    consistent = all(abs(L - avg) < avg * tolerance for L in lengths)
    return GopAnalysis(
        gop_boundaries=tuple(boundaries),
        average_gop_length=int(avg),
        is_structure_consistent=consistent,
    )


def temporal_consistency(hashes: Sequence[FrameHash]) -> float:
    sims = _adjacent_similarities(hashes)
    if not sims:
        return 1.0
    total = 0.0
    for s in sims:
        total += 1.0 if (s > SMOOTH_SIMILARITY or s < CUT_SIMILARITY) else 0.5
    return total / len(sims)


def re_encoding_score(frames: Sequence, metadata: VideoMetadata) -> float:
    """Block-boundary artifact score of the middle frame plus metadata flags.

    The middle frame is reduced to 64×64 luminance.  For each 8×8 block of
    the 7×7 interior grid, the right-hand boundary column is checked;
    a variance above ``BOUNDARY_VARIANCE`` counts as a compression hit.
    """
    score = 0.0
    grid = as_pixel_grid(frames[len(frames) // 2]) if frames else None
    if grid is not None:
        luma = resize_luma(grid, REENCODE_SIZE, REENCODE_SIZE)
        hits = 0
        last = REENCODE_SIZE - REENCODE_BLOCK
        for y in range(0, last, REENCODE_BLOCK):
            for x in range(0, last, REENCODE_BLOCK):
                edge = luma[y:y + REENCODE_BLOCK, x + REENCODE_BLOCK - 1]
                if float(edge.var()) > BOUNDARY_VARIANCE:
                    hits += 1
        score += min(hits / 64.0, 1.0) * WEIGHT_ARTIFACTS

    if metadata.encoding_passes > 1:
        score += WEIGHT_MULTI_PASS
    if metadata.has_embedded_metadata and metadata.creation_date is None:
        score += WEIGHT_MISSING_CREATION
    return clamp01(score)


def detect_anomalies(
    hashes: Sequence[FrameHash], sample_rate: int = SAMPLE_RATE,
) -> Tuple[VideoAnomaly, ...]:
    """Duplicated footage and abrupt visual discontinuities."""
    anomalies: List[VideoAnomaly] = []

    groups: Dict[str, List[int]] = defaultdict(list)
    for h in hashes:
        groups[h.hash].append(h.frame_index)
    max_group = len(hashes) // 2
    for indices in groups.values():
        if not (1 < len(indices) < max_group):
            continue
        gaps = np.diff(indices)
        if np.any(gaps > sample_rate * 2):
            anomalies.append(VideoAnomaly(
                type=VideoAnomalyType.DUPLICATE_FRAMES,
                frame_indices=tuple(indices),
                confidence=DUPLICATE_CONFIDENCE,
                description=f"Identical frames repeated at {len(indices)} distant positions",
            ))

    for i in range(1, len(hashes)):
        sim = hash_similarity(hashes[i - 1].hash, hashes[i].hash)
        if sim < DISCONTINUITY_SIMILARITY:
            anomalies.append(VideoAnomaly(
                type=VideoAnomalyType.VISUAL_DISCONTINUITY,
                frame_indices=(hashes[i - 1].frame_index, hashes[i].frame_index),
                confidence=1.0 - sim,
                description=f"Abrupt visual change (similarity {sim:.2f})",
            ))
    return tuple(anomalies)


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class VideoAnalyzer:
    """Stateless frame-sequence analyzer.

    Args:
        sample_rate: hash every N-th frame.
        fps: frame rate used to timestamp hashes.
        scene_threshold: similarity below which a GOP boundary is placed.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        fps: float = ASSUMED_FPS,
        scene_threshold: float = SCENE_CHANGE_THRESHOLD,
    ):
        if sample_rate < 1:
            raise ValueError(f"sample_rate must be >= 1, got {sample_rate}")
        self.sample_rate = int(sample_rate)
        self.fps = float(fps)
        self.scene_threshold = float(scene_threshold)

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "VideoAnalyzer":
        cfg = cfg or {}
        return cls(
            sample_rate=cfg.get("sample_rate", SAMPLE_RATE),
            fps=cfg.get("fps", ASSUMED_FPS),
            scene_threshold=cfg.get("scene_threshold", SCENE_CHANGE_THRESHOLD),
        )

    def hash_frames(self, frames: Sequence) -> Tuple[FrameHash, ...]:
        return tuple(
            FrameHash(frame_index=i, hash=perceptual_hash(frames[i]), timestamp=i / self.fps)
            for i in range(0, len(frames), self.sample_rate)
        )

    def analyze(self, frames: Sequence, metadata: Optional[VideoMetadata] = None) -> VideoResult:
        metadata = metadata or VideoMetadata()
        frames = [] if frames is None else list(frames)
        check_frame_dimensions(frames, metadata.width, metadata.height)

        if len(frames) < 2:
            logger.debug("Video has %d frame(s); returning zero result", len(frames))
            return VideoResult(frame_count=len(frames))

        hashes = self.hash_frames(frames)
        gop = analyze_gop_structure(hashes, self.scene_threshold)
        temporal = temporal_consistency(hashes)
        reenc = re_encoding_score(frames, metadata)
        anomalies = detect_anomalies(hashes, self.sample_rate)

        mean_conf = float(np.mean([a.confidence for a in anomalies])) if anomalies else 0.0
        score = clamp01(
            0.25 * (0.0 if gop.is_structure_consistent else 1.0)
            + 0.25 * (1.0 - temporal)
            + 0.25 * reenc
            + 0.25 * mean_conf
        )
        logger.debug(
            "Video: %d frames, %d boundaries, temporal=%.3f, re-encoding=%.3f, score=%.3f",
            len(frames), len(gop.gop_boundaries), temporal, reenc, score,
        )
        return VideoResult(
            tampering_score=score,
            frame_count=len(frames),
            frame_hashes=hashes,
            gop=gop,
            temporal_consistency=temporal,
            re_encoding_score=reenc,
            anomalies=anomalies,
        )
