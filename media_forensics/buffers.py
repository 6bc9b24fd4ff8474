"""
media_forensics.buffers — Evidence buffer contract shared by all analyzers.

An evidence buffer is an immutable, already-decoded view of one piece of
evidence: an RGB pixel grid, a sequence of decoded frames, mono PCM
samples or the raw bytes of a PDF.  Buffers that contradict their
declared metadata are rejected with :class:`EvidenceRejected`; empty
buffers are accepted and produce the analyzer's zero result.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

import numpy as np


class Medium(str, Enum):
    """Tag identifying which analyzer produced a result."""

    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    DOCUMENT = "DOCUMENT"


class EvidenceRejected(ValueError):
    """Raised when a buffer is inconsistent with its declared metadata."""

    def __init__(self, medium: Medium, reason: str):
        super().__init__(f"{medium.value} evidence rejected: {reason}")
        self.medium = medium
        self.reason = reason


def as_pixel_grid(pixels) -> Optional[np.ndarray]:
    """Return *pixels* as a 2-D or 3-D array, or ``None`` when unusable.

    ``None`` covers empty grids, wrong rank and non-numeric content; the
    caller turns it into a zero result.
    """
    if pixels is None:
        return None
    try:
        arr = np.asarray(pixels, dtype=np.float64)
    except (TypeError, ValueError):
        return None
    if arr.ndim not in (2, 3) or arr.size == 0:
        return None
    if arr.ndim == 3 and arr.shape[2] not in (1, 3, 4):
        return None
    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[..., 0]
    return arr


def as_samples(samples) -> np.ndarray:
    """Return mono PCM samples as a flat ``float64`` array (possibly empty)."""
    if samples is None:
        return np.zeros(0, dtype=np.float64)
    arr = np.asarray(samples, dtype=np.float64)
    return arr.reshape(-1)


def check_frame_dimensions(
    frames: Sequence[np.ndarray], width: int, height: int,
) -> None:
    """Reject a frame sequence whose frames differ from the declared size.

    A non-positive declared width or height disables the check.
    """
    if width <= 0 or height <= 0:
        return
    for idx, frame in enumerate(frames):
        shape = np.shape(frame)
        if len(shape) < 2 or shape[0] != height or shape[1] != width:
            raise EvidenceRejected(
                Medium.VIDEO,
                f"frame {idx} has shape {tuple(shape)}, "
                f"declared {width}x{height}",
            )


def check_sample_contract(
    samples: np.ndarray,
    sample_rate: int,
    expected_rate: int,
    sample_count: Optional[int],
) -> None:
    """Reject audio at the wrong rate or with a mismatching sample count."""
    if sample_rate != expected_rate:
        raise EvidenceRejected(
            Medium.AUDIO,
            f"sample rate {sample_rate} Hz, expected {expected_rate} Hz",
        )
    if sample_count is not None and sample_count != samples.size:
        raise EvidenceRejected(
            Medium.AUDIO,
            f"declared {sample_count} samples, buffer holds {samples.size}",
        )
