"""
media_forensics.utils — Shared helpers for the per-medium analyzers.

Provides:

* **Luminance** — ``to_luminance`` (ITU-R BT.601 weights, float64).
* **Array helpers** — ``clamp01``, ``tile_view``, ``resize_luma``.
* **Serialisation** — ``json_sanitize``, ``save_json``.

Every analyzer works on float64 luminance so that results are
bit-for-bit reproducible across runs on the same input.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import cv2
import numpy as np

# BT.601 luma weights (R, G, B).
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def to_luminance(pixels: np.ndarray) -> np.ndarray:
    """Convert an RGB (or already single-channel) array to luminance.

    Parameters
    ----------
    pixels : np.ndarray
        Array of shape ``(H, W, 3)`` / ``(H, W, 4)`` with RGB(A) values in
        0-255, or a 2-D luminance array.

    Returns
    -------
    np.ndarray
        ``float64`` array of shape ``(H, W)``.
    """
    arr = np.asarray(pixels)
    if arr.ndim == 2:
        return arr.astype(np.float64)
    rgb = arr[..., :3].astype(np.float64)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    return LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b


def clamp01(x: float) -> float:
    """Clip a scalar score into ``[0.0, 1.0]``."""
    return float(min(1.0, max(0.0, x)))


def tile_view(
    arr: np.ndarray, tile_h: int, tile_w: int,
) -> Tuple[np.ndarray, int, int]:
    """Reshape a 2-D array into non-overlapping tiles.

    The array is cropped to the largest dimensions that are exact
    multiples of the tile size; partial edge tiles are dropped.

    Returns
    -------
    tiles : np.ndarray
        View of shape ``(n_rows, n_cols, tile_h, tile_w)``.
    n_rows, n_cols : int
        Tile grid size.
    """
    H, W = arr.shape[:2]
    nh = H // tile_h
    nw = W // tile_w
    cropped = arr[: nh * tile_h, : nw * tile_w]
    tiles = cropped.reshape(nh, tile_h, nw, tile_w).swapaxes(1, 2)
    return tiles, nh, nw


def resize_luma(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Downscale a frame with OpenCV area interpolation and return luminance.

    The colour frame is resized first and converted afterwards, so the
    result only depends on the pixel values and the target size.
    """
    arr = np.ascontiguousarray(np.asarray(pixels, dtype=np.float32))
    resized = cv2.resize(arr, (width, height), interpolation=cv2.INTER_AREA)
    return to_luminance(resized)


# ---------------------------------------------------------------------------
# JSON serialisation
# ---------------------------------------------------------------------------

def json_sanitize(obj: Any) -> Any:
    """Recursively convert an object tree into JSON-safe Python types.

    Handles numpy scalars/arrays, ``Path``, ``Enum``, ``datetime``,
    ``bytes``, dataclass instances and ``NaN``/``Inf`` floats (mapped to
    ``None``).
    """
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.hex()
    if hasattr(obj, "to_dict"):
        return json_sanitize(obj.to_dict())
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: json_sanitize(v) for k, v in asdict(obj).items()}
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return json_sanitize(float(obj))
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return json_sanitize(obj.tolist())
    if isinstance(obj, (list, tuple)):
        return [json_sanitize(x) for x in obj]
    if isinstance(obj, dict):
        return {str(json_sanitize(k)): json_sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (int, float, str, bool)):
        if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
            return None
        return obj
    return str(obj)


def save_json(data: Dict[str, Any], out_path: Union[str, Path]) -> str:
    """Serialise a dictionary to a pretty-printed JSON file.

    Parameters
    ----------
    data : dict
        The data to serialise; passed through :func:`json_sanitize`.
    out_path : str or Path
        Destination file path. Parent directories are created.

    Returns
    -------
    str
        The string representation of *out_path*.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(json_sanitize(data), f, ensure_ascii=False, indent=2)
    return str(out)
