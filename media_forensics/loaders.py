"""
media_forensics.loaders — Decode evidence files into analyzer buffers.

This is the only module of the package that touches the file system.

* **Images** — Pillow, RGB ``uint8`` array plus a flat EXIF tag map
  (base IFD, Exif sub-IFD and GPS sub-IFD merged by tag name).
* **Video** — OpenCV ``VideoCapture``; frames are converted to RGB and
  container properties become a :class:`VideoMetadata`.
* **Audio** — SciPy WAV reader; integer PCM is scaled to ``[-1, 1]``,
  stereo is down-mixed and other rates are resampled to 16 kHz with a
  polyphase filter.
* **PDF** — raw bytes plus the document information dictionary as
  decoded by pypdf.
"""

from __future__ import annotations

import io
import logging
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import ExifTags, Image
from pypdf import PdfReader
from pypdf.errors import PyPdfError
from scipy.io import wavfile
from scipy.signal import resample_poly

from .audio import SAMPLE_RATE, AudioMetadata
from .document import PdfMetadata
from .video import VideoMetadata

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_EXIF_IFD = 0x8769
_GPS_IFD = 0x8825

_PDF_INFO_KEYS = {
    "/Title": "title",
    "/Author": "author",
    "/Subject": "subject",
    "/Creator": "creator",
    "/Producer": "producer",
    "/CreationDate": "creation_date",
    "/ModDate": "modification_date",
    "/Keywords": "keywords",
}


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def _exif_value(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1", errors="replace")
    if isinstance(value, tuple):
        return ",".join(_exif_value(v) for v in value)
    return str(value)


def extract_exif(im: Image.Image) -> Dict[str, str]:
    """Flatten the EXIF of an opened Pillow image into ``{tag_name: text}``.

    Returns an empty dict when the image carries no EXIF block.
    """
    exif = im.getexif()
    tags: Dict[str, str] = {}
    for tag_id, value in exif.items():
        tags[ExifTags.TAGS.get(tag_id, str(tag_id))] = _exif_value(value)
    for tag_id, value in exif.get_ifd(_EXIF_IFD).items():
        tags[ExifTags.TAGS.get(tag_id, str(tag_id))] = _exif_value(value)
    for tag_id, value in exif.get_ifd(_GPS_IFD).items():
        tags[ExifTags.GPSTAGS.get(tag_id, str(tag_id))] = _exif_value(value)
    return tags


def load_image(path: PathLike) -> Tuple[np.ndarray, Optional[Dict[str, str]]]:
    """Load an image as RGB ``uint8`` plus its EXIF map.

    The EXIF map is ``None`` when the file has no EXIF block, so the
    analyzer skips its EXIF scoring terms for formats like PNG.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    PIL.UnidentifiedImageError
        If the file cannot be decoded as an image.
    """
    with Image.open(path) as im:
        tags = extract_exif(im)
        rgb = np.array(im.convert("RGB"), dtype=np.uint8)
    return rgb, (tags or None)


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

def _fourcc_to_str(code: float) -> str:
    value = int(code)
    chars = [chr((value >> (8 * i)) & 0xFF) for i in range(4)]
    return "".join(chars).strip("\x00 ")


def load_video(path: PathLike, max_frames: Optional[int] = None) -> Tuple[List[np.ndarray], VideoMetadata]:
    """Decode every frame of a video file as RGB arrays.

    Parameters
    ----------
    path : str or Path
        Video container readable by OpenCV.
    max_frames : int, optional
        Stop after this many frames.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If OpenCV cannot open the container.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(str(p))
    cap = cv2.VideoCapture(str(p))
    if not cap.isOpened():
        raise ValueError(f"Cannot open video: {p}")
    try:
        fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        codec = _fourcc_to_str(cap.get(cv2.CAP_PROP_FOURCC))
        frames: List[np.ndarray] = []
        while max_frames is None or len(frames) < max_frames:
            ok, bgr = cap.read()
            if not ok:
                break
            frames.append(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))
    finally:
        cap.release()

    height, width = frames[0].shape[:2] if frames else (0, 0)
    metadata = VideoMetadata(
        duration=len(frames) / fps if fps > 0 else 0.0,
        frame_rate=fps,
        width=width,
        height=height,
        codec=codec,
    )
    logger.debug("Decoded %d frames from %s (%s, %.2f fps)", len(frames), p.name, codec, fps)
    return frames, metadata


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------

def _to_float(pcm: np.ndarray) -> np.ndarray:
    if np.issubdtype(pcm.dtype, np.integer):
        info = np.iinfo(pcm.dtype)
        if info.min == 0:
            # unsigned 8-bit WAV is offset binary
            mid = (info.max + 1) / 2.0
            return (pcm.astype(np.float64) - mid) / mid
        return pcm.astype(np.float64) / float(-info.min)
    return pcm.astype(np.float64)


def load_audio(path: PathLike, target_rate: int = SAMPLE_RATE) -> Tuple[np.ndarray, AudioMetadata]:
    """Read a WAV file as mono ``float64`` samples at *target_rate*."""
    rate, pcm = wavfile.read(str(path))
    samples = _to_float(np.asarray(pcm))
    if samples.ndim == 2:
        samples = samples.mean(axis=1)
    if rate != target_rate and samples.size:
        ratio = Fraction(target_rate, rate)
        samples = resample_poly(samples, ratio.numerator, ratio.denominator)
        logger.debug("Resampled %s from %d Hz to %d Hz", Path(path).name, rate, target_rate)
    return samples, AudioMetadata(sample_rate=target_rate, sample_count=int(samples.size))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def _info_text(info: Any, key: str) -> Optional[str]:
    value = info.get(key)
    if value is None:
        return None
    value = value.get_object()
    if isinstance(value, str):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return None


def extract_pdf_info(content: bytes) -> PdfMetadata:
    """Read the document information dictionary with pypdf.

    The dictionary is the one the trailer points at, so an incremental
    update that rewrites it overrides earlier revisions.  Literal, hex
    and UTF-16 strings are decoded and indirect values are resolved.
    A file pypdf cannot parse yields an empty :class:`PdfMetadata`; the
    structural checks of the analyzer still run on its raw bytes.
    """
    try:
        info = PdfReader(io.BytesIO(content), strict=False).metadata
    except (PyPdfError, ValueError) as exc:
        logger.warning("PDF information dictionary unreadable: %s", exc)
        return PdfMetadata()
    if info is None:
        return PdfMetadata()
    return PdfMetadata(**{field: _info_text(info, key) for key, field in _PDF_INFO_KEYS.items()})


def load_document(path: PathLike) -> Tuple[bytes, PdfMetadata]:
    content = Path(path).read_bytes()
    return content, extract_pdf_info(content)
