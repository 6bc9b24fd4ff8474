"""Scores and confidences stay inside [0, 1] for hostile buffers."""

import numpy as np
import pytest

from media_forensics import AudioAnalyzer, DocumentAnalyzer, ImageAnalyzer, VideoAnalyzer

pytestmark = pytest.mark.filterwarnings("ignore::RuntimeWarning")

SEEDS = [0, 1, 7, 42]


def in_unit(x: float) -> bool:
    return 0.0 <= x <= 1.0


def special_grid(kind: str, shape=(40, 33)) -> np.ndarray:
    grid = np.random.default_rng(3).uniform(0, 255, size=shape)
    if kind == "nan":
        grid[::3, ::5] = np.nan
    elif kind == "inf":
        grid[::4] = np.inf
        grid[1::4] = -np.inf
    elif kind == "huge":
        grid *= 1e300
    elif kind == "alternating":
        grid = np.where(np.indices(shape).sum(axis=0) % 2, 1e12, -1e12)
    return grid


def check_image(result) -> None:
    assert in_unit(result.tampering_score)
    assert all(in_unit(a.confidence) for a in result.ela.anomalies)


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("shape", [(1, 1, 3), (7, 13, 3), (33, 17, 4), (65, 9), (8, 8, 1)])
def test_image_score_bounded_for_random_pixels(seed, shape):
    pixels = np.random.default_rng(seed).integers(0, 256, size=shape, dtype=np.uint8)
    exif = {"Software": "GIMP 2.10"} if seed % 2 else {}
    check_image(ImageAnalyzer().analyze(pixels, exif))


@pytest.mark.parametrize("kind", ["nan", "inf", "huge", "alternating"])
def test_image_score_bounded_for_non_finite_pixels(kind):
    check_image(ImageAnalyzer().analyze(special_grid(kind)))
    check_image(ImageAnalyzer().analyze(np.dstack([special_grid(kind)] * 3)))


def check_video(result) -> None:
    assert in_unit(result.tampering_score)
    assert in_unit(result.temporal_consistency)
    assert in_unit(result.re_encoding_score)
    assert all(in_unit(a.confidence) for a in result.anomalies)


@pytest.mark.parametrize("seed", SEEDS)
def test_video_score_bounded_for_random_frames(seed):
    rng = np.random.default_rng(seed)
    frames = [rng.integers(0, 256, size=(24, 32, 3), dtype=np.uint8) for _ in range(23)]
    check_video(VideoAnalyzer(sample_rate=1).analyze(frames))
    check_video(VideoAnalyzer().analyze(np.stack(frames)))


def test_video_score_bounded_for_mixed_and_non_finite_frames():
    rng = np.random.default_rng(5)
    frames = [
        rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8),
        special_grid("nan", (20, 11)),
        np.zeros((3, 3, 2)),
        special_grid("inf", (64, 64)),
        special_grid("huge", (9, 40)),
        np.full((16, 16), 255, dtype=np.uint8),
    ] * 3
    check_video(VideoAnalyzer(sample_rate=1).analyze(frames))


def check_audio(result) -> None:
    assert in_unit(result.tampering_score)


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("amplitude", [1e-12, 1.0, 1e6, 1e150])
def test_audio_score_bounded_for_random_noise(seed, amplitude):
    samples = np.random.default_rng(seed).standard_normal(5000) * amplitude
    check_audio(AudioAnalyzer().analyze(samples))


@pytest.mark.parametrize("fill", [np.nan, np.inf, -np.inf])
def test_audio_score_bounded_for_non_finite_samples(fill):
    samples = np.sin(np.linspace(0, 400, 4096))
    samples[::97] = fill
    check_audio(AudioAnalyzer().analyze(samples))
    check_audio(AudioAnalyzer().analyze(np.full(2048, fill)))


def test_audio_score_bounded_for_square_wave_at_full_scale():
    samples = np.where(np.arange(8000) % 2, 1e300, -1e300)
    check_audio(AudioAnalyzer().analyze(samples))


def check_document(result) -> None:
    assert in_unit(result.tampering_score)
    assert in_unit(result.metadata_consistency.confidence)


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("size", [1, 64, 4096])
def test_document_score_bounded_for_random_bytes(seed, size):
    content = np.random.default_rng(seed).bytes(size)
    check_document(DocumentAnalyzer().analyze(content))


def test_document_score_bounded_for_truncated_and_stuffed_pdf():
    stuffed = (
        b"%PDF-1.4\n/JavaScript /OCProperties /Name (a) /Name (b)\n"
        b"/Annot /F 2 /EmbeddedFile /Type /Sig /SubFilter /adbe.pkcs7.detached\n"
        + b"1 0 obj\n%%EOF\n" * 12
    )
    check_document(DocumentAnalyzer().analyze(stuffed))
    check_document(DocumentAnalyzer().analyze(stuffed[: len(stuffed) // 3]))
    check_document(DocumentAnalyzer().analyze(b"%PDF-"))
