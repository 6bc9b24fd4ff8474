"""Tests for the frame-sequence analyzer."""

from datetime import datetime, timezone

import numpy as np
import pytest

from media_forensics.buffers import EvidenceRejected
from media_forensics.video import (
    FrameHash,
    VideoAnalyzer,
    VideoAnomalyType,
    VideoMetadata,
    analyze_gop_structure,
    hash_similarity,
    perceptual_hash,
)


def gradient_frame(size: int = 64) -> np.ndarray:
    row = np.linspace(0, 255, size)
    return np.tile(row, (size, 1)).astype(np.uint8)


def half_frame(left: bool, size: int = 64) -> np.ndarray:
    frame = np.zeros((size, size), dtype=np.uint8)
    if left:
        frame[:, : size // 2] = 255
    else:
        frame[:, size // 2:] = 255
    return frame


def test_hash_similarity_half_match_declares_boundary():
    a = "0" * 256
    b = "0" * 128 + "f" * 128
    assert hash_similarity(a, b) == 0.5

    gop = analyze_gop_structure([FrameHash(0, a, 0.0), FrameHash(5, b, 5 / 30)])
    assert gop.gop_boundaries == (5,)
    assert gop.average_gop_length == 5
    assert gop.is_structure_consistent


def test_hash_similarity_length_mismatch_is_zero():
    assert hash_similarity("abc", "abcd") == 0.0
    assert hash_similarity("", "") == 0.0


def test_irregular_gop_lengths_are_inconsistent():
    a, b = "0" * 256, "f" * 256
    hashes = [FrameHash(0, a, 0), FrameHash(5, b, 0), FrameHash(10, a, 0), FrameHash(60, b, 0)]
    gop = analyze_gop_structure(hashes)
    assert gop.gop_boundaries == (5, 10, 60)
    assert not gop.is_structure_consistent


def test_perceptual_hash_is_256_hex_chars():
    rng = np.random.default_rng(1)
    h = perceptual_hash(rng.integers(0, 256, size=(30, 40, 3), dtype=np.uint8))
    assert len(h) == 256
    int(h, 16)
    assert perceptual_hash(np.full((32, 32), 90, dtype=np.uint8)) == "0" * 256


def test_static_video_scores_only_missing_creation_date():
    frames = [gradient_frame() for _ in range(20)]
    result = VideoAnalyzer().analyze(frames, VideoMetadata(width=64, height=64))
    assert len(result.frame_hashes) == 4
    assert result.gop.gop_boundaries == ()
    assert result.temporal_consistency == 1.0
    assert result.anomalies == ()
    assert result.re_encoding_score == pytest.approx(0.2)
    assert result.tampering_score == pytest.approx(0.05)

    dated = VideoMetadata(creation_date=datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert VideoAnalyzer().analyze(frames, dated).tampering_score == 0.0


def test_hard_cut_is_a_visual_discontinuity():
    frames = [half_frame(True)] * 5 + [half_frame(False)] * 5
    result = VideoAnalyzer().analyze(frames)
    assert result.gop.gop_boundaries == (5,)
    assert [a.type for a in result.anomalies] == [VideoAnomalyType.VISUAL_DISCONTINUITY]
    assert result.anomalies[0].frame_indices == (0, 5)
    assert result.anomalies[0].confidence == 1.0
    assert result.tampering_score == pytest.approx(0.3)


def test_repeated_footage_is_reported():
    rng = np.random.default_rng(3)
    frames = [rng.integers(0, 256, size=(32, 32), dtype=np.uint8) for _ in range(40)]
    frames[20] = frames[0].copy()
    result = VideoAnalyzer().analyze(frames)
    dupes = [a for a in result.anomalies if a.type is VideoAnomalyType.DUPLICATE_FRAMES]
    assert len(dupes) == 1
    assert dupes[0].frame_indices == (0, 20)
    assert dupes[0].confidence == 0.8
    assert 0.0 <= result.tampering_score <= 1.0


def test_multi_pass_encoding_adds_to_re_encoding_score():
    frames = [gradient_frame() for _ in range(10)]
    meta = VideoMetadata(encoding_passes=2, has_embedded_metadata=False)
    assert VideoAnalyzer().analyze(frames, meta).re_encoding_score == pytest.approx(0.3)


def test_frame_size_mismatch_is_rejected():
    frames = [gradient_frame(16) for _ in range(3)]
    with pytest.raises(EvidenceRejected):
        VideoAnalyzer().analyze(frames, VideoMetadata(width=32, height=32))


def test_single_frame_returns_zero_result():
    result = VideoAnalyzer().analyze([gradient_frame()])
    assert result.tampering_score == 0.0
    assert result.temporal_consistency == 1.0
    assert result.frame_hashes == ()
    assert VideoAnalyzer().analyze([]).frame_count == 0


def test_analysis_is_idempotent():
    rng = np.random.default_rng(11)
    frames = [rng.integers(0, 256, size=(24, 24, 3), dtype=np.uint8) for _ in range(12)]
    analyzer = VideoAnalyzer()
    assert analyzer.analyze(frames) == analyzer.analyze(frames)


def test_invalid_sample_rate_rejected():
    with pytest.raises(ValueError):
        VideoAnalyzer(sample_rate=0)


def test_frame_stack_array_is_accepted():
    stack = np.zeros((10, 16, 16, 3), dtype=np.uint8)
    stack[5:, :, 8:] = 255
    result = VideoAnalyzer().analyze(stack, VideoMetadata(width=16, height=16))
    assert result.frame_count == 10
    assert len(result.frame_hashes) == 2
    assert result.gop.gop_boundaries == (5,)
    assert 0.0 <= result.tampering_score <= 1.0
    assert VideoAnalyzer().analyze(np.zeros((0, 16, 16, 3), dtype=np.uint8)).frame_count == 0
