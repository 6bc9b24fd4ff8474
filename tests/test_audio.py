"""Tests for the voice analyzer."""

import numpy as np
import pytest

from media_forensics.audio import (
    AudioAnalyzer,
    AudioMetadata,
    count_discontinuities,
    dct_matrix,
    detect_voice_activity,
    extract_mfcc,
    mel_filterbank,
)
from media_forensics.buffers import EvidenceRejected

SR = 16000


def tone(freq: float = 1000.0, seconds: float = 1.0, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(SR * seconds)) / SR
    return amplitude * np.sin(2 * np.pi * freq * t)


def test_empty_audio_returns_zero_result():
    result = AudioAnalyzer().analyze(np.zeros(0))
    assert result.tampering_score == 0.0
    assert result.mfcc == ()
    assert result.voice_segments == ()
    assert result.spectral.centroid == 0.0


def test_clean_tone_features():
    result = AudioAnalyzer().analyze(tone())
    assert len(result.mfcc) == 1 + (SR - 512) // 160
    assert all(len(row) == 13 for row in result.mfcc)
    assert 800 < result.spectral.centroid < 1500
    assert result.spectral.flatness < 0.5
    assert result.discontinuities == 0
    assert result.tampering_score == 0.0


def test_spliced_spikes_are_counted():
    x = tone(amplitude=0.01)
    for pos in range(1000, 13000, 1000):
        x[pos] = 1.0
    assert count_discontinuities(x) == 24
    result = AudioAnalyzer().analyze(x)
    assert result.discontinuities == 24
    assert result.tampering_score >= 0.5


def test_voice_activity_finds_the_tone_burst():
    x = np.concatenate([np.zeros(8000), tone(seconds=0.5), np.zeros(8000)])
    segments = detect_voice_activity(x)
    assert len(segments) == 1
    assert segments[0].start_time == pytest.approx(15 * 512 / SR)
    assert segments[0].end_time == pytest.approx(32 * 512 / SR)
    assert segments[0].average_energy > 0


def test_voice_activity_closes_trailing_segment():
    x = np.concatenate([np.zeros(8192), tone(seconds=0.5)])
    segments = detect_voice_activity(x)
    assert len(segments) == 1
    assert segments[0].end_time == pytest.approx((x.size // 512) * 512 / SR)


def test_mfcc_shorter_than_one_frame_is_empty():
    assert extract_mfcc(np.ones(100)).shape == (0, 13)


def test_mel_filterbank_shape_and_sign():
    bank = mel_filterbank(256)
    assert bank.shape == (26, 256)
    assert (bank >= 0).all()
    assert bank.sum() > 0


def test_dct_first_basis_is_constant():
    m = dct_matrix(26, 13)
    assert m.shape == (13, 26)
    assert np.allclose(m[0], np.sqrt(2.0 / 26))


def test_compare_speakers():
    analyzer = AudioAnalyzer()
    a = analyzer.analyze(tone(440.0))
    assert analyzer.compare_speakers(a, a) == pytest.approx(1.0)
    assert analyzer.compare_speakers(a, analyzer.analyze(np.zeros(0))) == 0.0
    other = analyzer.compare_speakers(a, analyzer.analyze(tone(3000.0)))
    assert 0.0 <= other <= 1.0


def test_wrong_sample_rate_is_rejected():
    with pytest.raises(EvidenceRejected):
        AudioAnalyzer().analyze(tone(), AudioMetadata(sample_rate=44100))


def test_sample_count_mismatch_is_rejected():
    with pytest.raises(EvidenceRejected):
        AudioAnalyzer().analyze(tone(), AudioMetadata(sample_count=10))
    ok = AudioAnalyzer().analyze(tone(), AudioMetadata(sample_count=SR))
    assert 0.0 <= ok.tampering_score <= 1.0


def test_analysis_is_idempotent():
    rng = np.random.default_rng(5)
    x = rng.normal(0, 0.1, size=4000)
    analyzer = AudioAnalyzer()
    assert analyzer.analyze(x) == analyzer.analyze(x)
