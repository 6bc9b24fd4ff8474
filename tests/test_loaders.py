"""Tests for the evidence file loaders."""

import numpy as np
import pytest
from PIL import Image
from scipy.io import wavfile

from media_forensics import DocumentAnalyzer, ImageAnalyzer
from media_forensics.loaders import (
    extract_pdf_info,
    load_audio,
    load_document,
    load_image,
    load_video,
)


def test_png_without_exif_gives_none(tmp_path):
    path = tmp_path / "plain.png"
    Image.new("L", (16, 12), color=128).save(path)
    rgb, exif = load_image(path)
    assert rgb.shape == (12, 16, 3)
    assert rgb.dtype == np.uint8
    assert exif is None


def test_jpeg_exif_tags_are_named(tmp_path):
    path = tmp_path / "edited.jpg"
    exif = Image.Exif()
    exif[0x0131] = "Adobe Photoshop 2024"
    exif[0x010F] = "Canon"
    Image.new("RGB", (32, 32), color=(200, 10, 10)).save(path, exif=exif)

    rgb, tags = load_image(path)
    assert tags["Software"] == "Adobe Photoshop 2024"
    assert tags["Make"] == "Canon"

    result = ImageAnalyzer().analyze(rgb, tags)
    assert result.exif.was_edited
    assert result.exif.make == "Canon"


def test_wav_is_resampled_to_analysis_rate(tmp_path):
    path = tmp_path / "low.wav"
    t = np.arange(800) / 8000
    pcm = (0.5 * np.sin(2 * np.pi * 440 * t) * 32767).astype(np.int16)
    wavfile.write(str(path), 8000, pcm)

    samples, meta = load_audio(path)
    assert meta.sample_rate == 16000
    assert samples.size == 1600
    assert meta.sample_count == 1600
    assert np.abs(samples).max() <= 1.0


def test_stereo_wav_is_downmixed(tmp_path):
    path = tmp_path / "stereo.wav"
    pcm = np.zeros((800, 2), dtype=np.int16)
    pcm[:, 0] = 16384
    wavfile.write(str(path), 16000, pcm)

    samples, meta = load_audio(path)
    assert samples.shape == (800,)
    assert samples[0] == pytest.approx(0.25)
    assert meta.sample_count == 800


def build_pdf(info: bytes, *extra: bytes) -> bytes:
    """Minimal PDF with a valid xref table; object 3 is the info dictionary."""
    bodies = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [] /Count 0 >>",
        b"<< " + info + b" >>",
        *extra,
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for num, body in enumerate(bodies, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n%s\nendobj\n" % (num, body)
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(bodies) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R /Info 3 0 R >>\n" % (len(bodies) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref
    return bytes(out)


def test_pdf_info_dictionary():
    content = build_pdf(
        b"/Title (Q1 \\050draft\\051) /Creator (Word)\n"
        b"/CreationDate (D:20240101120000Z) /Producer 4 0 R",
        b"(iText 5)",
    )
    info = extract_pdf_info(content)
    assert info.title == "Q1 (draft)"
    assert info.creator == "Word"
    assert info.producer == "iText 5"
    assert info.creation_date == "D:20240101120000Z"
    assert info.modification_date is None


def test_utf16_hex_producer_is_decoded_and_compared():
    content = build_pdf(
        b"/Creator (Adobe Acrobat) "
        b"/Producer <FEFF004D006900630072006F0073006F00660074>"
    )
    info = extract_pdf_info(content)
    assert info.producer == "Microsoft"
    assert info.creator == "Adobe Acrobat"

    result = DocumentAnalyzer().analyze(content, info)
    assert "Producer/Creator software mismatch suggests re-saving" in result.metadata_consistency.issues


def test_unparseable_pdf_gives_empty_info():
    info = extract_pdf_info(b"plain text, not a document")
    assert info.producer is None
    assert info.title is None


def test_load_document_reads_bytes(tmp_path):
    path = tmp_path / "doc.pdf"
    path.write_bytes(build_pdf(b"/Title (Invoice)"))
    content, info = load_document(path)
    assert content.startswith(b"%PDF-1.4")
    assert info.title == "Invoice"


def test_missing_video_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_video(tmp_path / "missing.mp4")
