"""Tests for the PDF analyzer."""

import hashlib
import json
from datetime import datetime, timedelta, timezone

import pytest

from media_forensics.document import (
    DocumentAnalyzer,
    HiddenContentType,
    PdfMetadata,
    SignatureValidity,
    parse_pdf_date,
)

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

CLEAN_PDF = (
    b"%PDF-1.7\n"
    b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
    b"2 0 obj\n<< /Type /Pages /Count 0 >>\nendobj\n"
    b"xref\n0 3\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
)


def analyzer() -> DocumentAnalyzer:
    return DocumentAnalyzer(clock=lambda: NOW)


def test_clean_pdf_scores_zero():
    result = analyzer().analyze(CLEAN_PDF, PdfMetadata())
    s = result.structure
    assert s.has_valid_header
    assert s.pdf_version == "1.7"
    assert s.object_count == 2
    assert s.incremental_update_count == 0
    assert s.uses_xref_table
    assert result.modification_history.total_versions == 1
    assert not result.modification_history.was_rebuilt
    assert result.hidden_content.findings == ()
    assert result.signatures.validity is SignatureValidity.VALID
    assert result.tampering_score == 0.0
    assert result.content_hash == hashlib.sha512(CLEAN_PDF).hexdigest()


def test_two_eof_markers_without_object_streams_is_rebuilt():
    pdf = CLEAN_PDF + b"3 0 obj\n<< /Type /Annot >>\nendobj\ntrailer\n%%EOF\n"
    history = analyzer().analyze(pdf).modification_history
    assert history.total_versions == 2
    assert history.was_rebuilt
    assert len(history.modifications) == 1
    assert history.modifications[0].version_number == 2
    assert history.modifications[0].approximate_size > 0


def test_object_streams_mean_not_rebuilt():
    pdf = CLEAN_PDF + b"4 0 obj\n<< /Type /ObjStm >>\nendobj\n%%EOF\n"
    result = analyzer().analyze(pdf)
    assert result.modification_history.has_object_streams
    assert not result.modification_history.was_rebuilt
    assert result.structure.incremental_update_count == 1


def test_missing_header_adds_structure_penalty():
    result = analyzer().analyze(b"not a pdf at all")
    assert not result.structure.has_valid_header
    assert result.structure.pdf_version is None
    assert result.tampering_score == pytest.approx(0.3)


def test_metadata_date_issues():
    meta = PdfMetadata(
        creation_date=NOW + timedelta(days=10),
        modification_date=NOW,
    )
    consistency = analyzer().analyze(CLEAN_PDF, meta).metadata_consistency
    assert "Modification date precedes creation date" in consistency.issues
    assert "Creation date is in the future" in consistency.issues
    assert consistency.confidence == pytest.approx(0.6)


def test_missing_creation_date_and_producer_mismatch():
    meta = PdfMetadata(
        creator="Microsoft Word for Microsoft 365",
        producer="Adobe PDF Library 17.0",
        modification_date="D:20240131120000+02'00'",
    )
    result = analyzer().analyze(CLEAN_PDF, meta)
    issues = result.metadata_consistency.issues
    assert "Producer/Creator software mismatch suggests re-saving" in issues
    assert "Creation date missing but modification date exists" in issues
    assert result.tampering_score == pytest.approx(0.2 * 0.4)


def test_parse_pdf_date():
    ts = parse_pdf_date("D:20240131120000+02'00'")
    assert ts == datetime(2024, 1, 31, 10, 0, 0, tzinfo=timezone.utc)
    assert parse_pdf_date("D:2024") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_pdf_date("yesterday") is None
    naive = parse_pdf_date(datetime(2024, 1, 1))
    assert naive.tzinfo is timezone.utc


def test_hidden_content_detection():
    pdf = (
        b"%PDF-1.6\n"
        b"1 0 obj\n<< /OCProperties << /OCGs [2 0 R] >> >>\nendobj\n"
        b"2 0 obj\n<< /Type /OCG /Name (Draft Layer) >>\nendobj\n"
        b"3 0 obj\n<< /Type /Annot /Subtype /Text /F 2 >>\nendobj\n"
        b"stream\nBT 1 1 1 rg (secret) Tj ET\nendstream\n"
        b"%%EOF\nappended payload"
    )
    hidden = analyzer().analyze(pdf).hidden_content
    types = [f.type for f in hidden.findings]
    assert types == [
        HiddenContentType.OPTIONAL_CONTENT_LAYERS,
        HiddenContentType.WHITE_TEXT,
        HiddenContentType.HIDDEN_ANNOTATIONS,
        HiddenContentType.CONTENT_AFTER_EOF,
    ]
    assert hidden.findings[0].details == ("Draft Layer",)
    assert hidden.has_hidden_content


def test_trailing_whitespace_after_eof_is_ignored():
    result = analyzer().analyze(CLEAN_PDF + b"\r\n\x00\n")
    assert result.hidden_content.findings == ()


def test_signatures_are_unknown_validity():
    pdf = CLEAN_PDF.replace(
        b"%%EOF",
        b"5 0 obj\n<< /Type /Sig /Filter /Adobe.PPKLite /SubFilter /adbe.pkcs7.detached >>\nendobj\n%%EOF",
    )
    result = analyzer().analyze(pdf)
    sigs = result.signatures
    assert sigs.has_signatures
    assert sigs.signature_count == 1
    assert sigs.validity is SignatureValidity.UNKNOWN
    assert sigs.signatures[0].subfilter == "adbe.pkcs7.detached"
    assert sigs.signatures[0].covers_whole_document
    assert result.tampering_score == 0.0


def test_empty_document_returns_zero_result():
    result = analyzer().analyze(b"")
    assert result.tampering_score == 0.0
    assert not result.is_tampered


def test_to_dict_is_json_serializable():
    data = analyzer().analyze(CLEAN_PDF + b"%%EOF\n").to_dict()
    json.dumps(data)
    assert data["modification_history"]["total_versions"] == 2
