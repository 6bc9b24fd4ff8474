"""Tests for the IntegritySealer and its text blocks."""

import hashlib
from datetime import datetime, timezone

import pytest

from sealing import (
    DeviceDescriptor,
    EvidenceMetadata,
    IntegritySeal,
    IntegritySealer,
    WATERMARK,
    forensic_footer,
    verification_report,
)

FIXED_TIME = datetime(2024, 3, 15, 9, 30, 12, 987654, tzinfo=timezone.utc)
CONTENT = b"%PDF-1.7 evidence bytes"


def metadata(**kv) -> EvidenceMetadata:
    return EvidenceMetadata(
        case_label="CASE-2024-017",
        device=DeviceDescriptor(manufacturer="Google", model="Pixel 8", os_version="14"),
        kv=kv or {"location": "Cape Town", "officer": "Nkosi"},
    )


def fixed_sealer() -> IntegritySealer:
    return IntegritySealer(clock=lambda: FIXED_TIME, salt_source=lambda n: b"\x01" * n)


def test_seal_round_trip_is_valid():
    sealer = IntegritySealer()
    meta = metadata()
    seal = sealer.seal(CONTENT, meta)
    result = sealer.verify(seal, CONTENT, meta)
    assert result.overall_valid
    assert result.failed_layers == ()
    assert result.message == "VERIFICATION PASSED: Evidence integrity confirmed"
    assert seal.content_hash == hashlib.sha512(CONTENT).hexdigest()
    assert len(bytes.fromhex(seal.salt)) == 32


def test_flipped_byte_fails_content_and_signature():
    sealer = IntegritySealer()
    meta = metadata()
    seal = sealer.seal(CONTENT, meta)
    tampered = bytearray(CONTENT)
    tampered[3] ^= 0x01
    result = sealer.verify(seal, bytes(tampered), meta)
    assert not result.content_intact
    assert result.metadata_intact
    assert not result.signature_intact
    assert not result.overall_valid
    assert result.failed_layers == ("content", "signature")
    assert "Content has been modified" in result.message


def test_changed_metadata_fails_metadata_and_signature():
    sealer = IntegritySealer()
    seal = sealer.seal(CONTENT, metadata())
    result = sealer.verify(seal, CONTENT, {"location": "Durban", "officer": "Nkosi"})
    assert result.content_intact
    assert not result.metadata_intact
    assert not result.signature_intact
    assert "Metadata has been modified" in result.message


def test_every_seal_gets_a_fresh_salt():
    sealer = IntegritySealer(clock=lambda: FIXED_TIME)
    a = sealer.seal(CONTENT, metadata())
    b = sealer.seal(CONTENT, metadata())
    assert a.content_hash == b.content_hash
    assert a.metadata_hash == b.metadata_hash
    assert a.salt != b.salt
    assert a.combined_signature != b.combined_signature


def test_metadata_hash_ignores_key_order():
    sealer = fixed_sealer()
    a = sealer.seal(CONTENT, metadata(b="2", a="1"))
    b = sealer.seal(CONTENT, metadata(a="1", b="2"))
    assert a.metadata_hash == b.metadata_hash
    assert a.combined_signature == b.combined_signature


def test_timestamp_is_truncated_to_seconds():
    seal = fixed_sealer().seal(CONTENT, metadata())
    assert seal.timestamp.microsecond == 0
    assert seal.to_dict()["timestamp"] == "2024-03-15T09:30:12Z"


def test_serialization_round_trip():
    sealer = IntegritySealer()
    seal = sealer.seal(CONTENT, metadata())
    restored = IntegritySeal.from_json(seal.to_json())
    assert restored == seal
    assert sealer.verify(restored, CONTENT, dict(restored.metadata_kv)).overall_valid


def test_from_dict_rejects_incomplete_seal():
    data = fixed_sealer().seal(CONTENT, metadata()).to_dict()
    del data["salt"]
    with pytest.raises(ValueError):
        IntegritySeal.from_dict(data)

    data = fixed_sealer().seal(CONTENT, metadata()).to_dict()
    data["salt"] = "not-hex"
    with pytest.raises(ValueError):
        IntegritySeal.from_dict(data)


def test_naive_clock_is_rejected():
    sealer = IntegritySealer(clock=lambda: datetime(2024, 1, 1))
    with pytest.raises(ValueError):
        sealer.seal(CONTENT, metadata())


def test_forensic_footer_layout_is_stable():
    seal = fixed_sealer().seal(CONTENT, metadata())
    footer = forensic_footer(seal)
    assert footer == forensic_footer(fixed_sealer().seal(CONTENT, metadata()))
    lines = footer.splitlines()
    assert lines[0] == "═" * 72
    assert lines[1] == "FORENSIC INTEGRITY SEAL"
    assert "Case: CASE-2024-017" in lines
    assert f"Hash: SHA512-{seal.content_hash[:64]}" in lines
    assert "Timestamp: 2024-03-15T09:30:12Z" in lines
    assert "Device: Google Pixel 8" in lines
    assert "OS: 14" in lines
    assert "Seal: VERUM OMNIS v5.2.6" in lines
    assert lines[-2] == WATERMARK


def test_verification_report_marks_tampered_layers():
    sealer = fixed_sealer()
    seal = sealer.seal(CONTENT, metadata())
    report = verification_report(sealer.verify(seal, b"other bytes", metadata()))
    assert "Layer 1 (Content Hash): ✗ TAMPERED" in report
    assert "Layer 2 (Metadata Hash): ✓ INTACT" in report
    assert "Layer 3 (HMAC Seal): ✗ TAMPERED" in report
    assert "RESULT: TAMPERING DETECTED" in report


def test_separators_inside_values_cannot_forge_other_metadata():
    sealer = IntegritySealer()
    seal = sealer.seal(b"x", metadata(a="b|c:d"))
    result = sealer.verify(seal, b"x", {"a": "b", "c": "d"})
    assert not result.metadata_intact
    assert not result.overall_valid
    assert sealer.verify(seal, b"x", {"a": "b|c:d"}).overall_valid


def test_separators_inside_device_fields_are_escaped():
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    a = IntegritySealer.metadata_payload(
        "C", when, DeviceDescriptor("Acme|X", "", ""), "5.2.6", {})
    b = IntegritySealer.metadata_payload(
        "C", when, DeviceDescriptor("Acme", "X", ""), "5.2.6", {})
    assert a != b
    assert a.startswith("CASE:C|TIMESTAMP:2024-01-01T00:00:00Z|DEVICE:Acme\\|X||OS:|")


def test_non_ascii_in_seal_file_fails_verification():
    sealer = IntegritySealer()
    data = sealer.seal(CONTENT, metadata()).to_dict()
    data["content_hash"] = "é" + data["content_hash"][1:]
    data["combined_signature"] = "ü" + data["combined_signature"][1:]
    seal = IntegritySeal.from_dict(data)
    result = sealer.verify(seal, CONTENT, metadata())
    assert not result.content_intact
    assert not result.signature_intact
    assert result.metadata_intact
    assert result.message.startswith("TAMPERING DETECTED")
