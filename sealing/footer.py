"""Fixed-layout text blocks handed to report generators."""

from __future__ import annotations

from .sealer import SEAL_LABEL, IntegritySeal, VerificationResult, format_timestamp

RULE = "═" * 72
WATERMARK = "VERUM OMNIS FORENSIC SEAL - COURT EXHIBIT"


def forensic_footer(seal: IntegritySeal) -> str:
    """Footer printed under sealed evidence; identical seals give identical text."""
    device = seal.device_descriptor
    lines = [
        RULE,
        "FORENSIC INTEGRITY SEAL",
        RULE,
        f"Case: {seal.case_label}",
        f"Hash: SHA512-{seal.content_hash[:64]}",
        f"Timestamp: {format_timestamp(seal.timestamp)}",
        f"Device: {device.manufacturer} {device.model}",
        f"OS: {device.os_version}",
        f"Seal: {SEAL_LABEL} v{seal.algorithm_version}",
        RULE,
        WATERMARK,
        RULE,
    ]
    return "\n".join(lines) + "\n"


def _layer(ok: bool) -> str:
    return "✓ INTACT" if ok else "✗ TAMPERED"


def verification_report(result: VerificationResult) -> str:
    lines = [
        RULE,
        "TAMPERING DETECTION REPORT",
        RULE,
        f"Verification Time: {format_timestamp(result.verified_at)}",
        "",
        f"Layer 1 (Content Hash): {_layer(result.content_intact)}",
        f"Layer 2 (Metadata Hash): {_layer(result.metadata_intact)}",
        f"Layer 3 (HMAC Seal): {_layer(result.signature_intact)}",
        "",
        f"Original Hash: {result.original_content_hash[:32]}...",
        f"Current Hash:  {result.current_content_hash[:32]}...",
        "",
        f"RESULT: {result.message}",
        RULE,
    ]
    return "\n".join(lines) + "\n"
