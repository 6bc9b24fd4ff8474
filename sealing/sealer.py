"""
IntegritySealer: three-layer cryptographic seal over a piece of evidence.

Layer 1  content_hash       SHA-512 of the raw evidence bytes (hex).
Layer 2  metadata_hash      SHA-512 of a canonical metadata payload:
                            CASE:<case>|TIMESTAMP:<iso>|DEVICE:<make>|<model>|
                            OS:<os>|SEAL:VERUM OMNIS v<version>|k1:v1|k2:v2|...
                            (key/value pairs sorted by key; backslash, ``|``
                            and ``:`` inside caller-supplied fields are
                            backslash-escaped).
Layer 3  combined_signature Base64 HMAC-SHA512 over
                            "<content_hash>|<metadata_hash>|<epoch>|<version>"
                            keyed with SHA-512("<content_hash>:<salt>:verum-omnis-forensic").

Every seal draws a fresh 32-byte salt from the ``secrets`` CSPRNG, so two
seals over identical content still differ.  Verification recomputes all
three layers from the presented bytes and metadata and reports each one
separately; a failed verification is a result, not an exception.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

ALGORITHM_VERSION = "5.2.6"
SALT_BYTES = 32
KEY_CONTEXT = "verum-omnis-forensic"
SEAL_LABEL = "VERUM OMNIS"

MSG_PASSED = "VERIFICATION PASSED: Evidence integrity confirmed"
MSG_CONTENT = "Content has been modified"
MSG_METADATA = "Metadata has been modified"
MSG_SIGNATURE = "Cryptographic seal is invalid"

_REQUIRED_FIELDS = (
    "content_hash", "metadata_hash", "combined_signature", "timestamp",
    "salt", "algorithm_version", "case_label", "device_descriptor",
)


def sha512_hex(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha512(data).hexdigest()


def _escape_field(value: Any) -> str:
    """Backslash-escape the payload separators so distinct fields never collide."""
    text = str(value)
    return text.replace("\\", "\\\\").replace("|", "\\|").replace(":", "\\:")


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 with seconds precision and an explicit offset (``Z`` for UTC)."""
    if ts.tzinfo is None:
        raise ValueError("Seal timestamps must be timezone-aware")
    text = ts.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def parse_timestamp(text: str) -> datetime:
    value = str(text).strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        raise ValueError(f"Timestamp without offset: {text!r}")
    return ts


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceDescriptor:
    manufacturer: str = ""
    model: str = ""
    os_version: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "manufacturer": self.manufacturer,
            "model": self.model,
            "os_version": self.os_version,
        }


@dataclass(frozen=True)
class EvidenceMetadata:
    """What the caller declares about the evidence at sealing time."""

    case_label: str
    device: DeviceDescriptor = field(default_factory=DeviceDescriptor)
    kv: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IntegritySeal:
    content_hash: str
    metadata_hash: str
    combined_signature: str
    timestamp: datetime
    salt: str
    algorithm_version: str
    case_label: str
    device_descriptor: DeviceDescriptor
    metadata_kv: Tuple[Tuple[str, str], ...] = ()

    @property
    def epoch_seconds(self) -> int:
        return int(self.timestamp.timestamp())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "metadata_hash": self.metadata_hash,
            "combined_signature": self.combined_signature,
            "timestamp": format_timestamp(self.timestamp),
            "salt": self.salt,
            "algorithm_version": self.algorithm_version,
            "case_label": self.case_label,
            "device_descriptor": self.device_descriptor.to_dict(),
            "metadata_kv": dict(self.metadata_kv),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IntegritySeal":
        """Rebuild a seal from its serialized form.

        Raises
        ------
        ValueError
            If a field is missing or malformed.
        """
        missing = [k for k in _REQUIRED_FIELDS if k not in data]
        if missing:
            raise ValueError(f"Seal is missing fields: {', '.join(missing)}")
        try:
            bytes.fromhex(str(data["salt"]))
        except ValueError as exc:
            raise ValueError(f"Seal salt is not hex: {exc}") from exc
        device = data["device_descriptor"]
        if not isinstance(device, Mapping):
            raise ValueError("device_descriptor must be an object")
        kv = data.get("metadata_kv") or {}
        if not isinstance(kv, Mapping):
            raise ValueError("metadata_kv must be an object")
        return cls(
            content_hash=str(data["content_hash"]),
            metadata_hash=str(data["metadata_hash"]),
            combined_signature=str(data["combined_signature"]),
            timestamp=parse_timestamp(data["timestamp"]),
            salt=str(data["salt"]),
            algorithm_version=str(data["algorithm_version"]),
            case_label=str(data["case_label"]),
            device_descriptor=DeviceDescriptor(
                manufacturer=str(device.get("manufacturer", "")),
                model=str(device.get("model", "")),
                os_version=str(device.get("os_version", "")),
            ),
            metadata_kv=tuple(sorted((str(k), str(v)) for k, v in kv.items())),
        )

    @classmethod
    def from_json(cls, text: str) -> "IntegritySeal":
        return cls.from_dict(json.loads(text))


@dataclass(frozen=True)
class VerificationResult:
    content_intact: bool
    metadata_intact: bool
    signature_intact: bool
    message: str
    original_content_hash: str
    current_content_hash: str
    verified_at: datetime

    @property
    def overall_valid(self) -> bool:
        return self.content_intact and self.metadata_intact and self.signature_intact

    @property
    def failed_layers(self) -> Tuple[str, ...]:
        layers = []
        if not self.content_intact:
            layers.append("content")
        if not self.metadata_intact:
            layers.append("metadata")
        if not self.signature_intact:
            layers.append("signature")
        return tuple(layers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_valid": self.overall_valid,
            "content_intact": self.content_intact,
            "metadata_intact": self.metadata_intact,
            "signature_intact": self.signature_intact,
            "failed_layers": list(self.failed_layers),
            "message": self.message,
            "original_content_hash": self.original_content_hash,
            "current_content_hash": self.current_content_hash,
            "verified_at": format_timestamp(self.verified_at),
        }


# ---------------------------------------------------------------------------
# Sealer
# ---------------------------------------------------------------------------

def _same(expected: str, stored: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), str(stored).encode("utf-8"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntegritySealer:
    """Creates and verifies integrity seals.

    Args:
        algorithm_version: version string bound into new seals.
        clock: returns the current aware ``datetime``.
        salt_source: returns *n* random bytes; must be a CSPRNG outside
            of tests.
    """

    def __init__(
        self,
        algorithm_version: str = ALGORITHM_VERSION,
        clock: Callable[[], datetime] = _utcnow,
        salt_source: Callable[[int], bytes] = secrets.token_bytes,
    ):
        self.algorithm_version = algorithm_version
        self.clock = clock
        self.salt_source = salt_source

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "IntegritySealer":
        cfg = cfg or {}
        return cls(algorithm_version=str(cfg.get("algorithm_version", ALGORITHM_VERSION)))

    # -- payloads --------------------------------------------------------

    @staticmethod
    def metadata_payload(
        case_label: str,
        timestamp: datetime,
        device: DeviceDescriptor,
        algorithm_version: str,
        kv: Mapping[str, str],
    ) -> str:
        """Canonical metadata string; caller-supplied fields are escaped."""
        e = _escape_field
        parts = [
            f"CASE:{e(case_label)}",
            f"TIMESTAMP:{format_timestamp(timestamp)}",
            f"DEVICE:{e(device.manufacturer)}",
            e(device.model),
            f"OS:{e(device.os_version)}",
            f"SEAL:{SEAL_LABEL} v{e(algorithm_version)}",
        ]
        parts.extend(f"{e(k)}:{e(v)}" for k, v in sorted((str(k), str(v)) for k, v in kv.items()))
        return "|".join(parts) + "|"

    @staticmethod
    def _signature(
        content_hash: str, metadata_hash: str, epoch: int, version: str, salt: str,
    ) -> str:
        key = hashlib.sha512(f"{content_hash}:{salt}:{KEY_CONTEXT}".encode("utf-8")).digest()
        message = f"{content_hash}|{metadata_hash}|{epoch}|{version}".encode("utf-8")
        digest = hmac.new(key, message, hashlib.sha512).digest()
        return base64.b64encode(digest).decode("ascii")

    # -- public API ------------------------------------------------------

    def seal(self, content: bytes, metadata: EvidenceMetadata) -> IntegritySeal:
        timestamp = self.clock().replace(microsecond=0)
        if timestamp.tzinfo is None:
            raise ValueError("Sealer clock must return timezone-aware datetimes")

        content_hash = sha512_hex(bytes(content))
        metadata_hash = sha512_hex(self.metadata_payload(
            metadata.case_label, timestamp, metadata.device, self.algorithm_version, metadata.kv,
        ))
        salt = self.salt_source(SALT_BYTES).hex()
        signature = self._signature(
            content_hash, metadata_hash, int(timestamp.timestamp()), self.algorithm_version, salt,
        )
        logger.info(
            "Sealed %d bytes for case %r (content %s...)",
            len(content), metadata.case_label, content_hash[:16],
        )
        return IntegritySeal(
            content_hash=content_hash,
            metadata_hash=metadata_hash,
            combined_signature=signature,
            timestamp=timestamp,
            salt=salt,
            algorithm_version=self.algorithm_version,
            case_label=metadata.case_label,
            device_descriptor=metadata.device,
            metadata_kv=tuple(sorted((str(k), str(v)) for k, v in metadata.kv.items())),
        )

    def verify(
        self,
        seal: IntegritySeal,
        current_content: bytes,
        current_metadata: Union[Mapping[str, str], EvidenceMetadata, None] = None,
    ) -> VerificationResult:
        """Recompute every layer against the presented content and metadata.

        Case label, device and timestamp always come from the seal itself;
        only the key/value metadata is taken from *current_metadata*.
        """
        if isinstance(current_metadata, EvidenceMetadata):
            kv: Mapping[str, str] = current_metadata.kv
        else:
            kv = current_metadata or {}

        current_hash = sha512_hex(bytes(current_content))
        current_meta_hash = sha512_hex(self.metadata_payload(
            seal.case_label, seal.timestamp, seal.device_descriptor, seal.algorithm_version, kv,
        ))
        expected_sig = self._signature(
            current_hash, current_meta_hash, seal.epoch_seconds, seal.algorithm_version, seal.salt,
        )

        # bytes, so a seal file carrying non-ASCII text fails instead of raising
        content_ok = _same(current_hash, seal.content_hash)
        metadata_ok = _same(current_meta_hash, seal.metadata_hash)
        signature_ok = _same(expected_sig, seal.combined_signature)

        problems = []
        if not content_ok:
            problems.append(MSG_CONTENT)
        if not metadata_ok:
            problems.append(MSG_METADATA)
        if not signature_ok:
            problems.append(MSG_SIGNATURE)
        message = "TAMPERING DETECTED: " + "; ".join(problems) if problems else MSG_PASSED

        if problems:
            logger.warning("Seal verification failed for case %r: %s", seal.case_label, message)
        return VerificationResult(
            content_intact=content_ok,
            metadata_intact=metadata_ok,
            signature_intact=signature_ok,
            message=message,
            original_content_hash=seal.content_hash,
            current_content_hash=current_hash,
            verified_at=self.clock().replace(microsecond=0),
        )
