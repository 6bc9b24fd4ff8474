"""
media_forensics.document — PDF tamper analysis.

The PDF is inspected as raw bytes (decoded as Latin-1 so every byte maps
to one character); no PDF library is involved.  Five independent checks
feed the score:

1. **Structure** — header, version, object count, incremental updates,
   active content (JavaScript), external links, embedded files.
2. **Metadata consistency** — date ordering, producer/creator family
   mismatch, missing or future creation date.
3. **Modification history** — one revision per ``%%EOF`` marker.
4. **Hidden content** — optional-content layers, white text, hidden
   annotations, trailing data after the last ``%%EOF``.
5. **Signatures** — signature dictionaries and their sub-filters.
   Cryptographic validation is not performed, so validity is reported as
   :attr:`SignatureValidity.UNKNOWN` whenever signatures are present.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Union

from .buffers import Medium
from .utils import clamp01

logger = logging.getLogger(__name__)

EOF_MARKER = "%%EOF"
PRODUCER_FAMILIES = ("Adobe", "Microsoft", "LibreOffice", "PDFlib")
MAX_LAYER_DETAILS = 5
# Bit 2 of the annotation /F entry is the "Hidden" flag.
ANNOT_HIDDEN_FLAG = 2

_OBJECT_RE = re.compile(r"\d+ \d+ obj")
_LAYER_NAME_RE = re.compile(r"/Name\s*\(([^)]+)\)")
_ANNOT_FLAGS_RE = re.compile(r"/Annot.*?/F\s+(\d+)")
_SIG_TYPE_RE = re.compile(r"/Type\s*/Sig\b")
_SUBFILTER_RE = re.compile(r"/SubFilter\s*/([^\s/>]+)")
_PDF_DATE_RE = re.compile(
    r"^(?:D:)?(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?"
    r"(?:([Zz+\-])(?:(\d{2})'?(?:(\d{2})'?)?)?)?$"
)

DateLike = Union[datetime, str, None]


class ModificationEventType(str, Enum):
    INCREMENTAL_UPDATE = "INCREMENTAL_UPDATE"
    FULL_SAVE = "FULL_SAVE"
    OPTIMIZE = "OPTIMIZE"
    SIGN = "SIGN"


class HiddenContentType(str, Enum):
    OPTIONAL_CONTENT_LAYERS = "OPTIONAL_CONTENT_LAYERS"
    WHITE_TEXT = "WHITE_TEXT"
    HIDDEN_ANNOTATIONS = "HIDDEN_ANNOTATIONS"
    EMBEDDED_FILES = "EMBEDDED_FILES"
    CONTENT_AFTER_EOF = "CONTENT_AFTER_EOF"


class SignatureValidity(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    UNKNOWN = "UNKNOWN"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def parse_pdf_date(value: DateLike) -> Optional[datetime]:
    """Normalise a PDF date to an aware ``datetime``.

    Accepts ``datetime`` objects (naive values are taken as UTC) and PDF
    date strings such as ``"D:20240131120000+02'00'"``.  Unparseable
    strings yield ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    m = _PDF_DATE_RE.match(str(value).strip())
    if not m:
        return None
    year, month, day, hour, minute, second, sign, tzh, tzm = m.groups()
    try:
        tz = timezone.utc
        if sign in ("+", "-"):
            offset = timedelta(hours=int(tzh or 0), minutes=int(tzm or 0))
            tz = timezone(offset if sign == "+" else -offset)
        return datetime(
            int(year), int(month or 1), int(day or 1),
            int(hour or 0), int(minute or 0), int(second or 0), tzinfo=tz,
        )
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PdfMetadata:
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    creator: Optional[str] = None
    producer: Optional[str] = None
    creation_date: DateLike = None
    modification_date: DateLike = None
    keywords: Optional[str] = None


@dataclass(frozen=True)
class PdfStructureAnalysis:
    has_valid_header: bool = False
    pdf_version: Optional[str] = None
    object_count: int = 0
    incremental_update_count: int = 0
    has_javascript: bool = False
    has_external_links: bool = False
    has_embedded_files: bool = False
    uses_xref_stream: bool = False
    uses_xref_table: bool = False

    @property
    def has_incremental_updates(self) -> bool:
        return self.incremental_update_count > 0


@dataclass(frozen=True)
class MetadataConsistency:
    issues: Tuple[str, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.issues

    @property
    def confidence(self) -> float:
        return 1.0 - min(len(self.issues) * 0.2, 0.8)


@dataclass(frozen=True)
class ModificationEvent:
    version_number: int
    approximate_size: int
    event_type: ModificationEventType = ModificationEventType.INCREMENTAL_UPDATE


@dataclass(frozen=True)
class ModificationHistory:
    total_versions: int = 0
    modifications: Tuple[ModificationEvent, ...] = ()
    has_object_streams: bool = False
    is_linearized: bool = False
    was_rebuilt: bool = False


@dataclass(frozen=True)
class HiddenContentFinding:
    type: HiddenContentType
    description: str
    details: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HiddenContentAnalysis:
    findings: Tuple[HiddenContentFinding, ...] = ()

    @property
    def has_hidden_content(self) -> bool:
        return bool(self.findings)


@dataclass(frozen=True)
class SignatureInfo:
    index: int
    subfilter: str
    is_valid: SignatureValidity = SignatureValidity.UNKNOWN
    covers_whole_document: bool = False


@dataclass(frozen=True)
class SignatureStatus:
    signature_count: int = 0
    signatures: Tuple[SignatureInfo, ...] = ()
    validity: SignatureValidity = SignatureValidity.VALID

    @property
    def has_signatures(self) -> bool:
        return self.signature_count > 0


@dataclass(frozen=True)
class DocumentResult:
    medium: ClassVar[Medium] = Medium.DOCUMENT

    tampering_score: float = 0.0
    structure: PdfStructureAnalysis = field(default_factory=PdfStructureAnalysis)
    metadata_consistency: MetadataConsistency = field(default_factory=MetadataConsistency)
    modification_history: ModificationHistory = field(default_factory=ModificationHistory)
    hidden_content: HiddenContentAnalysis = field(default_factory=HiddenContentAnalysis)
    signatures: SignatureStatus = field(default_factory=SignatureStatus)
    content_hash: str = ""

    @property
    def is_tampered(self) -> bool:
        return self.tampering_score > 0.5

    def to_dict(self) -> Dict[str, Any]:
        s = self.structure
        h = self.modification_history
        return {
            "medium": self.medium.value,
            "tampering_score": round(self.tampering_score, 4),
            "is_tampered": self.is_tampered,
            "content_hash": self.content_hash,
            "structure": {
                "has_valid_header": s.has_valid_header,
                "pdf_version": s.pdf_version,
                "object_count": s.object_count,
                "incremental_update_count": s.incremental_update_count,
                "has_javascript": s.has_javascript,
                "has_external_links": s.has_external_links,
                "has_embedded_files": s.has_embedded_files,
                "uses_xref_stream": s.uses_xref_stream,
                "uses_xref_table": s.uses_xref_table,
            },
            "metadata_consistency": {
                "is_consistent": self.metadata_consistency.is_consistent,
                "confidence": round(self.metadata_consistency.confidence, 4),
                "issues": list(self.metadata_consistency.issues),
            },
            "modification_history": {
                "total_versions": h.total_versions,
                "has_object_streams": h.has_object_streams,
                "is_linearized": h.is_linearized,
                "was_rebuilt": h.was_rebuilt,
                "modifications": [
                    {
                        "version_number": m.version_number,
                        "approximate_size": m.approximate_size,
                        "event_type": m.event_type.value,
                    }
                    for m in h.modifications
                ],
            },
            "hidden_content": [
                {"type": f.type.value, "description": f.description, "details": list(f.details)}
                for f in self.hidden_content.findings
            ],
            "signatures": {
                "signature_count": self.signatures.signature_count,
                "validity": self.signatures.validity.value,
                "signatures": [
                    {
                        "index": sig.index,
                        "subfilter": sig.subfilter,
                        "is_valid": sig.is_valid.value,
                        "covers_whole_document": sig.covers_whole_document,
                    }
                    for sig in self.signatures.signatures
                ],
            },
        }


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _eof_positions(text: str) -> List[int]:
    positions: List[int] = []
    pos = text.find(EOF_MARKER)
    while pos != -1:
        positions.append(pos)
        pos = text.find(EOF_MARKER, pos + len(EOF_MARKER))
    return positions


def analyze_structure(text: str) -> PdfStructureAnalysis:
    has_header = text.startswith("%PDF-")
    return PdfStructureAnalysis(
        has_valid_header=has_header,
        pdf_version=text[5:8] if has_header else None,
        object_count=len(_OBJECT_RE.findall(text)),
        incremental_update_count=max(text.count(EOF_MARKER) - 1, 0),
        has_javascript="/JavaScript" in text or "/JS" in text,
        has_external_links="/URI" in text or "/GoToR" in text,
        has_embedded_files="/EmbeddedFile" in text,
        uses_xref_stream="/XRef" in text,
        uses_xref_table="xref" in text,
    )


def _producer_family(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    lowered = name.lower()
    for family in PRODUCER_FAMILIES:
        if family.lower() in lowered:
            return family
    return None


def check_metadata_consistency(metadata: PdfMetadata, now: datetime) -> MetadataConsistency:
    """Cross-check the declared document information dictionary."""
    issues: List[str] = []
    created = parse_pdf_date(metadata.creation_date)
    modified = parse_pdf_date(metadata.modification_date)

    if created is not None and modified is not None and modified < created:
        issues.append("Modification date precedes creation date")

    producer = _producer_family(metadata.producer)
    creator = _producer_family(metadata.creator)
    if producer is not None and creator is not None and producer != creator:
        issues.append("Producer/Creator software mismatch suggests re-saving")

    if created is None and modified is not None:
        issues.append("Creation date missing but modification date exists")

    if created is not None and created > now:
        issues.append("Creation date is in the future")

    return MetadataConsistency(issues=tuple(issues))


def analyze_modifications(text: str) -> ModificationHistory:
    """One revision per ``%%EOF``; each gap between markers is an update."""
    eofs = _eof_positions(text)
    events = tuple(
        ModificationEvent(version_number=i + 2, approximate_size=eofs[i + 1] - eofs[i])
        for i in range(len(eofs) - 1)
    )
    has_obj_streams = "/ObjStm" in text
    return ModificationHistory(
        total_versions=len(eofs),
        modifications=events,
        has_object_streams=has_obj_streams,
        is_linearized="/Linearized" in text,
        was_rebuilt=len(eofs) > 1 and not has_obj_streams,
    )


def detect_hidden_content(content: bytes, text: str) -> HiddenContentAnalysis:
    findings: List[HiddenContentFinding] = []

    if "/OCProperties" in text or "/OC" in text:
        layers = _LAYER_NAME_RE.findall(text)
        if layers:
            findings.append(HiddenContentFinding(
                type=HiddenContentType.OPTIONAL_CONTENT_LAYERS,
                description=f"Document contains {len(layers)} optional content layers",
                details=tuple(layers[:MAX_LAYER_DETAILS]),
            ))

    if "1 1 1 rg" in text or "1 g" in text:
        findings.append(HiddenContentFinding(
            type=HiddenContentType.WHITE_TEXT,
            description="Document may contain white/invisible text",
        ))

    for flags in _ANNOT_FLAGS_RE.findall(text):
        if int(flags) & ANNOT_HIDDEN_FLAG:
            findings.append(HiddenContentFinding(
                type=HiddenContentType.HIDDEN_ANNOTATIONS,
                description="Hidden annotations detected",
                details=(f"/F {flags}",),
            ))

    last = text.rfind(EOF_MARKER)
    if last != -1:
        trailing = content[last + len(EOF_MARKER):]
        if trailing.strip(b"\x00\r\n\t\x0c "):
            findings.append(HiddenContentFinding(
                type=HiddenContentType.CONTENT_AFTER_EOF,
                description="Data found after document end marker",
                details=(f"{len(trailing)} bytes after %%EOF",),
            ))

    return HiddenContentAnalysis(findings=tuple(findings))


def inspect_signatures(text: str) -> SignatureStatus:
    count = len(_SIG_TYPE_RE.findall(text))
    if "/Sig" not in text or "/SubFilter" not in text or count == 0:
        return SignatureStatus()

    subfilters = _SUBFILTER_RE.findall(text)
    signatures = tuple(
        SignatureInfo(
            index=i,
            subfilter=subfilters[i] if i < len(subfilters) else "Unknown",
            covers_whole_document=(i == count - 1),
        )
        for i in range(count)
    )
    return SignatureStatus(
        signature_count=count,
        signatures=signatures,
        validity=SignatureValidity.UNKNOWN,
    )


def document_score(
    structure: PdfStructureAnalysis,
    consistency: MetadataConsistency,
    history: ModificationHistory,
    hidden: HiddenContentAnalysis,
    signatures: SignatureStatus,
) -> float:
    score = 0.0
    if not structure.has_valid_header:
        score += 0.3
    if structure.has_javascript:
        score += 0.1
    if structure.incremental_update_count > 5:
        score += 0.15
    score += (1.0 - consistency.confidence) * 0.2
    if history.was_rebuilt:
        score += 0.15
    if history.total_versions > 3:
        score += 0.1
    score += 0.15 * min(len(hidden.findings), 3)
    if signatures.has_signatures and signatures.validity is SignatureValidity.INVALID:
        score += 0.3
    return clamp01(score)


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentAnalyzer:
    """Stateless PDF analyzer.

    Args:
        clock: returns the current aware ``datetime``; the future-date
            check compares against it.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None) -> "DocumentAnalyzer":
        return cls()

    def analyze(self, content: bytes, metadata: Optional[PdfMetadata] = None) -> DocumentResult:
        content = bytes(content or b"")
        metadata = metadata or PdfMetadata()
        if not content:
            logger.debug("Empty document buffer; returning zero result")
            return DocumentResult(content_hash=hashlib.sha512(b"").hexdigest())

        text = content.decode("latin-1")
        structure = analyze_structure(text)
        consistency = check_metadata_consistency(metadata, self.clock())
        history = analyze_modifications(text)
        hidden = detect_hidden_content(content, text)
        signatures = inspect_signatures(text)
        score = document_score(structure, consistency, history, hidden, signatures)

        logger.debug(
            "Document: %d bytes, %d versions, %d hidden findings, score=%.3f",
            len(content), history.total_versions, len(hidden.findings), score,
        )
        return DocumentResult(
            tampering_score=score,
            structure=structure,
            metadata_consistency=consistency,
            modification_history=history,
            hidden_content=hidden,
            signatures=signatures,
            content_hash=hashlib.sha512(content).hexdigest(),
        )
