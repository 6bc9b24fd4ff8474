"""
pipeline.evidence_pipeline — Orchestration layer for multi-medium analysis.

Coordinates one analysis run over an :class:`EvidenceBundle`:

1. **Fan-out** — every medium present in the bundle is submitted to its
   analyzer on a thread pool.  The set of media is fixed before any work
   starts.
2. **Join** — all futures are awaited.  A failing analyzer is logged and
   recorded under ``errors``; the other media are unaffected.
3. **Fusion** — the successful results are fused into one verdict.
4. **Sealing** — when evidence metadata is supplied, the raw bytes of each
   loaded file are sealed.
5. **Report** — everything is merged into an :class:`EvidenceReport` and,
   when an output directory is given, persisted as
   ``evidence_report.json``.

Usage
-----
    from pipeline import EvidenceBundle, build_evidence_report

    bundle = EvidenceBundle.from_paths(image="photo.jpg", audio="call.wav")
    report = build_evidence_report(bundle, output_dir="outputs/case_001")
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
import yaml

from fusion import FusionEngine, FusionResult
from media_forensics import (
    AudioAnalyzer,
    AudioMetadata,
    DocumentAnalyzer,
    ImageAnalyzer,
    Medium,
    MediumResult,
    PdfMetadata,
    VideoAnalyzer,
    VideoMetadata,
)
from media_forensics import loaders
from media_forensics.utils import save_json
from sealing import EvidenceMetadata, IntegritySeal, IntegritySealer

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "configs" / "forensics.yaml"
REPORT_NAME = "evidence_report.json"


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Read the YAML configuration; a missing default file yields ``{}``."""
    path = Path(config_path) if config_path is not None else CONFIG_PATH
    if config_path is None and not path.exists():
        logger.warning("Default config %s not found; using built-in thresholds", path)
        return {}
    with open(path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return cfg or {}


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class EvidenceBundle:
    """Decoded buffers for one case, at most one per medium.

    ``raw`` keeps the undecoded file bytes per medium so they can be
    sealed; it is filled by :meth:`from_paths`.
    """

    image: Optional[np.ndarray] = None
    exif: Optional[Dict[str, str]] = None
    video_frames: Optional[List[np.ndarray]] = None
    video_metadata: Optional[VideoMetadata] = None
    audio_samples: Optional[np.ndarray] = None
    audio_metadata: Optional[AudioMetadata] = None
    document: Optional[bytes] = None
    document_metadata: Optional[PdfMetadata] = None
    raw: Dict[Medium, bytes] = field(default_factory=dict)
    sources: Dict[Medium, str] = field(default_factory=dict)

    @property
    def media(self) -> List[Medium]:
        present = []
        if self.image is not None:
            present.append(Medium.IMAGE)
        if self.video_frames is not None:
            present.append(Medium.VIDEO)
        if self.audio_samples is not None:
            present.append(Medium.AUDIO)
        if self.document is not None:
            present.append(Medium.DOCUMENT)
        return present

    @classmethod
    def from_paths(
        cls,
        image: Optional[Union[str, Path]] = None,
        video: Optional[Union[str, Path]] = None,
        audio: Optional[Union[str, Path]] = None,
        pdf: Optional[Union[str, Path]] = None,
    ) -> "EvidenceBundle":
        """Decode evidence files with :mod:`media_forensics.loaders`.

        Decoding errors propagate: a file that cannot be read is a caller
        problem, not a tampering signal.
        """
        bundle = cls()
        if image is not None:
            bundle.image, bundle.exif = loaders.load_image(image)
            bundle._remember(Medium.IMAGE, image)
        if video is not None:
            bundle.video_frames, bundle.video_metadata = loaders.load_video(video)
            bundle._remember(Medium.VIDEO, video)
        if audio is not None:
            bundle.audio_samples, bundle.audio_metadata = loaders.load_audio(audio)
            bundle._remember(Medium.AUDIO, audio)
        if pdf is not None:
            bundle.document, bundle.document_metadata = loaders.load_document(pdf)
            bundle._remember(Medium.DOCUMENT, pdf)
        return bundle

    def _remember(self, medium: Medium, path: Union[str, Path]) -> None:
        p = Path(path)
        self.raw[medium] = p.read_bytes()
        self.sources[medium] = str(p)


@dataclass
class EvidenceReport:
    results: Dict[Medium, MediumResult]
    fusion: Optional[FusionResult]
    seals: Dict[Medium, IntegritySeal] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    sources: Dict[Medium, str] = field(default_factory=dict)
    timing_ms: float = 0.0
    evidence_json: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": {m.value: s for m, s in self.sources.items()},
            "results": {m.value: r.to_dict() for m, r in self.results.items()},
            "fusion": self.fusion.to_dict() if self.fusion is not None else None,
            "seals": {m.value: s.to_dict() for m, s in self.seals.items()},
            "errors": dict(self.errors),
            "timing_ms": round(self.timing_ms, 1),
            "evidence_json": self.evidence_json,
        }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class EvidencePipeline:
    """
    Runs the analyzers for every medium of a bundle in parallel and fuses
    the outcome.

    Args:
        config: parsed configuration dict (see ``configs/forensics.yaml``);
            ``None`` loads the default file.
        max_workers: thread-pool size.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, max_workers: int = 4):
        cfg = load_config() if config is None else config
        self.config = cfg
        self.max_workers = max_workers
        self.image_analyzer = ImageAnalyzer.from_config(cfg.get("image"))
        self.video_analyzer = VideoAnalyzer.from_config(cfg.get("video"))
        self.audio_analyzer = AudioAnalyzer.from_config(cfg.get("audio"))
        self.document_analyzer = DocumentAnalyzer.from_config(cfg.get("document"))
        self.fusion_engine = FusionEngine.from_config(cfg.get("fusion"))
        self.sealer = IntegritySealer.from_config(cfg.get("sealing"))

    def _tasks(self, bundle: EvidenceBundle) -> Dict[Medium, Callable[[], MediumResult]]:
        tasks: Dict[Medium, Callable[[], MediumResult]] = {}
        if bundle.image is not None:
            tasks[Medium.IMAGE] = lambda: self.image_analyzer.analyze(bundle.image, bundle.exif)
        if bundle.video_frames is not None:
            tasks[Medium.VIDEO] = lambda: self.video_analyzer.analyze(
                bundle.video_frames, bundle.video_metadata)
        if bundle.audio_samples is not None:
            tasks[Medium.AUDIO] = lambda: self.audio_analyzer.analyze(
                bundle.audio_samples, bundle.audio_metadata)
        if bundle.document is not None:
            tasks[Medium.DOCUMENT] = lambda: self.document_analyzer.analyze(
                bundle.document, bundle.document_metadata)
        return tasks

    def analyze(
        self,
        bundle: EvidenceBundle,
        evidence_metadata: Optional[EvidenceMetadata] = None,
    ) -> EvidenceReport:
        t0 = time.time()
        errors: Dict[str, str] = {}
        results: Dict[Medium, MediumResult] = {}

        tasks = self._tasks(bundle)
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures: Dict[Medium, Future] = {m: pool.submit(fn) for m, fn in tasks.items()}
            for medium, future in futures.items():
                try:
                    results[medium] = future.result()
                except Exception as exc:
                    errors[medium.value.lower()] = f"{type(exc).__name__}: {exc}"
                    logger.warning("%s analysis failed: %s", medium.value.title(), exc)

        fusion: Optional[FusionResult] = None
        try:
            fusion = self.fusion_engine.fuse(results)
        except Exception as exc:
            errors["fusion"] = f"{type(exc).__name__}: {exc}"
            logger.warning("Fusion failed: %s", exc)

        seals: Dict[Medium, IntegritySeal] = {}
        if evidence_metadata is not None:
            for medium, raw in bundle.raw.items():
                try:
                    seals[medium] = self.sealer.seal(raw, evidence_metadata)
                except Exception as exc:
                    errors[f"seal_{medium.value.lower()}"] = f"{type(exc).__name__}: {exc}"
                    logger.warning("Sealing %s failed: %s", medium.value.lower(), exc)

        return EvidenceReport(
            results=results,
            fusion=fusion,
            seals=seals,
            errors=errors,
            sources=dict(bundle.sources),
            timing_ms=(time.time() - t0) * 1000.0,
        )


def build_evidence_report(
    bundle: EvidenceBundle,
    output_dir: Optional[Union[str, Path]] = None,
    evidence_metadata: Optional[EvidenceMetadata] = None,
    config: Optional[Dict[str, Any]] = None,
) -> EvidenceReport:
    """Run the full pipeline and optionally persist ``evidence_report.json``.

    Parameters
    ----------
    bundle : EvidenceBundle
        Decoded evidence.
    output_dir : str or Path, optional
        Directory for the JSON report; nothing is written when omitted.
    evidence_metadata : EvidenceMetadata, optional
        Case/device metadata; when given, each loaded file is sealed.
    config : dict, optional
        Parsed configuration; the default YAML file is used when omitted.
    """
    report = EvidencePipeline(config).analyze(bundle, evidence_metadata)
    if output_dir is not None:
        out = Path(output_dir) / REPORT_NAME
        report.evidence_json = str(out)
        save_json(report.to_dict(), out)
        logger.info("Evidence report written to %s", out)
    return report
