"""High-level API + CLI for the evidence integrity engine."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from media_forensics.utils import save_json
from pipeline import EvidenceBundle, EvidencePipeline, load_config
from sealing import (
    DeviceDescriptor,
    EvidenceMetadata,
    IntegritySeal,
    IntegritySealer,
    forensic_footer,
    verification_report,
)

CONFIG_FORENSICS = Path("configs/forensics.yaml")


class EvidenceIntegrityAPI:
    """High-level orchestration API usable from CLI or notebooks."""

    def __init__(self, config_path: Path | None = None):
        if config_path is None and CONFIG_FORENSICS.exists():
            config_path = CONFIG_FORENSICS
        self._cfg = load_config(config_path)
        self.pipeline = EvidencePipeline(self._cfg)
        self.sealer = IntegritySealer.from_config(self._cfg.get("sealing"))

    def analyze_files(
        self,
        *,
        image: str | Path | None = None,
        video: str | Path | None = None,
        audio: str | Path | None = None,
        pdf: str | Path | None = None,
        evidence_metadata: EvidenceMetadata | None = None,
    ) -> dict[str, Any]:
        bundle = EvidenceBundle.from_paths(image=image, video=video, audio=audio, pdf=pdf)
        report = self.pipeline.analyze(bundle, evidence_metadata)
        return report.to_dict()

    def seal_file(self, path: str | Path, metadata: EvidenceMetadata) -> IntegritySeal:
        return self.sealer.seal(Path(path).read_bytes(), metadata)

    def verify_file(self, seal_path: str | Path, path: str | Path, kv: dict[str, str] | None = None):
        seal = IntegritySeal.from_json(Path(seal_path).read_text(encoding="utf-8"))
        current_kv = dict(seal.metadata_kv) if kv is None else kv
        return self.sealer.verify(seal, Path(path).read_bytes(), current_kv)


# -------------------- CLI helpers --------------------

def _parse_kv(pairs: list[str] | None) -> dict[str, str] | None:
    if pairs is None:
        return None
    out: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        out[key] = value
    return out


def _evidence_metadata(args: argparse.Namespace) -> EvidenceMetadata:
    return EvidenceMetadata(
        case_label=args.case,
        device=DeviceDescriptor(
            manufacturer=args.manufacturer,
            model=args.model,
            os_version=args.os_version,
        ),
        kv=_parse_kv(args.meta) or {},
    )


# -------------------- CLI commands --------------------

def cmd_analyze(args: argparse.Namespace) -> int:
    api = EvidenceIntegrityAPI(args.config)
    metadata = _evidence_metadata(args) if args.case else None
    report = api.analyze_files(
        image=args.image, video=args.video, audio=args.audio, pdf=args.pdf,
        evidence_metadata=metadata,
    )
    if args.out:
        out = Path(args.out) / "evidence_report.json"
        report["evidence_json"] = str(out)
        save_json(report, out)
        print(f"[analyze] Report written to {out}")
    else:
        print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0


def cmd_seal(args: argparse.Namespace) -> int:
    api = EvidenceIntegrityAPI(args.config)
    seal = api.seal_file(args.file, _evidence_metadata(args))
    out = Path(args.out) if args.out else Path(f"{args.file}.seal.json")
    out.write_text(seal.to_json(), encoding="utf-8")
    print(forensic_footer(seal), end="")
    print(f"[seal] Seal written to {out}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    api = EvidenceIntegrityAPI(args.config)
    result = api.verify_file(args.seal, args.file, _parse_kv(args.meta))
    print(verification_report(result), end="")
    return 0 if result.overall_valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-modal evidence integrity engine")
    parser.add_argument("--config", type=Path, default=None, help="YAML config (default: configs/forensics.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_case_args(p: argparse.ArgumentParser, required: bool) -> None:
        p.add_argument("--case", required=required, help="Case label bound into the seal")
        p.add_argument("--manufacturer", default="", help="Capture device manufacturer")
        p.add_argument("--model", default="", help="Capture device model")
        p.add_argument("--os-version", default="", help="Capture device OS version")
        p.add_argument("--meta", nargs="*", metavar="KEY=VALUE", help="Extra metadata to seal")

    analyze_p = sub.add_parser("analyze", help="Analyze evidence files and fuse the verdict")
    analyze_p.add_argument("--image", help="Still image (JPEG, PNG, ...)")
    analyze_p.add_argument("--video", help="Video container readable by OpenCV")
    analyze_p.add_argument("--audio", help="WAV recording")
    analyze_p.add_argument("--pdf", help="PDF document")
    analyze_p.add_argument("--out", help="Directory for evidence_report.json")
    add_case_args(analyze_p, required=False)

    seal_p = sub.add_parser("seal", help="Seal a file")
    seal_p.add_argument("--file", required=True, help="File to seal")
    seal_p.add_argument("--out", help="Seal JSON path (default: <file>.seal.json)")
    add_case_args(seal_p, required=True)

    verify_p = sub.add_parser("verify", help="Verify a file against its seal")
    verify_p.add_argument("--seal", required=True, help="Seal JSON produced by 'seal'")
    verify_p.add_argument("--file", required=True, help="File to verify")
    verify_p.add_argument(
        "--meta", nargs="*", metavar="KEY=VALUE",
        help="Current metadata (default: the metadata stored in the seal)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config_path = args.config or (CONFIG_FORENSICS if CONFIG_FORENSICS.exists() else None)
    level = "DEBUG" if args.verbose else str(
        load_config(config_path).get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "analyze": cmd_analyze,
        "seal": cmd_seal,
        "verify": cmd_verify,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
