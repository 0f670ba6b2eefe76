"""High-level API + CLI for the image tamper-detection engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from pipeline import TamperPipeline, TamperReport, load_config, render_markdown
from tamper_engine.utils import MetadataCues, json_sanitize

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp"}

logger = logging.getLogger("tamper")


def setup_logging(verbose: bool = False) -> None:
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[tamper] %(message)s"))
        logger.addHandler(handler)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    # detector modules log under their own package names
    for name in ("tamper_engine", "pipeline"):
        child = logging.getLogger(name)
        child.setLevel(level)
        if not child.handlers:
            child.addHandler(logger.handlers[0])


class TamperDetectorAPI:
    """High-level orchestration API usable from CLI or notebooks."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        quality: Optional[float] = None,
    ):
        cfg = load_config(config_path)
        if quality is not None:
            cfg.ela.quality = quality
        if output_dir is None and cfg.output.dir:
            output_dir = Path(cfg.output.dir)
        self.config = cfg
        self.pipeline = TamperPipeline(config=cfg, output_dir=output_dir)

    def analyze(
        self,
        image_path: Path,
        has_metadata: Optional[bool] = None,
        warnings: int = 0,
    ) -> TamperReport:
        metadata = None
        if has_metadata is not None:
            metadata = MetadataCues(has_metadata=has_metadata, warning_count=warnings)
        return self.pipeline.analyze_file(image_path, metadata=metadata, warning_count=warnings)

    def analyze_dir(self, image_dir: Path) -> dict[str, TamperReport]:
        paths = sorted(p for p in image_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        return self.pipeline.analyze_batch(paths, verbose=True)


# -------------------- CLI commands --------------------

def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def _metadata_flag(args: argparse.Namespace) -> Optional[bool]:
    if args.has_metadata:
        return True
    if args.no_metadata:
        return False
    return None


def _api(args: argparse.Namespace) -> TamperDetectorAPI:
    return TamperDetectorAPI(
        config_path=args.config,
        output_dir=args.out,
        quality=args.quality,
    )


def cmd_analyze(args: argparse.Namespace) -> int:
    api = _api(args)
    flag = _metadata_flag(args)
    report = api.analyze(args.image, has_metadata=flag, warnings=args.warnings)
    comparison = None
    if args.compare is not None:
        comparison = api.analyze(args.compare, has_metadata=flag, warnings=args.warnings)

    if "image_load" in report.errors:
        logger.error("%s", report.errors["image_load"])
        return 1

    if args.markdown:
        print(render_markdown(report, comparison), end="")
    elif "json" in report.saved_files:
        print(report.saved_files["json"])
    else:
        out: Any = report.to_dict()
        if comparison is not None:
            out = {"primary": out, "comparison": comparison.to_dict()}
        print(json.dumps(json_sanitize(out), indent=2, ensure_ascii=False))
    return 0


def cmd_batch(args: argparse.Namespace) -> int:
    api = _api(args)
    results = api.analyze_dir(args.image_dir)
    summary = {
        name: {"confidence": r.confidence, "level": r.level, "errors": r.errors}
        for name, r in results.items()
    }
    print(json.dumps(json_sanitize(summary), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Image tamper detection (ELA + copy-move)")
    parser.add_argument("--config", type=Path, default=None, help="Engine YAML config")
    parser.add_argument("--out", type=Path, default=None, help="Directory for report artifacts")
    parser.add_argument("--quality", type=float, default=None, help="ELA recompression quality (0, 1]")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze_p = sub.add_parser("analyze", help="Analyse a single image")
    analyze_p.add_argument("image", type=Path, help="Image file")
    analyze_p.add_argument("--compare", type=Path, default=None, help="Second image for side-by-side report")
    meta = analyze_p.add_mutually_exclusive_group()
    meta.add_argument("--has-metadata", action="store_true", help="Treat metadata as present")
    meta.add_argument("--no-metadata", action="store_true", help="Treat metadata as missing")
    analyze_p.add_argument("--warnings", type=non_negative_int, default=0, help="Metadata warning count")
    analyze_p.add_argument("--markdown", action="store_true", help="Print the markdown report")

    batch_p = sub.add_parser("batch", help="Analyse every image in a directory")
    batch_p.add_argument("image_dir", type=Path, help="Directory of images")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "analyze": cmd_analyze,
        "batch": cmd_batch,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
