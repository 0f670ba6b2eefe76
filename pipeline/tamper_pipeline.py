"""
TamperPipeline: runs the tamper detectors on one image and fuses them.

Flow
----
  1. load           - decode the file into a PixelBuffer (analyze_file only)
  2. ela_analyze    - JPEG round trip + block error levels  } run concurrently
  3. copy_move      - exhaustive block matching             }
  4. aggregate      - ELA + copy-move + metadata cues -> [0, 100]
  5. TamperReport   - structured result, optionally written to disk

A failure in one detector is recorded in ``TamperReport.errors`` and the
other detector's result is still aggregated.  The ELA stage is bounded by
``config.ela.timeout`` seconds; when it expires the pipeline stops waiting
and continues with copy-move only.

Usage
-----
    from pipeline.tamper_pipeline import TamperPipeline
    tp = TamperPipeline(output_dir="outputs/tamper")
    report = tp.analyze_file("photo.jpg")
    print(report.confidence, report.level)
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from tamper_engine.aggregator import ConfidenceAggregator, confidence_level
from tamper_engine.copy_move import CopyMoveResult, copy_move_detect
from tamper_engine.ela import ELAResult, ela_analyze
from tamper_engine.errors import EmptyImageError
from tamper_engine.oracle import JpegRecompressionOracle, RecompressionOracle
from tamper_engine.utils import (
    ImageFileInfo,
    MetadataCues,
    PixelBuffer,
    Region,
    image_file_info,
    load_pixel_buffer,
    metadata_cues_from_file,
)

from .config import EngineConfig, load_config
from .report import save_report

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


# ─────────────────────────────────────────────────────────────────────────────
# TamperReport
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class TamperReport:
    """Fused analysis result for a single image."""

    image_name: str
    width: int = 0
    height: int = 0

    ela: Optional[ELAResult] = None
    copy_move: Optional[CopyMoveResult] = None
    metadata: MetadataCues = field(default_factory=MetadataCues)
    source: Optional[ImageFileInfo] = None   # set by analyze_file

    confidence: Optional[float] = None        # [0, 100]; None if nothing ran
    level: Optional[str] = None               # "LOW" | "MOD" | "HIGH"

    errors: Dict[str, str] = field(default_factory=dict)
    timing_ms: Dict[str, int] = field(default_factory=dict)
    saved_files: Dict[str, str] = field(default_factory=dict)

    @property
    def regions(self) -> List[Region]:
        """ELA regions followed by copy-move regions (not deduplicated)."""
        out: List[Region] = []
        if self.ela is not None:
            out.extend(self.ela.regions)
        if self.copy_move is not None:
            out.extend(self.copy_move.regions)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_name": self.image_name,
            "width": self.width,
            "height": self.height,
            "source": self.source.to_dict() if self.source is not None else None,
            "confidence": round(self.confidence, 4) if self.confidence is not None else None,
            "level": self.level,
            "metadata": {
                "has_metadata": self.metadata.has_metadata,
                "warning_count": self.metadata.warning_count,
            },
            "ela": self.ela.to_dict() if self.ela is not None else None,
            "copy_move": self.copy_move.to_dict() if self.copy_move is not None else None,
            "errors": dict(self.errors),
            "timing_ms": dict(self.timing_ms),
            "saved_files": dict(self.saved_files),
        }


# ─────────────────────────────────────────────────────────────────────────────
# TamperPipeline
# ─────────────────────────────────────────────────────────────────────────────

class TamperPipeline:
    """
    Runs ELA and copy-move detection side by side and aggregates them.

    Usage
    -----
        tp = TamperPipeline()
        report = tp.analyze(buffer, MetadataCues(has_metadata=False, warning_count=1))
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        oracle: Optional[RecompressionOracle] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ):
        self.config = config if config is not None else load_config()
        self.oracle = oracle if oracle is not None else JpegRecompressionOracle()
        self.output_dir = Path(output_dir) if output_dir is not None else None
        self.aggregator = ConfidenceAggregator(
            missing_metadata_penalty=self.config.aggregator.missing_metadata_penalty,
            warning_penalty=self.config.aggregator.warning_penalty,
        )

    # ── Detector stages ──────────────────────────────────────────────────────

    def _run_ela(self, buffer: PixelBuffer) -> ELAResult:
        cfg = self.config.ela
        return ela_analyze(
            buffer,
            oracle=self.oracle,
            quality=cfg.quality,
            block_size=cfg.block_size,
            saturation=cfg.saturation,
            region_threshold=cfg.region_threshold,
        )

    def _run_copy_move(self, buffer: PixelBuffer) -> CopyMoveResult:
        cfg = self.config.copy_move
        return copy_move_detect(
            buffer,
            block_size=cfg.block_size,
            similarity_threshold=cfg.similarity_threshold,
            min_separation=cfg.min_separation,
            workers=cfg.workers,
        )

    @staticmethod
    def _timed(fn, buffer: PixelBuffer):
        t0 = time.perf_counter()
        result = fn(buffer)
        return result, int((time.perf_counter() - t0) * 1000)

    # ── Public interface ─────────────────────────────────────────────────────

    def analyze(
        self,
        buffer: PixelBuffer,
        metadata: Optional[MetadataCues] = None,
        name: str = "image",
        source: Optional[ImageFileInfo] = None,
    ) -> TamperReport:
        """Run both detectors on *buffer* and fuse them with *metadata*.

        Parameters
        ----------
        buffer : PixelBuffer
            Decoded image.
        metadata : MetadataCues, optional
            Cues from the metadata inspector.  Defaults to "metadata
            present, no warnings".
        name : str
            Label used in the report and for the output subfolder.
        source : ImageFileInfo, optional
            File name, size and format of the decoded file, if any.

        Returns
        -------
        TamperReport

        Raises
        ------
        EmptyImageError
            If the image has zero width or height.
        """
        if buffer.is_empty:
            raise EmptyImageError(f"cannot analyse a {buffer.width}x{buffer.height} image")

        t0 = time.perf_counter()
        report = TamperReport(
            image_name=name,
            width=buffer.width,
            height=buffer.height,
            metadata=metadata if metadata is not None else MetadataCues(),
            source=source,
        )

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="tamper")
        try:
            ela_future = pool.submit(self._timed, self._run_ela, buffer)
            cm_future = pool.submit(self._timed, self._run_copy_move, buffer)

            # ------------------------------------------------------------------
            # ELA (timeout-bounded)
            # ------------------------------------------------------------------
            try:
                report.ela, report.timing_ms["ela"] = ela_future.result(
                    timeout=self.config.ela.timeout,
                )
            except concurrent.futures.TimeoutError:
                ela_future.cancel()
                report.errors["ela"] = (
                    f"TimeoutError: recompression exceeded {self.config.ela.timeout}s"
                )
                logger.warning("[%s] ELA abandoned after %ss", name, self.config.ela.timeout)
            except Exception as exc:
                report.errors["ela"] = _describe(exc)
                logger.warning("[%s] ELA failed: %s", name, report.errors["ela"])

            # ------------------------------------------------------------------
            # Copy-move
            # ------------------------------------------------------------------
            try:
                report.copy_move, report.timing_ms["copy_move"] = cm_future.result()
            except Exception as exc:
                report.errors["copy_move"] = _describe(exc)
                logger.warning("[%s] copy-move failed: %s", name, report.errors["copy_move"])
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        # ------------------------------------------------------------------
        # Aggregate
        # ------------------------------------------------------------------
        report.confidence = self.aggregator.aggregate(report.ela, report.copy_move, report.metadata)
        report.level = confidence_level(report.confidence)
        report.timing_ms["total"] = int((time.perf_counter() - t0) * 1000)

        logger.debug(
            "[%s] confidence=%.1f (%s) ela_regions=%d cm_pairs=%d errors=%s",
            name, report.confidence, report.level,
            len(report.ela.regions) if report.ela else 0,
            len(report.copy_move.pairs) if report.copy_move else 0,
            list(report.errors) or "none",
        )

        if self.output_dir is not None:
            self._save(report, buffer)

        return report

    def analyze_file(
        self,
        image_path: Union[str, Path],
        metadata: Optional[MetadataCues] = None,
        warning_count: int = 0,
        name: Optional[str] = None,
    ) -> TamperReport:
        """Load *image_path* and analyse it.

        When *metadata* is not given, EXIF presence is probed from the file
        and *warning_count* is passed through.  *name* defaults to the file
        stem.  Load failures are recorded under ``errors["image_load"]`` and
        leave ``confidence`` as ``None``.
        """
        if warning_count < 0:
            raise ValueError(f"warning_count must be >= 0, got {warning_count}")
        image_path = Path(image_path)
        name = name or image_path.stem

        try:
            buffer = load_pixel_buffer(image_path)
            source = image_file_info(image_path)
        except Exception as exc:
            report = TamperReport(image_name=name)
            report.errors["image_load"] = _describe(exc)
            logger.warning("[%s] could not load image: %s", name, report.errors["image_load"])
            return report

        if metadata is None:
            try:
                metadata = metadata_cues_from_file(image_path, warning_count=warning_count)
            except Exception as exc:
                logger.warning("[%s] metadata probe failed: %s", name, _describe(exc))
                metadata = MetadataCues(has_metadata=False, warning_count=warning_count)

        try:
            return self.analyze(buffer, metadata, name=name, source=source)
        except EmptyImageError as exc:
            report = TamperReport(
                image_name=name, width=buffer.width, height=buffer.height, source=source,
            )
            report.errors["image_load"] = _describe(exc)
            return report

    def analyze_batch(
        self,
        image_paths: Iterable[Union[str, Path]],
        verbose: bool = False,
    ) -> Dict[str, TamperReport]:
        """Analyse several files; returns ``{name: TamperReport}``.

        Names are file stems.  Files sharing a stem (``a.png``, ``a.bmp``)
        are named by their full file name instead, so neither the result
        keys nor the output subfolders collide.
        """
        paths = [Path(p) for p in image_paths]
        stems = Counter(p.stem for p in paths)
        results: Dict[str, TamperReport] = {}
        for idx, path in enumerate(paths):
            name = path.stem if stems[path.stem] == 1 else path.name
            report = self.analyze_file(path, name=name)
            results[name] = report
            if verbose:
                status = (
                    f"{report.confidence:.1f}% {report.level}"
                    if report.confidence is not None else "SKIPPED"
                )
                logger.info("[%d/%d] %s: %s", idx + 1, len(paths), name, status)
        return results

    # ── Output ───────────────────────────────────────────────────────────────

    def _save(self, report: TamperReport, buffer: PixelBuffer) -> None:
        try:
            save_report(
                report,
                self.output_dir / report.image_name,
                buffer=buffer if self.config.output.save_images else None,
            )
        except OSError as exc:
            report.errors["save"] = _describe(exc)
            logger.warning("[%s] could not save report: %s", report.image_name, report.errors["save"])
