"""
Report export for ``TamperReport``s.

``render_markdown`` produces the plain-text analysis report (with an
optional comparison image section); ``save_report`` writes the JSON
report, the markdown report and, when a buffer is supplied, two visual
artifacts:

    ela_heatmap.png   block heatmap colour-mapped with OpenCV (JET)
    regions.png       the image with every suspect region boxed in red
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from tamper_engine.utils import PixelBuffer, apply_colormap, draw_regions, save_image, save_json

if TYPE_CHECKING:
    from .tamper_pipeline import TamperReport


def format_file_size(num_bytes: int) -> str:
    """Human-readable size: ``0 Bytes``, ``512 Bytes``, ``1.5 KB``, ``2.25 MB``."""
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{round(value, 2):g} {units[idx]}"


def _section(title: str, report: "TamperReport") -> List[str]:
    lines = [f"## {title}", ""]
    lines.append(f"Image: {report.image_name}")
    if report.source is not None:
        lines.append(f"File Name: {report.source.file_name}")
        lines.append(f"File Size: {format_file_size(report.source.size_bytes)}")
    lines.append(f"Dimensions: {report.width}x{report.height}")
    if report.source is not None:
        lines.append(f"Format: {report.source.format or 'unknown'}")
    if report.confidence is None:
        lines.append("Tampering Confidence: n/a")
    else:
        lines.append(f"Tampering Confidence: {report.confidence:.1f}% ({report.level})")
    lines.append(
        f"Metadata: {'present' if report.metadata.has_metadata else 'missing'}, "
        f"{report.metadata.warning_count} warning(s)"
    )
    lines.append("")

    regions = report.regions
    if regions:
        lines.append("Detected Modifications:")
        for idx, r in enumerate(regions, start=1):
            lines.append(f"- Region {idx}: {r.confidence * 100:.1f}% confidence at ({r.x}, {r.y})")
        lines.append("")

    if report.copy_move is not None and report.copy_move.pairs:
        lines.append("Copy-Move Pairs:")
        for p in report.copy_move.pairs:
            lines.append(
                f"- ({p.source.x}, {p.source.y}) -> ({p.target.x}, {p.target.y}) "
                f"shift={p.shift} diff={p.avg_diff:.2f}"
            )
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for stage, msg in report.errors.items():
            lines.append(f"- {stage}: {msg}")
        lines.append("")

    return lines


def render_markdown(
    report: "TamperReport",
    comparison: Optional["TamperReport"] = None,
) -> str:
    """Render one report (and optionally a comparison image) as markdown."""
    lines = ["# Image Tampering Analysis Report", ""]
    lines.extend(_section("Primary Image Analysis", report))
    if comparison is not None:
        lines.extend(_section("Comparison Image Analysis", comparison))
    return "\n".join(lines).rstrip() + "\n"


def save_report(
    report: "TamperReport",
    output_dir: Union[str, Path],
    buffer: Optional[PixelBuffer] = None,
) -> Path:
    """Write report artifacts to *output_dir*; returns the JSON path.

    Paths of everything written are recorded in ``report.saved_files``.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    if buffer is not None:
        if report.ela is not None:
            heat = apply_colormap(report.ela.heatmap, buffer.size)
            report.saved_files["ela_heatmap"] = str(save_image(heat, out, "ela_heatmap.png"))
        boxes = draw_regions(buffer, report.regions)
        report.saved_files["regions"] = str(save_image(boxes, out, "regions.png"))

    md_path = out / "report.md"
    md_path.write_text(render_markdown(report), encoding="utf-8")
    report.saved_files["markdown"] = str(md_path)

    json_path = out / "report.json"
    report.saved_files["json"] = str(json_path)
    save_json(report.to_dict(), json_path)
    return json_path
