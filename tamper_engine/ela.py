"""
Block-based Error Level Analysis (ELA).

The image is recompressed once through a ``RecompressionOracle`` and the
per-pixel RGB error between original and recompressed copy is averaged
over a regular grid of ``block_size x block_size`` cells:

    avg_diff   = sum(|R_o-R_c| + |G_o-G_c| + |B_o-B_c|) / (pixels * 3)
    normalized = min(avg_diff / saturation, 1)

Untouched content loses a uniform, texture-correlated amount of detail
when recompressed; content pasted in after the last compression
generation shows a different error level.  Cells whose normalised level
exceeds ``region_threshold`` become suspect ``Region``s.

The last row and column of cells are clipped to the image, never padded,
so the heatmap is ``ceil(H / block_size) x ceil(W / block_size)``.

Typical usage
-------------
>>> from tamper_engine.ela import ela_analyze
>>> from tamper_engine.oracle import JpegRecompressionOracle
>>> result = ela_analyze(buffer, oracle=JpegRecompressionOracle(), quality=0.95)
>>> print(result.flagged_blocks, result.heatmap.shape)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

import numpy as np

from .errors import DimensionMismatchError, EmptyImageError, OracleFailureError
from .oracle import RecompressionOracle, validate_quality
from .utils import PixelBuffer, Region

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 0.95
DEFAULT_BLOCK_SIZE = 16
SATURATION = 30.0          # avg 8-bit channel error treated as "fully divergent"
REGION_THRESHOLD = 0.3


# ---------------------------------------------------------------------------
# Data class
# ---------------------------------------------------------------------------

@dataclass
class ELAResult:
    """Error Level Analysis output for one image."""

    regions: List[Region]
    heatmap: np.ndarray               # (rows, cols) float64 in [0, 1], read-only

    # Config
    quality: float
    block_size: int

    # Statistics
    mean_level: float
    max_level: float
    flagged_blocks: int
    total_blocks: int

    @property
    def flagged_ratio(self) -> float:
        return self.flagged_blocks / self.total_blocks if self.total_blocks else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable summary for logging / JSON output."""
        return {
            "quality": self.quality,
            "block_size": self.block_size,
            "mean_level": round(self.mean_level, 4),
            "max_level": round(self.max_level, 4),
            "flagged_blocks": self.flagged_blocks,
            "total_blocks": self.total_blocks,
            "flagged_ratio": round(self.flagged_ratio, 4),
            "regions": [r.to_dict() for r in self.regions],
            "heatmap": np.round(self.heatmap, 4).tolist(),
        }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _block_levels(
    original: np.ndarray,
    recompressed: np.ndarray,
    block_size: int,
) -> np.ndarray:
    """Mean per-channel absolute RGB error for each grid cell.

    Both inputs are (H, W, 3) uint8.  Returns a (rows, cols) float64 map.
    Edge cells average over the pixels they actually contain.
    """
    h, w = original.shape[:2]
    diff = np.abs(original.astype(np.int16) - recompressed.astype(np.int16))
    pixel_err = diff.sum(axis=2, dtype=np.int64)            # (H, W)

    row_starts = np.arange(0, h, block_size)
    col_starts = np.arange(0, w, block_size)
    sums = np.add.reduceat(pixel_err, row_starts, axis=0)
    sums = np.add.reduceat(sums, col_starts, axis=1)        # (rows, cols)

    heights = np.minimum(block_size, h - row_starts)
    widths = np.minimum(block_size, w - col_starts)
    counts = np.outer(heights, widths)

    return sums / (counts * 3.0)


# ---------------------------------------------------------------------------
# Main public function
# ---------------------------------------------------------------------------

def ela_analyze(
    original: PixelBuffer,
    *,
    oracle: RecompressionOracle,
    quality: float = DEFAULT_QUALITY,
    block_size: int = DEFAULT_BLOCK_SIZE,
    saturation: float = SATURATION,
    region_threshold: float = REGION_THRESHOLD,
) -> ELAResult:
    """Run block-based Error Level Analysis on *original*.

    Parameters
    ----------
    original : PixelBuffer
        Decoded image; never modified.
    oracle : RecompressionOracle
        Codec used for the lossy round trip.
    quality : float
        Recompression quality in (0, 1].
    block_size : int
        Side of the square analysis cell in pixels.
    saturation : float
        Mean channel error mapped to a normalised level of 1.0.
    region_threshold : float
        Cells with a normalised level strictly above this become regions.

    Returns
    -------
    ELAResult

    Raises
    ------
    EmptyImageError
        If the image has zero width or height.
    DimensionMismatchError
        If the oracle returns a buffer of a different size.
    OracleFailureError
        If the round trip fails.
    """
    quality = validate_quality(quality)
    if block_size < 1:
        raise ValueError(f"block_size must be >= 1, got {block_size}")
    if saturation <= 0:
        raise ValueError(f"saturation must be > 0, got {saturation}")
    if original.is_empty:
        raise EmptyImageError(f"cannot analyse a {original.width}x{original.height} image")

    try:
        recompressed = oracle.round_trip(original, quality)
    except OracleFailureError:
        raise
    except Exception as exc:
        raise OracleFailureError(f"{type(exc).__name__}: {exc}") from exc

    if recompressed.size != original.size:
        raise DimensionMismatchError(original.size, recompressed.size)

    levels = _block_levels(original.rgb(), recompressed.rgb(), block_size)
    heatmap = np.minimum(levels / saturation, 1.0)
    heatmap.flags.writeable = False

    w, h = original.size
    regions: List[Region] = []
    for row, col in np.argwhere(heatmap > region_threshold):
        x = int(col) * block_size
        y = int(row) * block_size
        regions.append(Region(
            x=x,
            y=y,
            width=min(block_size, w - x),
            height=min(block_size, h - y),
            confidence=float(heatmap[row, col]),
        ))

    logger.debug(
        "ELA q=%.2f bs=%d: %d/%d blocks above %.2f (max level %.3f)",
        quality, block_size, len(regions), heatmap.size,
        region_threshold, float(heatmap.max()),
    )

    return ELAResult(
        regions=regions,
        heatmap=heatmap,
        quality=quality,
        block_size=block_size,
        mean_level=float(heatmap.mean()),
        max_level=float(heatmap.max()),
        flagged_blocks=len(regions),
        total_blocks=int(heatmap.size),
    )
