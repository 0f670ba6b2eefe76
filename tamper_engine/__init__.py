"""
Tamper-detection engine for decoded raster images.

Each detector lives in its own module and shares common data types from
``tamper_engine.utils``.  The ``pipeline.tamper_pipeline`` module runs
them side by side and fuses their output.

Modules
-------
utils          PixelBuffer, Region, MetadataCues, image I/O, JSON helpers
errors         Engine exception hierarchy
oracle         Recompression oracle interface and Pillow JPEG round trip
ela            Block-based Error Level Analysis
copy_move      Exhaustive block-matching copy-move detection
aggregator     Confidence fusion into a [0, 100] score
"""

from .utils import ImageFileInfo, MetadataCues, PixelBuffer, Region, image_file_info, load_pixel_buffer
from .errors import (
    DimensionMismatchError,
    EmptyImageError,
    OracleFailureError,
    TamperEngineError,
)
from .oracle import JpegRecompressionOracle, RecompressionOracle
from .ela import ELAResult, ela_analyze
from .copy_move import CopyMovePair, CopyMoveResult, copy_move_detect
from .aggregator import ConfidenceAggregator, confidence_level

__all__ = [
    "ImageFileInfo", "MetadataCues", "PixelBuffer", "Region", "image_file_info", "load_pixel_buffer",
    "DimensionMismatchError", "EmptyImageError", "OracleFailureError", "TamperEngineError",
    "JpegRecompressionOracle", "RecompressionOracle",
    "ELAResult", "ela_analyze",
    "CopyMovePair", "CopyMoveResult", "copy_move_detect",
    "ConfidenceAggregator", "confidence_level",
]
