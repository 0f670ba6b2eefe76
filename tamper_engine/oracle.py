"""
Recompression oracles: re-encode a PixelBuffer lossily and decode it back.

The ELA detector only depends on the ``RecompressionOracle`` interface.
``JpegRecompressionOracle`` is the default implementation; it encodes
the image to an in-memory ``BytesIO`` JPEG at the requested quality and
decodes it straight back with Pillow.
"""

from __future__ import annotations

import io
import logging

import numpy as np
from PIL import Image

from .errors import OracleFailureError
from .utils import PixelBuffer

logger = logging.getLogger(__name__)


def validate_quality(quality: float) -> float:
    """Return *quality* as float, or raise ``ValueError`` if not in (0, 1]."""
    q = float(quality)
    if not 0.0 < q <= 1.0:
        raise ValueError(f"quality must be in (0, 1], got {quality!r}")
    return q


class RecompressionOracle:
    """
    Interface for lossy round-trip codecs.

    Implementations must return a buffer with the same width and height
    as the input and raise ``OracleFailureError`` when the codec fails.
    """

    def round_trip(self, buffer: PixelBuffer, quality: float) -> PixelBuffer:
        raise NotImplementedError


class JpegRecompressionOracle(RecompressionOracle):
    """
    JPEG round trip through Pillow.

    ``quality`` in (0, 1] is mapped to Pillow's 1..100 scale. The alpha
    channel is not representable in JPEG; the input's alpha is copied onto
    the decoded result.
    """

    def __init__(self, subsampling: int = -1):
        self.subsampling = subsampling

    def round_trip(self, buffer: PixelBuffer, quality: float) -> PixelBuffer:
        q = validate_quality(quality)
        pil_quality = max(1, min(100, int(round(q * 100))))

        try:
            img = Image.fromarray(np.ascontiguousarray(buffer.rgb()))
            buf = io.BytesIO()
            img.save(buf, format="JPEG", quality=pil_quality, subsampling=self.subsampling)
            buf.seek(0)
            with Image.open(buf) as decoded:
                rgb = np.array(decoded.convert("RGB"), dtype=np.uint8)
        except (OSError, ValueError) as exc:
            raise OracleFailureError(f"JPEG round trip failed: {exc}") from exc

        logger.debug(
            "JPEG round trip %dx%d at quality %d (%d bytes)",
            buffer.width, buffer.height, pil_quality, buf.getbuffer().nbytes,
        )

        if rgb.shape[:2] != (buffer.height, buffer.width):
            # ela_analyze rejects the size mismatch
            return PixelBuffer.from_array(rgb)

        rgba = np.concatenate([rgb, buffer.rgba()[..., 3:4]], axis=2)
        return PixelBuffer.from_array(rgba)
