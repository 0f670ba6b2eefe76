"""
Exception types raised by the tamper-detection engine.

Detectors raise these; ``pipeline.tamper_pipeline`` catches them per
detector and records them in ``TamperReport.errors`` so that one failing
signal never prevents the others from running.
"""


class TamperEngineError(Exception):
    """Base tamper-engine exception."""


class EmptyImageError(TamperEngineError, ValueError):
    """The image has zero width or height."""


class DimensionMismatchError(TamperEngineError, ValueError):
    """The recompression oracle returned a buffer of different size."""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"recompressed buffer is {actual[0]}x{actual[1]}, "
            f"expected {expected[0]}x{expected[1]}"
        )


class OracleFailureError(TamperEngineError, RuntimeError):
    """Re-encoding or decoding the image failed."""
