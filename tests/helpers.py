"""Shared builders and fake oracles for the test suite."""

from __future__ import annotations

import threading
from typing import Optional, Tuple

import numpy as np

from tamper_engine.errors import OracleFailureError
from tamper_engine.oracle import RecompressionOracle
from tamper_engine.utils import PixelBuffer


def solid(width: int, height: int, color: Tuple[int, int, int] = (120, 80, 40)) -> PixelBuffer:
    arr = np.empty((height, width, 3), dtype=np.uint8)
    arr[...] = color
    return PixelBuffer.from_array(arr)


def noise_array(width: int, height: int, seed: int = 0, high: int = 256) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, high, size=(height, width, 3), dtype=np.uint8)


def noise(width: int, height: int, seed: int = 0, high: int = 256) -> PixelBuffer:
    return PixelBuffer.from_array(noise_array(width, height, seed, high))


class IdentityOracle(RecompressionOracle):
    """Lossless 'codec': returns the input unchanged."""

    def __init__(self):
        self.calls = 0

    def round_trip(self, buffer, quality):
        self.calls += 1
        return buffer


class ShiftOracle(RecompressionOracle):
    """Adds *delta* to the RGB channels, optionally only inside *box* (x0, y0, x1, y1)."""

    def __init__(self, delta: int, box: Optional[Tuple[int, int, int, int]] = None):
        self.delta = delta
        self.box = box

    def round_trip(self, buffer, quality):
        arr = buffer.rgba().astype(np.int16)
        if self.box is None:
            arr[..., :3] += self.delta
        else:
            x0, y0, x1, y1 = self.box
            arr[y0:y1, x0:x1, :3] += self.delta
        return PixelBuffer.from_array(np.clip(arr, 0, 255).astype(np.uint8))


class AlphaOnlyOracle(RecompressionOracle):
    def round_trip(self, buffer, quality):
        arr = buffer.rgba().copy()
        arr[..., 3] = 0
        return PixelBuffer.from_array(arr)


class CroppingOracle(RecompressionOracle):
    """Returns a buffer one pixel narrower than the input."""

    def round_trip(self, buffer, quality):
        return PixelBuffer.from_array(buffer.rgba()[:, :-1].copy())


class FailingOracle(RecompressionOracle):
    def __init__(self, exc: Exception = None):
        self.exc = exc or OracleFailureError("unsupported format")

    def round_trip(self, buffer, quality):
        raise self.exc


class BlockingOracle(RecompressionOracle):
    """Blocks until ``release`` is set (or 5 s pass), then acts as identity."""

    def __init__(self):
        self.release = threading.Event()

    def round_trip(self, buffer, quality):
        self.release.wait(timeout=5.0)
        return buffer
