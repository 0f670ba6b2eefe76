"""Tests for the Pillow JPEG recompression oracle."""

import numpy as np
import pytest
from PIL import Image

from tamper_engine.errors import OracleFailureError
from tamper_engine.oracle import JpegRecompressionOracle, RecompressionOracle, validate_quality
from tamper_engine.utils import PixelBuffer

from tests.helpers import noise_array, solid


def test_round_trip_preserves_dimensions_and_alpha():
    arr = np.concatenate(
        [noise_array(33, 17, seed=9), np.full((17, 33, 1), 128, dtype=np.uint8)], axis=2,
    )
    out = JpegRecompressionOracle().round_trip(PixelBuffer.from_array(arr), 0.9)
    assert out.size == (33, 17)
    assert np.all(out.rgba()[..., 3] == 128)


def test_lower_quality_loses_more_detail():
    img = PixelBuffer.from_array(noise_array(64, 64, seed=4))
    oracle = JpegRecompressionOracle()

    def err(q):
        rec = oracle.round_trip(img, q)
        return np.abs(img.rgb().astype(int) - rec.rgb().astype(int)).mean()

    assert err(0.3) > err(0.95)


def test_round_trip_is_deterministic():
    img = PixelBuffer.from_array(noise_array(40, 24, seed=8))
    oracle = JpegRecompressionOracle()
    a = oracle.round_trip(img, 0.75)
    b = oracle.round_trip(img, 0.75)
    assert np.array_equal(a.data, b.data)


@pytest.mark.parametrize("quality", [0, -1, 1.5, float("nan")])
def test_out_of_range_quality(quality):
    with pytest.raises(ValueError, match="quality"):
        JpegRecompressionOracle().round_trip(solid(8, 8), quality)


def test_validate_quality_accepts_upper_bound():
    assert validate_quality(1) == 1.0


def test_codec_errors_are_wrapped(monkeypatch):
    def boom(self, *args, **kwargs):
        raise OSError("encoder exploded")

    monkeypatch.setattr(Image.Image, "save", boom)
    with pytest.raises(OracleFailureError, match="encoder exploded"):
        JpegRecompressionOracle().round_trip(solid(8, 8), 0.9)


def test_base_oracle_is_abstract():
    with pytest.raises(NotImplementedError):
        RecompressionOracle().round_trip(solid(2, 2), 0.9)
