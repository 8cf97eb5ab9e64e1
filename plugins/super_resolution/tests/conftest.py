import numpy as np
import pytest

from plugins.super_resolution.core import PixelBuffer


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def make_buffer(rng):
    """Factory for random RGBA buffers."""

    def _make(width: int, height: int, *, opaque: bool = False) -> PixelBuffer:
        pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
        if opaque:
            pixels[:, :, 3] = 255
        return PixelBuffer(pixels)

    return _make


@pytest.fixture
def nearest_model():
    """Factory for a fake model that upscales each plane by pixel replication."""

    def _factory(factor: int):
        async def _infer(tensor: np.ndarray) -> np.ndarray:
            return np.repeat(np.repeat(tensor, factor, axis=2), factor, axis=3)

        return _infer

    return _factory


@pytest.fixture
def nearest_upscale():
    def _upscale(buffer: PixelBuffer, factor: int) -> np.ndarray:
        return np.repeat(np.repeat(buffer.pixels, factor, axis=0), factor, axis=1)

    return _upscale
