import numpy as np
import pytest

from plugins.super_resolution.core import (
    EnhancementStrengths,
    PixelBuffer,
    denoise,
    enhance,
    high_pass_boost,
    unsharp_mask,
)



def test_zero_strengths_are_identity(make_buffer):
    source = make_buffer(12, 7)
    result = enhance(source, EnhancementStrengths())
    assert np.array_equal(result.pixels, source.pixels)


@pytest.mark.parametrize(
    "strengths",
    [
        EnhancementStrengths(0.15, 0.6, 0.3),
        EnhancementStrengths(1.0, 1.0, 1.0),
        EnhancementStrengths(0.5, 0.0, 0.9),
    ],
)
@pytest.mark.parametrize("size", [(1, 1), (5, 3), (16, 16)])
def test_flat_gray_is_invariant(strengths, size):
    source = PixelBuffer.filled(size[0], size[1], (128, 128, 128, 255))
    result = enhance(source, strengths)
    assert np.all(result.pixels == np.array([128, 128, 128, 255], dtype=np.uint8))


def test_alpha_preserved_by_every_stage(make_buffer):
    source = make_buffer(9, 9)
    for result in (
        denoise(source, 0.7),
        unsharp_mask(source, 0.7),
        high_pass_boost(source, 0.7),
        enhance(source, EnhancementStrengths(0.3, 0.3, 0.3)),
    ):
        assert np.array_equal(result.alpha, source.alpha)


def test_denoise_full_strength_equals_gaussian_blur():
    pixels = np.zeros((3, 3, 4), dtype=np.uint8)
    pixels[1, 1, :3] = 160
    pixels[:, :, 3] = 255
    result = denoise(PixelBuffer(pixels), 1.0)
    # centre weight 4/16 of 160
    assert result.pixels[1, 1, 0] == 40
    # corner sees the centre with weight 1/16
    assert result.pixels[0, 0, 0] == 10


def test_unsharp_mask_increases_local_contrast():
    pixels = np.full((3, 3, 4), 100, dtype=np.uint8)
    pixels[1, 1, :3] = 190
    pixels[:, :, 3] = 255
    result = unsharp_mask(PixelBuffer(pixels), 1.0)
    # blur at the centre is (8 * 100 + 190) / 9 = 110
    assert result.pixels[1, 1, 0] == 255
    assert result.pixels[0, 0, 0] < 100


def test_strengths_are_clamped_to_unit_range():
    strengths = EnhancementStrengths(denoise=-1, detail=3, micro=0.5)
    assert (strengths.denoise, strengths.detail, strengths.micro) == (0.0, 1.0, 0.5)


def test_stage_order_matters(make_buffer):
    source = make_buffer(10, 10, opaque=True)
    forward = enhance(source, EnhancementStrengths(denoise=0.8, detail=0.8, micro=0.0))
    reordered = denoise(unsharp_mask(source, 0.8), 0.8)
    assert not np.array_equal(forward.pixels, reordered.pixels)


def test_from_mapping_ignores_bad_values():
    defaults = EnhancementStrengths(0.1, 0.2, 0.3)
    parsed = EnhancementStrengths.from_mapping({"detail": "0.9", "micro": "oops"}, defaults=defaults)
    assert parsed == EnhancementStrengths(0.1, 0.9, 0.3)


def test_denoise_rounds_halves_up():
    pixels = np.zeros((1, 2, 4), dtype=np.uint8)
    pixels[0, 0, :3] = 5
    pixels[0, 1, :3] = 1
    pixels[:, :, 3] = 255
    # Gaussian blur of the left pixel is (12 * 5 + 4 * 1) / 16 = 4, so the
    # half blend lands on 4.5.
    result = denoise(PixelBuffer(pixels), 0.5)
    assert result.pixels[0, 0, :3].tolist() == [5, 5, 5]
    assert result.pixels[0, 1, :3].tolist() == [2, 2, 2]
