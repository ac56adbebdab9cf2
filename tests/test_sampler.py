# tests/test_sampler.py
import numpy as np
import pytest
from PIL import Image, ImageDraw

from bead.config import QualityTier
from bead.errors import EmptyImage, InvalidInput
from bead.sampler import RasterImage, sample_colors, sample_size_for_quality


def create_dummy_image(size=(200, 200)):
    img = Image.new("RGB", size, color=(150, 120, 200))
    draw = ImageDraw.Draw(img)
    draw.rectangle([(20, 20), (80, 80)], fill=(200, 50, 50))
    draw.ellipse([(100, 100), (180, 180)], fill=(50, 200, 50))
    return img


def test_raster_image_from_pil():
    raster = RasterImage.from_pil(create_dummy_image((30, 20)))
    assert (raster.width, raster.height) == (30, 20)
    assert len(raster.data) == 30 * 20 * 4
    arr = raster.to_array()
    assert arr.shape == (20, 30, 4)
    assert tuple(arr[0, 0]) == (150, 120, 200, 255)


def test_raster_image_open(tmp_path):
    path = tmp_path / "input.png"
    create_dummy_image((16, 8)).save(path)
    raster = RasterImage.open(path)
    assert (raster.width, raster.height) == (16, 8)


def test_raster_image_rejects_mismatched_buffer():
    with pytest.raises(InvalidInput):
        RasterImage(2, 2, b"\x00" * 15)
    with pytest.raises(InvalidInput):
        RasterImage(-1, 2, b"")


def test_raster_image_copies_caller_buffer():
    buf = bytearray([10, 20, 30, 255])
    raster = RasterImage(1, 1, buf)
    buf[0] = 99
    assert raster.data[0] == 10


def test_raster_image_from_array_adds_alpha():
    arr = np.zeros((3, 4, 3), dtype=np.uint8)
    arr[..., 0] = 200
    raster = RasterImage.from_array(arr)
    assert (raster.width, raster.height) == (4, 3)
    assert tuple(raster.to_array()[2, 3]) == (200, 0, 0, 255)


def test_sample_sizes_per_tier():
    pixels = 200 * 200
    assert sample_size_for_quality("fast", pixels) == 4000
    assert sample_size_for_quality("standard", pixels) == 12000
    assert sample_size_for_quality("high", pixels) == 28000
    # caps apply on large images
    assert sample_size_for_quality(QualityTier.FAST, 10_000_000) == 10_000
    assert sample_size_for_quality(QualityTier.HIGH, 10_000_000) == 200_000


def test_tiny_images_are_sampled_in_full():
    assert sample_size_for_quality("fast", 4) == 4
    assert sample_size_for_quality("fast", 1) == 1


def test_sample_count_is_monotonic_across_tiers():
    raster = RasterImage.from_pil(create_dummy_image())
    sizes = [len(sample_colors(raster, tier)) for tier in ("fast", "standard", "high")]
    assert sizes == sorted(sizes)
    assert sizes == [4000, 12000, 28000]


def test_sample_colors_is_deterministic():
    raster = RasterImage.from_pil(create_dummy_image())
    first = sample_colors(raster, "standard")
    second = sample_colors(raster, "standard")
    assert first.shape == (12000, 3)
    assert first.dtype == np.uint8
    assert np.array_equal(first, second)


def test_empty_image_raises():
    with pytest.raises(EmptyImage):
        sample_colors(RasterImage(0, 0, b""), "fast")


def test_unknown_quality_raises():
    raster = RasterImage.from_pil(create_dummy_image((10, 10)))
    with pytest.raises(InvalidInput):
        sample_colors(raster, "ultra")
