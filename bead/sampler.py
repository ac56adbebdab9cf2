from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from bead.config import MIN_SAMPLE_COUNT, QUALITY_TIERS, QualityTier, resolve_quality
from bead.errors import EmptyImage, InvalidInput


@dataclass(frozen=True)
class RasterImage:
    """
    Raw pixel buffer: width, height and row-major RGBA bytes (4 per pixel).

    Construction copies the caller's bytes, so nothing returned by the
    pipelines aliases a caller-owned buffer.
    """
    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if not isinstance(self.width, (int, np.integer)) or not isinstance(self.height, (int, np.integer)):
            raise InvalidInput(f"Image dimensions must be integers, got {self.width!r}x{self.height!r}.")
        if self.width < 0 or self.height < 0:
            raise InvalidInput(f"Image dimensions must not be negative, got {self.width}x{self.height}.")
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise InvalidInput(
                f"RGBA buffer holds {len(self.data)} bytes, expected {expected} for a {self.width}x{self.height} image."
            )
        object.__setattr__(self, "data", bytes(self.data))

    @classmethod
    def from_pil(cls, image: Image.Image) -> "RasterImage":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(image.width, image.height, image.tobytes())

    @classmethod
    def open(cls, path: Union[str, Path]) -> "RasterImage":
        with Image.open(path) as img:
            return cls.from_pil(img)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterImage":
        """Build from an HxWx3 (opaque) or HxWx4 uint8 array."""
        array = np.asarray(array)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise InvalidInput(f"Expected an HxWx3 or HxWx4 array, got shape {array.shape}.")
        array = array.astype(np.uint8, copy=False)
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        h, w, _ = array.shape
        return cls(w, h, np.ascontiguousarray(array).tobytes())

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def to_array(self) -> np.ndarray:
        """Read-only HxWx4 uint8 view of the pixels."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)


def sample_size_for_quality(quality: Union[str, QualityTier], pixel_count: int) -> int:
    """
    Number of pixels to sample for a quality tier.

    The tier gives min(cap, share of pixels); images too small for that to
    be meaningful are sampled in full up to MIN_SAMPLE_COUNT pixels.
    """
    cap, share = QUALITY_TIERS[resolve_quality(quality)]
    size = min(cap, int(pixel_count * share))
    return max(size, min(pixel_count, MIN_SAMPLE_COUNT))


def sample_colors(image: RasterImage, quality: Union[str, QualityTier] = QualityTier.STANDARD) -> np.ndarray:
    """
    Take a deterministic, evenly strided sample of pixel colors.

    Args:
        image (RasterImage): Source pixels.
        quality (str | QualityTier): fast, standard or high.

    Returns:
        np.ndarray: (N, 3) uint8 RGB samples, N == sample_size_for_quality(...).

    Raises:
        EmptyImage: If the image has no pixels.
    """
    total = image.pixel_count
    if total == 0:
        raise EmptyImage(f"Image {image.width}x{image.height} has no pixels to sample.")
    sample_size = sample_size_for_quality(quality, total)
    step = max(1, total // sample_size)
    rgb = image.to_array().reshape(-1, 4)[:, :3]
    return np.array(rgb[::step][:sample_size], dtype=np.uint8)
