import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bead.errors import InvalidInput


class BeadType(str, Enum):
    CIRCULAR = "circular"
    SQUARE = "square"


# Default bead pitch in millimetres
BEAD_SIZES_MM = {
    BeadType.CIRCULAR: 2.8,
    BeadType.SQUARE: 2.6,
}


@dataclass(frozen=True)
class GridDims:
    width: int
    height: int

    def __post_init__(self):
        if self.width < 1 or self.height < 1:
            raise InvalidInput(f"Grid must be at least 1x1, got {self.width}x{self.height}.")

    @property
    def cell_count(self) -> int:
        return self.width * self.height

    @classmethod
    def parse(cls, text: str) -> "GridDims":
        """Parse 'WxH' (e.g. '60x40')."""
        try:
            w, h = text.lower().split("x")
            return cls(int(w), int(h))
        except ValueError:
            raise InvalidInput(f"Grid size must look like WIDTHxHEIGHT, got '{text}'.")

    def __str__(self):
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class BeadConfig:
    bead_type: BeadType
    bead_size_mm: float

    @property
    def beads_per_cm(self) -> float:
        return 10.0 / self.bead_size_mm


@dataclass(frozen=True)
class PatternLayout:
    grid: GridDims
    bead: BeadConfig
    actual_width_cm: float
    actual_height_cm: float

    @property
    def total_beads(self) -> int:
        return self.grid.cell_count


def bead_config(bead_type="circular", bead_size: Optional[float] = None) -> BeadConfig:
    try:
        bead_type = BeadType(bead_type)
    except ValueError:
        raise InvalidInput(f"Unknown bead type '{bead_type}'. Expected 'circular' or 'square'.")
    size = BEAD_SIZES_MM[bead_type] if bead_size is None else float(bead_size)
    if size <= 0:
        raise InvalidInput(f"Bead size must be positive, got {size} mm.")
    return BeadConfig(bead_type, size)


def pattern_layout(target_width_cm: float, image_width: int, image_height: int, bead: BeadConfig) -> PatternLayout:
    """
    Size the bead grid for a target physical width, keeping the image aspect ratio.

    Args:
        target_width_cm (float): Desired finished width.
        image_width (int): Source image width in pixels.
        image_height (int): Source image height in pixels.
        bead (BeadConfig): Bead type and pitch.

    Returns:
        PatternLayout: Grid dimensions and the physical size they actually give.
    """
    if target_width_cm <= 0:
        raise InvalidInput(f"Target width must be positive, got {target_width_cm} cm.")
    if image_width < 1 or image_height < 1:
        raise InvalidInput(f"Image must be at least 1x1 pixels, got {image_width}x{image_height}.")
    per_cm = bead.beads_per_cm
    aspect = image_height / image_width
    # half-up rounding, at least one bead each way
    grid_w = max(1, int(math.floor(target_width_cm * per_cm + 0.5)))
    grid_h = max(1, int(math.floor(target_width_cm * aspect * per_cm + 0.5)))
    return PatternLayout(
        grid=GridDims(grid_w, grid_h),
        bead=bead,
        actual_width_cm=grid_w / per_cm,
        actual_height_cm=grid_h / per_cm,
    )
