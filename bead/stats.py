from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from bead.catalog import Catalog, CatalogColor, default_catalog
from bead.config import SUGGESTION_SAMPLING, QualityTier, resolve_quality
from bead.errors import EmptyImage
from bead.layout import GridDims
from bead.pixelize import GridCell, as_grid_dims
from bead.sampler import RasterImage


@dataclass(frozen=True)
class PatternStatistics:
    total_cells: int
    guaranteed_colors: int
    average_selection_distance: float
    color_usage: Dict[str, int]
    selection_quality: float


@dataclass(frozen=True)
class ColorStatistic:
    color: CatalogColor
    count: int
    percentage: float


@dataclass(frozen=True)
class ColorSuggestion:
    optimal: int
    maximum: int
    unique_colors: int


def pattern_statistics(grid: Sequence[GridCell], palette: Sequence[CatalogColor]) -> PatternStatistics:
    """
    Summary numbers for a pixelized grid.

    selection_quality is 1 for a perfect match and falls to 0 as the mean
    cell-to-color Delta E reaches 50.
    """
    usage: Dict[str, int] = {}
    total_distance = 0.0
    for cell in grid:
        usage[cell.assigned.code] = usage.get(cell.assigned.code, 0) + 1
        total_distance += cell.distance
    average = total_distance / len(grid) if grid else 0.0
    return PatternStatistics(
        total_cells=len(grid),
        guaranteed_colors=len(palette),
        average_selection_distance=average,
        color_usage=usage,
        selection_quality=max(0.0, 1.0 - average / 50.0),
    )


def color_statistics(stats: PatternStatistics, palette: Sequence[CatalogColor]) -> List[ColorStatistic]:
    """Per-color counts for the palette colors actually used, most used first."""
    by_code = {c.code: c for c in palette}
    rows = [
        ColorStatistic(by_code[code], count, count / stats.total_cells * 100.0)
        for code, count in stats.color_usage.items()
        if code in by_code
    ]
    rows.sort(key=lambda s: s.count, reverse=True)
    return rows


def suggest_color_count(
    image: RasterImage,
    grid_dims: Union[GridDims, Sequence[int]],
    quality: Union[str, QualityTier] = QualityTier.STANDARD,
    catalog: Optional[Catalog] = None,
) -> ColorSuggestion:
    """
    Rough optimal and maximum palette sizes for an image and grid.

    Busier images and larger grids push the optimal count up; the maximum is
    bounded by the distinct colors seen, the catalog size and two cells per
    color.

    Args:
        image (RasterImage): Source pixels.
        grid_dims (GridDims | (int, int)): Pattern grid size.
        quality (str | QualityTier): fast samples 5% of pixels (up to 5,000),
            anything else 20% (up to 20,000).
        catalog (Catalog, optional): Bounds the maximum; DMC by default.

    Returns:
        ColorSuggestion
    """
    grid = as_grid_dims(grid_dims)
    catalog = catalog if catalog is not None else default_catalog()
    total = image.pixel_count
    if total == 0:
        raise EmptyImage(f"Image {image.width}x{image.height} has no pixels to analyse.")

    cap, share = SUGGESTION_SAMPLING[resolve_quality(quality)]
    sample_size = min(cap, total * share)
    step = max(1, int(total // sample_size)) if sample_size >= 1 else 1
    rgb = image.to_array().reshape(-1, 4)[::step, :3]
    unique = len(np.unique(rgb, axis=0))

    cells = grid.cell_count
    complexity = min(unique / 1000.0, 1.0)
    size = min(cells / 10000.0, 1.0)
    base = min(unique, 80)
    optimal = max(8, min(int(np.floor(base * (0.5 + complexity * 0.3 + size * 0.2) + 0.5)), 120))
    maximum = min(min(unique, len(catalog)), min(cells // 2, 300))
    return ColorSuggestion(
        optimal=min(optimal, maximum),
        maximum=max(maximum, optimal + 20),
        unique_colors=unique,
    )
