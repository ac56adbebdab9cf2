"""
Constrained pixelization: one palette color per grid cell.

Each cell covers the source rectangle
[floor(x*W/w), floor((x+1)*W/w)) x [floor(y*H/h), floor((y+1)*H/h)),
computed in integers so neighbouring cells never overlap or leave gaps.
The cell's average color is matched to the closest palette entry by
CIEDE2000, first minimum winning ties.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from bead.cancel import CancellationToken, check_cancelled
from bead.catalog import CatalogColor
from bead.colorspace import RGBColor, rgb_array_to_lab
from bead.errors import InvalidInput
from bead.layout import GridDims
from bead.sampler import RasterImage
from bead.selection import nearest_many


@dataclass(frozen=True)
class GridCell:
    x: int
    y: int
    source_average_color: RGBColor
    center_color: RGBColor
    assigned: CatalogColor
    distance: float


@dataclass(frozen=True)
class CellAverages:
    """Per-cell average and center colors, each an (h, w, 4) uint8 array."""
    average: np.ndarray
    center: np.ndarray


@dataclass(frozen=True)
class Assignment:
    averages: CellAverages
    indices: np.ndarray    # (h, w) index into the matched palette
    distances: np.ndarray  # (h, w) Delta E to the matched color


def as_grid_dims(grid_dims: Union[GridDims, Sequence[int]]) -> GridDims:
    if isinstance(grid_dims, GridDims):
        return grid_dims
    try:
        width, height = grid_dims
    except (TypeError, ValueError):
        raise InvalidInput(f"Grid dimensions must be a (width, height) pair, got {grid_dims!r}.")
    return GridDims(int(width), int(height))


def cell_bounds(cells: int, pixels: int) -> Tuple[np.ndarray, np.ndarray]:
    """Start (inclusive) and end (exclusive) pixel of each cell along one axis."""
    idx = np.arange(cells + 1, dtype=np.int64)
    edges = idx * pixels // cells
    return edges[:-1], edges[1:]


def cell_averages(image: RasterImage, grid: GridDims, cancel: Optional[CancellationToken] = None) -> CellAverages:
    """
    Average RGBA per cell, rounded half up.

    Cells that cover no pixels (grid finer than the image) take the source
    pixel at the truncated center of their span.
    """
    if image.width < 1 or image.height < 1:
        raise InvalidInput(f"Cannot pixelize a {image.width}x{image.height} image.")
    pixels = image.to_array()
    x0, x1 = cell_bounds(grid.width, image.width)
    y0, y1 = cell_bounds(grid.height, image.height)
    cx = np.clip((x0 + x1) // 2, 0, image.width - 1)
    cy = np.clip((y0 + y1) // 2, 0, image.height - 1)
    center = pixels[cy][:, cx]

    average = np.empty((grid.height, grid.width, 4), dtype=np.uint8)
    widths = (x1 - x0)[:, None]
    for row in range(grid.height):
        check_cancelled(cancel, "pixelization")
        band = pixels[y0[row]:y1[row]].sum(axis=0, dtype=np.int64)
        prefix = np.zeros((image.width + 1, 4), dtype=np.int64)
        np.cumsum(band, axis=0, out=prefix[1:])
        sums = prefix[x1] - prefix[x0]
        counts = widths * (y1[row] - y0[row])
        safe = np.maximum(counts, 1)
        rounded = (2 * sums + safe) // (2 * safe)
        average[row] = np.where(counts > 0, rounded, center[row])
    return CellAverages(average=average, center=np.ascontiguousarray(center))


def assign_cells(
    image: RasterImage,
    grid: GridDims,
    palette_rgb: np.ndarray,
    cancel: Optional[CancellationToken] = None,
) -> Assignment:
    """Match every cell to its closest color among palette_rgb ((M, 3) uint8)."""
    palette_rgb = np.asarray(palette_rgb, dtype=np.uint8).reshape(-1, 3)
    if len(palette_rgb) == 0:
        raise InvalidInput("Cannot pixelize against an empty palette.")
    averages = cell_averages(image, grid, cancel)
    flat = averages.average[..., :3].reshape(-1, 3)
    # cells with the same average share one lookup
    distinct, inverse = np.unique(flat, axis=0, return_inverse=True)
    inverse = np.asarray(inverse).reshape(-1)
    idx, dist = nearest_many(rgb_array_to_lab(distinct), rgb_array_to_lab(palette_rgb), cancel=cancel)
    shape = (grid.height, grid.width)
    return Assignment(
        averages=averages,
        indices=idx[inverse].reshape(shape),
        distances=dist[inverse].reshape(shape),
    )


def build_cells(assignment: Assignment, palette: Sequence[CatalogColor]) -> List[GridCell]:
    """Row-major GridCell list from an assignment against palette."""
    h, w = assignment.indices.shape
    avg = assignment.averages.average
    center = assignment.averages.center
    cells = []
    for y in range(h):
        for x in range(w):
            cells.append(GridCell(
                x=x,
                y=y,
                source_average_color=RGBColor(*(int(v) for v in avg[y, x, :3])),
                center_color=RGBColor(*(int(v) for v in center[y, x, :3])),
                assigned=palette[assignment.indices[y, x]],
                distance=float(assignment.distances[y, x]),
            ))
    return cells


def pixelize(
    image: RasterImage,
    grid_dims: Union[GridDims, Sequence[int]],
    palette: Sequence[CatalogColor],
    cancel: Optional[CancellationToken] = None,
) -> List[GridCell]:
    """
    Assign one palette color to every cell of a width x height grid.

    Args:
        image (RasterImage): Source pixels.
        grid_dims (GridDims | (int, int)): Grid width and height in cells.
        palette (Sequence[CatalogColor]): Colors to choose from.
        cancel (CancellationToken, optional): Polled once per grid row.

    Returns:
        List[GridCell]: width * height cells in row-major order.
    """
    grid = as_grid_dims(grid_dims)
    palette = tuple(palette)
    palette_rgb = np.array([tuple(c.rgb) for c in palette], dtype=np.uint8).reshape(-1, 3)
    assignment = assign_cells(image, grid, palette_rgb, cancel)
    return build_cells(assignment, palette)
