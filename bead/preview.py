from typing import Sequence

import numpy as np
from PIL import Image, ImageDraw

from bead.layout import GridDims
from bead.pixelize import GridCell

GRID_LINE_COLOR = (200, 200, 200)


def render_preview(
    grid: Sequence[GridCell],
    grid_dims: GridDims,
    scale: int = 10,
    grid_lines: bool = True,
) -> Image.Image:
    """
    Draw the pattern: each cell becomes a scale x scale block of its assigned
    thread color, optionally separated by light grid lines.
    """
    if scale < 1:
        raise ValueError(f"Preview scale must be at least 1, got {scale}.")
    w, h = grid_dims.width, grid_dims.height
    cells = np.zeros((h, w, 3), dtype=np.uint8)
    for cell in grid:
        cells[cell.y, cell.x] = tuple(cell.assigned.rgb)

    blocks = np.repeat(np.repeat(cells, scale, axis=0), scale, axis=1)
    image = Image.fromarray(blocks, "RGB")
    if grid_lines and scale > 2:
        draw = ImageDraw.Draw(image)
        for x in range(1, w):
            draw.line([(x * scale, 0), (x * scale, h * scale - 1)], fill=GRID_LINE_COLOR)
        for y in range(1, h):
            draw.line([(0, y * scale), (w * scale - 1, y * scale)], fill=GRID_LINE_COLOR)
    return image
