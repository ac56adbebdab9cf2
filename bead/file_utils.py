import csv
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from PIL import Image, PngImagePlugin

from bead.catalog import CatalogColor
from bead.layout import GridDims
from bead.pixelize import GridCell

SOFTWARE_TAG = "beadgen (DMC bead pattern generator)"


def clean_metadata_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean):  # must start with a letter or underscore
        key_clean = "beadgen_" + key_clean
    # tEXt keywords are limited to 79 bytes; leave room for the prefix
    return key_clean[:70]


def save_bead_png(
    image_to_save: Image.Image,
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None,
):
    """
    Saves a PIL Image object as a PNG file, embedding beadgen metadata in tEXt chunks.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    if command_line_invocation:
        png_info.add_text("beadgen:command_line", command_line_invocation)
    png_info.add_text("Software", SOFTWARE_TAG)

    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"beadgen:{clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)


def read_bead_metadata(path: Path) -> Dict[str, str]:
    """The beadgen: tEXt entries of a PNG, keyed without the prefix."""
    with Image.open(path) as img:
        text = dict(getattr(img, "text", {}) or img.info)
    return {
        key[len("beadgen:"):]: str(value)
        for key, value in text.items()
        if isinstance(key, str) and key.startswith("beadgen:")
    }


def save_grid_csv(grid: Sequence[GridCell], grid_dims: GridDims, output_path: Path):
    """One CSV row per grid row, one catalog code per cell."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    rows: List[List[str]] = [[""] * grid_dims.width for _ in range(grid_dims.height)]
    for cell in grid:
        rows[cell.y][cell.x] = cell.assigned.code
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        csv.writer(f).writerows(rows)


def save_pattern_json(
    output_path: Path,
    palette: Sequence[CatalogColor],
    color_counts: Dict[str, int],
    grid_dims: GridDims,
    summary: Optional[Dict[str, object]] = None,
):
    """Palette, per-color bead counts and run summary as JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "grid": {"width": grid_dims.width, "height": grid_dims.height},
        "palette": [
            {
                "code": c.code,
                "name": c.name,
                "rgb": list(c.rgb),
                "hex": c.hex,
                "count": int(color_counts.get(c.code, 0)),
            }
            for c in palette
        ],
        "summary": summary or {},
    }
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
