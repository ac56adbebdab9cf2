import os
from typing import Dict, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from bead.catalog import CatalogColor


def load_font(font_path: Optional[str] = None, font_size: int = 14):
    loaded_font = None
    try:
        if font_path and os.path.isfile(font_path):
            loaded_font = ImageFont.truetype(font_path, font_size)
    except IOError:
        pass  # fall back to the default font

    if not loaded_font:
        try:
            loaded_font = ImageFont.load_default(size=font_size)
        except TypeError:  # Pillow < 10.1 has no size argument
            loaded_font = ImageFont.load_default()
    return loaded_font


def label_color(rgb) -> tuple:
    """Black or white, whichever reads better on the given swatch color."""
    r, g, b = (int(c) for c in rgb[:3])
    luma = 0.299 * r + 0.587 * g + 0.114 * b
    return (0, 0, 0) if luma > 140 else (255, 255, 255)


def _text_size(draw, font, text):
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0], bbox[3] - bbox[1], bbox[0], bbox[1]


def create_legend_image(
    palette: Sequence[CatalogColor],
    counts: Optional[Dict[str, int]] = None,
    font_path: Optional[str] = None,
    font_size: int = 14,
    swatch_size: int = 48,
    padding: int = 10,
    columns: int = 10,
):
    """
    Creates a palette legend PIL Image object.

    Each swatch is filled with the thread color and labelled with its
    catalog code; the bead count goes under the swatch when counts are given.

    Args:
        palette (Sequence[CatalogColor]): Palette in display order.
        counts (dict, optional): Bead count per catalog code.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the labels.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.
        columns (int): Swatches per row.

    Returns:
        PIL.Image.Image: The generated legend image, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    font = load_font(font_path, font_size)
    cols = max(1, min(columns, num_colors))
    rows = (num_colors + cols - 1) // cols
    caption_h = font_size + 4 if counts else 0
    cell_h = swatch_size + caption_h + padding

    width = (swatch_size * cols) + (padding * (cols + 1))
    height = padding + rows * cell_h
    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)

    for idx, color in enumerate(palette):
        row, col = divmod(idx, cols)
        x0 = padding + col * (swatch_size + padding)
        y0 = padding + row * cell_h
        fill = tuple(color.rgb)
        draw.rectangle([x0, y0, x0 + swatch_size, y0 + swatch_size], fill=fill, outline=(0, 0, 0))

        text_w, text_h, off_x, off_y = _text_size(draw, font, color.code)
        draw.text(
            (x0 + (swatch_size - text_w) / 2.0 - off_x, y0 + (swatch_size - text_h) / 2.0 - off_y),
            color.code,
            fill=label_color(fill),
            font=font,
        )

        if counts:
            caption = str(counts.get(color.code, 0))
            text_w, _, off_x, off_y = _text_size(draw, font, caption)
            draw.text(
                (x0 + (swatch_size - text_w) / 2.0 - off_x, y0 + swatch_size + 2 - off_y),
                caption,
                fill=(0, 0, 0),
                font=font,
            )

    return image
