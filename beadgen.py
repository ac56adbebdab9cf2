import os
import sys
import warnings
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import typer
import rich.traceback
from PIL import UnidentifiedImageError
from rich.console import Console
from rich.table import Table

from bead import file_utils, legend, preview, stats
from bead.catalog import default_catalog
from bead.config import DEFAULT_REDUCTION_CONFIG, PRESETS, QualityTier
from bead.dmc_first import select_palette
from bead.errors import BeadPatternError, PaletteWarning
from bead.full_match import generate_full_match_pattern
from bead.layout import BeadType, GridDims, bead_config, pattern_layout
from bead.pixelize import pixelize
from bead.sampler import RasterImage

DEFAULT_NUM_COLORS = 24
DEFAULT_WIDTH_CM = 30.0


class PatternMethod(str, Enum):
    DMC_FIRST = "dmc-first"
    FULL_MATCH = "full-match"


class BeadFile(Enum):
    PATTERN_PREVIEW = "pattern_preview"
    PALETTE_LEGEND = "palette_legend"
    GRID_CSV = "grid_csv"
    PATTERN_SUMMARY = "pattern_summary"

# Map BeadFile enum members to their base filenames
BEAD_FILE_BASENAMES: Dict[BeadFile, str] = {
    BeadFile.PATTERN_PREVIEW: "bead-pattern_preview.png",
    BeadFile.PALETTE_LEGEND: "bead-palette_legend.png",
    BeadFile.GRID_CSV: "bead-grid_codes.csv",
    BeadFile.PATTERN_SUMMARY: "bead-pattern_summary.json",
}


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[BeadFile]] = None,
) -> Dict[BeadFile, Path]:
    files_to_check_for_clobber = [output_dir / BEAD_FILE_BASENAMES[key] for key in (expect or [])]

    if not overwrite and files_to_check_for_clobber:
        clobbered_files_found = [str(p) for p in files_to_check_for_clobber if p.exists()]
        if clobbered_files_found:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered_files_found:
                typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW)
            raise typer.Exit(code=1)

    return {key: output_dir / name for key, name in BEAD_FILE_BASENAMES.items()}


def parse_color_codes(colors: Optional[str]) -> Optional[List[str]]:
    if not colors:
        return None
    codes = [c.strip() for c in colors.split(",") if c.strip()]
    return codes or None


def print_palette_table(palette, counts: Dict[str, int], total_cells: int):
    table = Table(title=f"Palette ({len(palette)} colors)")
    table.add_column("#", justify="right")
    table.add_column("Code")
    table.add_column("Name")
    table.add_column("Hex")
    table.add_column("Beads", justify="right")
    table.add_column("%", justify="right")
    for idx, color in enumerate(palette, start=1):
        count = counts.get(color.code, 0)
        pct = count / total_cells * 100 if total_cells else 0.0
        table.add_row(
            str(idx), color.code, color.name, f"[on {color.hex}]   [/] {color.hex}", str(count), f"{pct:.1f}"
        )
    Console().print(table)


def bead_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.jpg).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, writable=True, resolve_path=True,
    ),
    # --- General Options ---
    preset: Optional[str] = typer.Option(
        None, help="Preset complexity level: beginner, intermediate, master."
    ),
    num_colors: Optional[int] = typer.Option(
        None, "--num-colors", min=1, help=f"Number of thread colors in the pattern. Default: {DEFAULT_NUM_COLORS}."
    ),
    method: Optional[PatternMethod] = typer.Option(
        None, "--method", case_sensitive=False,
        help="dmc-first (pick the palette, then pixelize) or full-match (match everything, then reduce). Default: dmc-first."
    ),
    quality: QualityTier = typer.Option(
        QualityTier.STANDARD, "--quality", case_sensitive=False,
        help="Image analysis depth for dmc-first: fast, standard, high."
    ),
    colors: Optional[str] = typer.Option(
        None, "--colors", help="Comma-separated catalog codes to restrict the palette to (e.g. '310,666,B5200')."
    ),
    merge_threshold: Optional[float] = typer.Option(
        None, "--merge-threshold", min=0.0,
        help=f"Delta E under which full-match merges similar colors. Default: {DEFAULT_REDUCTION_CONFIG.merge_threshold}."
    ),
    # --- Size Options ---
    width_cm: Optional[float] = typer.Option(
        None, "--width-cm", min=0.1, help=f"Finished pattern width in cm. Default: {DEFAULT_WIDTH_CM}."
    ),
    bead_type: BeadType = typer.Option(
        BeadType.CIRCULAR, "--bead-type", case_sensitive=False, help="Bead shape: circular (2.8mm) or square (2.6mm)."
    ),
    bead_size: Optional[float] = typer.Option(
        None, "--bead-size", min=0.1, help="Override the bead pitch in mm."
    ),
    grid: Optional[str] = typer.Option(
        None, "--grid", help="Explicit grid size WIDTHxHEIGHT in beads (overrides --width-cm)."
    ),
    # --- Output Options ---
    preview_scale: int = typer.Option(10, "--preview-scale", min=1, help="Pixels per bead in the preview image. Default: 10."),
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating palette legend."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
):
    """
    Generates a DMC bead pattern from an input image.
    """
    command_line_str = " ".join(sys.argv)

    try:
        os.makedirs(output_dir, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")
    except Exception as e:
        typer.secho(f"Error creating output directory {output_dir}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    expected_outputs: List[BeadFile] = [BeadFile.PATTERN_PREVIEW, BeadFile.GRID_CSV, BeadFile.PATTERN_SUMMARY]
    if not skip_legend:
        expected_outputs.append(BeadFile.PALETTE_LEGEND)
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected_outputs)

    effective_num_colors = num_colors
    effective_width_cm = width_cm
    effective_method = method
    if preset:
        if preset not in PRESETS:
            typer.secho(f"Error: Unknown preset '{preset}'. Choose from: {', '.join(PRESETS)}.", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.echo(f"Applying preset complexity: '{preset}'")
        preset_values = PRESETS[preset]
        if effective_num_colors is None: effective_num_colors = preset_values["num_colors"]
        if effective_width_cm is None: effective_width_cm = preset_values["width_cm"]
        if effective_method is None: effective_method = PatternMethod(preset_values["method"])
    if effective_num_colors is None: effective_num_colors = DEFAULT_NUM_COLORS
    if effective_width_cm is None: effective_width_cm = DEFAULT_WIDTH_CM
    if effective_method is None: effective_method = PatternMethod.DMC_FIRST

    try:
        image = RasterImage.open(input_path)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        typer.secho(f"Error reading input image {input_path}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)
    typer.echo(f"Loaded {input_path.name}: {image.width}x{image.height} pixels.")

    try:
        if grid:
            grid_dims = GridDims.parse(grid)
            typer.echo(f"Using explicit bead grid: {grid_dims}")
        else:
            layout = pattern_layout(effective_width_cm, image.width, image.height, bead_config(bead_type, bead_size))
            grid_dims = layout.grid
            typer.echo(
                f"Bead grid {grid_dims} ({layout.total_beads} beads, {layout.bead.bead_size_mm}mm {layout.bead.bead_type.value}), "
                f"finished size {layout.actual_width_cm:.1f} x {layout.actual_height_cm:.1f} cm."
            )

        catalog = default_catalog()
        custom_codes = parse_color_codes(colors)
        if custom_codes:
            typer.echo(f"Restricting palette to {len(custom_codes)} custom catalog codes.")

        suggestion = stats.suggest_color_count(image, grid_dims, QualityTier.FAST, catalog)
        typer.echo(
            f"Suggested color count for this image: {suggestion.optimal} (maximum {suggestion.maximum}). "
            f"Pattern will use {effective_num_colors} colors via {effective_method.value}."
        )

        with warnings.catch_warnings():
            # reported below from the result's warnings list
            warnings.simplefilter("ignore", PaletteWarning)
            if effective_method is PatternMethod.FULL_MATCH:
                config = DEFAULT_REDUCTION_CONFIG
                if merge_threshold is not None:
                    config = replace(config, merge_threshold=merge_threshold)
                pattern = generate_full_match_pattern(
                    image, grid_dims, effective_num_colors, catalog=catalog, config=config, custom_codes=custom_codes
                )
                palette, cells, notes = pattern.palette, pattern.grid, pattern.warnings
                summary = {
                    "method": effective_method.value,
                    "strategy": pattern.strategy,
                    "quality_score": round(pattern.quality_score, 4),
                    "original_color_count": pattern.statistics.original_color_count,
                    "remapped_cells": pattern.statistics.remapped_cells,
                    "imperceptible_matches": pattern.statistics.imperceptible_matches,
                }
                typer.echo(f"Reduction: {pattern.strategy}")
            else:
                selection = select_palette(
                    image, effective_num_colors, quality, catalog=catalog, custom_codes=custom_codes
                )
                palette, notes = selection.palette, selection.warnings
                cells = pixelize(image, grid_dims, palette)
                summary = {
                    "method": effective_method.value,
                    "strategy": selection.analysis.selection_strategy,
                    "total_image_colors": selection.analysis.total_image_colors,
                    "image_complexity": round(selection.analysis.image_complexity, 4),
                }
                typer.echo(f"Selection: {selection.analysis.selection_strategy}")
    except BeadPatternError as e:
        typer.secho(f"Error generating pattern: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    for note in notes:
        typer.secho(f"Warning: {note}", fg=typer.colors.YELLOW)

    pattern_stats = stats.pattern_statistics(cells, palette)
    summary["selection_quality"] = round(pattern_stats.selection_quality, 4)
    summary["average_distance"] = round(pattern_stats.average_selection_distance, 4)
    summary["warnings"] = list(notes)
    typer.echo(
        f"Average color distance {pattern_stats.average_selection_distance:.2f} "
        f"(selection quality {pattern_stats.selection_quality * 100:.1f}%)."
    )

    preview_path = output_paths[BeadFile.PATTERN_PREVIEW]
    file_utils.save_bead_png(
        preview.render_preview(cells, grid_dims, scale=preview_scale),
        preview_path,
        command_line_invocation=command_line_str,
        additional_metadata={
            "Beadgen-FileType": "Pattern Preview",
            "SourceImage": str(input_path),
            "Grid": str(grid_dims),
            "Method": effective_method.value,
            "NumColorsTarget": str(effective_num_colors),
            "NumColorsActual": str(len(palette)),
            "PaletteCodes": ",".join(c.code for c in palette),
        },
    )
    typer.echo(f"Pattern preview saved to: {preview_path}")

    csv_path = output_paths[BeadFile.GRID_CSV]
    file_utils.save_grid_csv(cells, grid_dims, csv_path)
    typer.echo(f"Grid codes saved to: {csv_path}")

    json_path = output_paths[BeadFile.PATTERN_SUMMARY]
    file_utils.save_pattern_json(json_path, palette, pattern_stats.color_usage, grid_dims, summary)
    typer.echo(f"Pattern summary saved to: {json_path}")

    if not skip_legend:
        legend_path = output_paths[BeadFile.PALETTE_LEGEND]
        legend_image = legend.create_legend_image(palette, counts=pattern_stats.color_usage)
        if legend_image:
            file_utils.save_bead_png(
                legend_image,
                legend_path,
                command_line_invocation=command_line_str,
                additional_metadata={
                    "Beadgen-FileType": "Palette Legend",
                    "PaletteColors": str(len(palette)),
                },
            )
            typer.echo(f"Palette legend saved to: {legend_path}")
        else:
            typer.secho("Warning: Palette legend image could not be generated (empty palette).", fg=typer.colors.YELLOW)

    print_palette_table(palette, pattern_stats.color_usage, pattern_stats.total_cells)
    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(bead_cli)


if __name__ == "__main__":
    rich.traceback.install(show_locals=False, suppress=[typer, __name__])  # type: ignore
    typer.run(bead_cli)
