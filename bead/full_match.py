"""
Full-match pattern generation.

Every cell is first matched against the whole catalog for the best possible
fidelity. The colors that come out of that are then cut down to the
requested count (prune rarely used colors, merge near-duplicates, keep the
most important), topped up with distinct catalog colors if there are too
few, and cells that lost their color are moved to the closest survivor.
"""

import warnings
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from bead.cancel import CancellationToken, check_cancelled
from bead.catalog import Catalog, CatalogColor, resolve_catalog
from bead.colorspace import rgb_array_to_lab, visual_impact
from bead.config import DEFAULT_REDUCTION_CONFIG, ReductionConfig
from bead.errors import InsufficientCatalogSize, InvalidInput, PaletteWarning
from bead.layout import GridDims
from bead.pixelize import Assignment, GridCell, as_grid_dims, assign_cells, build_cells
from bead.sampler import RasterImage
from bead.selection import PaletteBuilder, nearest_many


@dataclass(frozen=True)
class ColorUsage:
    color: CatalogColor
    pixel_count: int
    percentage: float
    importance: float
    average_distance: float
    mergeable: bool


@dataclass
class ReductionResult:
    palette: Tuple[CatalogColor, ...]
    strategy: str
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class FullMatchStatistics:
    total_cells: int
    original_color_count: int
    reduced_color_count: int
    target_color_count: int
    average_distance: float
    imperceptible_matches: int
    remapped_cells: int
    quality_score: float
    reduction_strategy: str


@dataclass
class FullMatchPattern:
    grid: List[GridCell]
    grid_dims: GridDims
    palette: Tuple[CatalogColor, ...]
    usage: List[ColorUsage]
    quality_score: float
    statistics: FullMatchStatistics
    strategy: str
    warnings: List[str] = field(default_factory=list)


def usage_importance(percentage: float, average_distance: float, color: CatalogColor) -> float:
    return (
        min(percentage / 10.0, 1.0) * 0.5
        + visual_impact(color.rgb) * 0.3
        + max(0.0, 1.0 - average_distance / 50.0) * 0.2
    )


def analyze_color_usage(
    catalog_indices: np.ndarray,
    distances: np.ndarray,
    catalog: Catalog,
    config: ReductionConfig = DEFAULT_REDUCTION_CONFIG,
    include: Optional[Iterable[int]] = None,
) -> List[ColorUsage]:
    """
    Tabulate how each matched catalog color is used across the grid.

    Args:
        catalog_indices (np.ndarray): Catalog index matched to each cell.
        distances (np.ndarray): Delta E of each cell to its match.
        catalog (Catalog): Catalog the indices point into.
        config (ReductionConfig): Mergeability thresholds.
        include (Iterable[int], optional): Catalog indices to report even
            when no cell uses them.

    Returns:
        List[ColorUsage]: Sorted by importance, highest first.
    """
    catalog_indices = np.asarray(catalog_indices).reshape(-1)
    distances = np.asarray(distances, dtype=np.float64).reshape(-1)
    total = len(catalog_indices)
    counts = np.bincount(catalog_indices, minlength=len(catalog))
    dist_sums = np.bincount(catalog_indices, weights=distances, minlength=len(catalog))

    present = set(np.flatnonzero(counts).tolist())
    if include is not None:
        present.update(int(i) for i in include)

    usage = []
    for idx in sorted(present):
        count = int(counts[idx])
        pct = count / total * 100.0 if total else 0.0
        avg = float(dist_sums[idx] / count) if count else 0.0
        color = catalog[idx]
        usage.append(ColorUsage(
            color=color,
            pixel_count=count,
            percentage=pct,
            importance=usage_importance(pct, avg, color),
            average_distance=avg,
            mergeable=pct < config.mergeable_percentage or avg > config.mergeable_distance,
        ))
    usage.sort(key=lambda u: u.importance, reverse=True)
    return usage


def merge_similar_colors(
    usage: Sequence[ColorUsage],
    target: int,
    catalog: Catalog,
    config: ReductionConfig = DEFAULT_REDUCTION_CONFIG,
    cancel: Optional[CancellationToken] = None,
) -> List[ColorUsage]:
    """
    Shrink usage towards target by folding near-duplicate colors together.

    Each step either drops a batch of the least important colors (while the
    gap to target is above bulk_gap), merges the closest mergeable pair
    within merge_threshold (the less important color's cells go to the more
    important one), or, with no such pair, drops the least important color.
    """
    result = list(usage)
    pairwise = catalog.pairwise_distances()
    iterations = 0
    while len(result) > target and iterations < config.max_merge_iterations:
        iterations += 1
        check_cancelled(cancel, "color merging")
        gap = len(result) - target

        if gap > config.bulk_gap:
            drop = min(config.bulk_batch, gap)
            weakest = set(sorted(range(len(result)), key=lambda i: result[i].importance)[:drop])
            result = [u for i, u in enumerate(result) if i not in weakest]
            continue

        candidates = [i for i, u in enumerate(result) if u.mergeable]
        pair = _closest_pair(candidates, result, catalog, pairwise, config.merge_threshold)
        if pair is None:
            weakest = min(range(len(result)), key=lambda i: result[i].importance)
            del result[weakest]
            continue

        i, j = pair
        keep, lose = (i, j) if result[i].importance >= result[j].importance else (j, i)
        result[keep] = replace(
            result[keep],
            pixel_count=result[keep].pixel_count + result[lose].pixel_count,
            percentage=result[keep].percentage + result[lose].percentage,
        )
        del result[lose]
    return result


def _closest_pair(
    candidates: List[int],
    usage: List[ColorUsage],
    catalog: Catalog,
    pairwise: np.ndarray,
    threshold: float,
) -> Optional[Tuple[int, int]]:
    if len(candidates) < 2:
        return None
    cat_idx = np.array([catalog.index_of(usage[i].color.code) for i in candidates], dtype=np.intp)
    dists = np.array(pairwise[np.ix_(cat_idx, cat_idx)], dtype=np.float64)
    # only i < j pairs within the threshold
    dists[np.tril_indices(len(cat_idx))] = np.inf
    dists[dists > threshold] = np.inf
    flat = int(np.argmin(dists))
    a, b = divmod(flat, len(cat_idx))
    if not np.isfinite(dists[a, b]):
        return None
    return candidates[a], candidates[b]


def reduce_colors_to_target(
    usage: Sequence[ColorUsage],
    target: int,
    catalog: Catalog,
    config: ReductionConfig = DEFAULT_REDUCTION_CONFIG,
    cancel: Optional[CancellationToken] = None,
) -> ReductionResult:
    """
    Cut (or grow) the matched colors to exactly target entries.

    Returns:
        ReductionResult: Palette (survivors by importance, then backfill),
        a description of the steps taken and any warnings.
    """
    notes: List[str] = []
    if len(usage) <= target:
        kept = list(usage)
        steps = [f"No reduction needed ({len(usage)} colors)."]
    else:
        steps = []
        kept = list(usage)
        survivors = [
            u for u in kept
            if u.percentage >= config.low_usage_threshold or u.importance > config.importance_keep
        ]
        if target <= len(survivors) < len(kept):
            kept = survivors
            steps.append(f"Removed low usage (<{config.low_usage_threshold}%).")
        if len(kept) > target:
            kept = merge_similar_colors(kept, target, catalog, config, cancel)
            steps.append("Merged similar colors.")
        kept.sort(key=lambda u: u.importance, reverse=True)
        if len(kept) > target:
            kept = kept[:target]
            steps.append("Selected top colors by importance.")

    builder = PaletteBuilder(catalog, target, cancel)
    for u in kept:
        builder.add(catalog.index_of(u.color.code))
    if not builder.full:
        before = len(builder)
        builder.fill_diverse()
        steps.append(f"Expanded from {before} to {len(builder)} colors.")
        notes.extend(builder.warnings)

    palette = builder.palette()
    if abs(len(palette) - target) > config.deviation_warning:
        message = f"Significant palette deviation: got {len(palette)} colors, expected {target}."
        notes.append(message)
        warnings.warn(message, PaletteWarning, stacklevel=2)
    return ReductionResult(palette=palette, strategy=" ".join(steps), warnings=notes)


def remap_to_palette(
    assignment: Assignment,
    palette: Sequence[CatalogColor],
    catalog: Catalog,
    cancel: Optional[CancellationToken] = None,
) -> Tuple[Assignment, int]:
    """
    Re-express a full-catalog assignment as indices into palette.

    Cells whose catalog match is in the palette keep it (and its distance);
    the rest go to their nearest palette color, with the distance measured
    against the palette only.

    Returns:
        (Assignment, int): The palette assignment and how many cells moved.
    """
    position: Dict[int, int] = {catalog.index_of(c.code): p for p, c in enumerate(palette)}
    lookup = np.full(len(catalog), -1, dtype=np.intp)
    for cat_idx, pos in position.items():
        lookup[cat_idx] = pos

    indices = lookup[assignment.indices]
    distances = np.array(assignment.distances, dtype=np.float64)
    moved = indices < 0
    remapped = int(moved.sum())
    if remapped:
        palette_rgb = np.array([tuple(c.rgb) for c in palette], dtype=np.uint8)
        averages = assignment.averages.average[..., :3][moved]
        idx, dist = nearest_many(rgb_array_to_lab(averages), rgb_array_to_lab(palette_rgb), cancel=cancel)
        indices[moved] = idx
        distances[moved] = dist
    return Assignment(averages=assignment.averages, indices=indices, distances=distances), remapped


def generate_full_match_pattern(
    image: RasterImage,
    grid_dims: Union[GridDims, Sequence[int]],
    target_count: int,
    catalog: Optional[Catalog] = None,
    config: ReductionConfig = DEFAULT_REDUCTION_CONFIG,
    custom_codes: Optional[Iterable[str]] = None,
    cancel: Optional[CancellationToken] = None,
) -> FullMatchPattern:
    """
    Match every cell against the full catalog, then reduce to target_count colors.

    Args:
        image (RasterImage): Source pixels.
        grid_dims (GridDims | (int, int)): Grid width and height in cells.
        target_count (int): Requested palette size (capped at the catalog size).
        catalog (Catalog, optional): Color catalog; the DMC catalog by default.
        config (ReductionConfig): Reduction thresholds.
        custom_codes (Iterable[str], optional): Restrict the catalog to these codes.
        cancel (CancellationToken, optional): Cooperative cancellation.

    Returns:
        FullMatchPattern: Grid, palette, per-color usage of the final grid,
        quality score, statistics, strategy description and warnings.
    """
    if isinstance(target_count, bool) or not isinstance(target_count, (int, np.integer)) or target_count < 1:
        raise InvalidInput(f"Target color count must be at least 1, got {target_count!r}.")
    grid = as_grid_dims(grid_dims)
    catalog = resolve_catalog(catalog, custom_codes)

    notes: List[str] = []
    target = min(int(target_count), len(catalog))
    if target < target_count:
        message = f"Requested {target_count} colors but the catalog only has {len(catalog)}; using {target}."
        notes.append(message)
        warnings.warn(message, PaletteWarning, stacklevel=2)

    full = assign_cells(image, grid, catalog.rgb, cancel)
    full_usage = analyze_color_usage(full.indices, full.distances, catalog, config)
    reduction = reduce_colors_to_target(full_usage, target, catalog, config, cancel)
    notes.extend(reduction.warnings)
    if not reduction.palette:
        raise InsufficientCatalogSize(target, len(reduction.palette))

    final, remapped = remap_to_palette(full, reduction.palette, catalog, cancel)
    grid_cells = build_cells(final, reduction.palette)

    palette_catalog_idx = [catalog.index_of(c.code) for c in reduction.palette]
    final_catalog_idx = np.asarray(palette_catalog_idx, dtype=np.intp)[final.indices]
    usage = analyze_color_usage(final_catalog_idx, final.distances, catalog, config, include=palette_catalog_idx)

    average_distance = float(full.distances.mean())
    quality = max(0.0, 1.0 - average_distance / config.quality_distance_scale)
    statistics = FullMatchStatistics(
        total_cells=grid.cell_count,
        original_color_count=len(full_usage),
        reduced_color_count=len(reduction.palette),
        target_color_count=target,
        average_distance=average_distance,
        imperceptible_matches=int((full.distances < config.imperceptible).sum()),
        remapped_cells=remapped,
        quality_score=quality,
        reduction_strategy=reduction.strategy,
    )
    return FullMatchPattern(
        grid=grid_cells,
        grid_dims=grid,
        palette=reduction.palette,
        usage=usage,
        quality_score=quality,
        statistics=statistics,
        strategy=reduction.strategy,
        warnings=notes,
    )
