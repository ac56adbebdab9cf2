"""
DMC-first palette selection.

The palette is chosen from the catalog before the image is pixelized, so
the finished pattern uses exactly the requested number of colors:

1. sample the image and cluster the samples (k-means, over-provisioned),
2. score every cluster by frequency, visual impact and how much of the
   image lies close to it,
3. map the best-scoring clusters to their nearest unused catalog colors,
4. top up with the most distinct remaining catalog colors.
"""

import warnings
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from bead.cancel import CancellationToken, check_cancelled
from bead.catalog import Catalog, CatalogColor, resolve_catalog
from bead.cluster import cluster_colors, optimal_cluster_count
from bead.colorspace import RGBColor, pairwise_delta_e, rgb_array_to_lab, visual_impact
from bead.config import (
    DEFAULT_SELECTION_CONFIG,
    SELECTION_STRATEGIES,
    QualityTier,
    SelectionConfig,
    resolve_quality,
)
from bead.errors import InsufficientCatalogSize, InvalidInput, PaletteWarning
from bead.sampler import RasterImage, sample_colors
from bead.selection import PaletteBuilder


@dataclass(frozen=True)
class ColorImportance:
    centroid: RGBColor
    frequency: float
    visual_impact: float
    distribution_score: float
    importance: float


@dataclass(frozen=True)
class PaletteAnalysis:
    total_image_colors: int   # distinct colors among the samples
    image_complexity: float
    selection_strategy: str
    guaranteed_count: int
    sample_count: int
    cluster_count: int
    iterations: int


@dataclass
class PaletteSelection:
    palette: Tuple[CatalogColor, ...]
    analysis: PaletteAnalysis
    importances: List[ColorImportance] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def codes(self) -> List[str]:
        return [c.code for c in self.palette]


def image_complexity(samples: np.ndarray) -> float:
    """Ratio of distinct to total sampled colors, doubled and capped at 1."""
    if len(samples) == 0:
        return 0.0
    unique = len(np.unique(samples, axis=0))
    return min(unique / len(samples) * 2, 1.0)


def selection_strategy(quality: Union[str, QualityTier], target_count: int) -> str:
    return f"{SELECTION_STRATEGIES[resolve_quality(quality)]} ({target_count} colors)"


def distribution_scores(
    centroid_labs: np.ndarray,
    samples: np.ndarray,
    config: SelectionConfig = DEFAULT_SELECTION_CONFIG,
) -> np.ndarray:
    """
    For each centroid, the share of samples within similarity_threshold Delta E,
    scaled by 10 and capped at 1.

    Samples are collapsed to distinct colors with counts; above
    distribution_sample_limit distinct colors an even stride of them is used.
    """
    distinct, counts = np.unique(samples, axis=0, return_counts=True)
    if len(distinct) > config.distribution_sample_limit:
        step = -(-len(distinct) // config.distribution_sample_limit)
        distinct = distinct[::step]
        counts = counts[::step]
    weights = counts.astype(np.float64)
    dists = pairwise_delta_e(centroid_labs, rgb_array_to_lab(distinct))
    similar = (dists <= config.similarity_threshold).astype(np.float64) @ weights
    return np.minimum(similar / weights.sum() * 10.0, 1.0)


def score_centroids(
    samples: np.ndarray,
    centroids: np.ndarray,
    labels: np.ndarray,
    config: SelectionConfig = DEFAULT_SELECTION_CONFIG,
) -> List[ColorImportance]:
    """
    Score cluster centroids and return them sorted by importance, descending.

    Clusters with no samples are dropped and centroids that round to the same
    RGB value are folded together (their frequencies add up).
    """
    counts = np.bincount(labels, minlength=len(centroids))
    keep = counts > 0
    centroids = centroids[keep]
    counts = counts[keep]
    centroids, inverse = np.unique(centroids, axis=0, return_inverse=True)
    counts = np.bincount(np.asarray(inverse).reshape(-1), weights=counts, minlength=len(centroids))

    frequencies = counts / len(samples)
    spread = distribution_scores(rgb_array_to_lab(centroids), samples, config)

    scored = []
    for rgb, freq, dist in zip(centroids, frequencies, spread):
        color = RGBColor(*(int(v) for v in rgb))
        impact = visual_impact(color)
        scored.append(ColorImportance(
            centroid=color,
            frequency=float(freq),
            visual_impact=float(impact),
            distribution_score=float(dist),
            importance=float(freq * 0.4 + impact * 0.3 + dist * 0.3),
        ))
    # stable sort keeps ties in RGB order
    scored.sort(key=lambda c: c.importance, reverse=True)
    return scored


def primary_count(analyzed: int, target: int, config: SelectionConfig = DEFAULT_SELECTION_CONFIG) -> int:
    """
    How many scored centroids get a direct catalog match.

    Normally the top primary_share of them (at most target), leaving the
    rest of the palette to diversity fill. When the image has no more
    analysed colors than palette slots, every one of them is matched.
    """
    if analyzed <= target:
        return analyzed
    return min(target, max(1, int(analyzed * config.primary_share)))


def select_palette(
    image: RasterImage,
    target_count: int,
    quality: Union[str, QualityTier] = QualityTier.STANDARD,
    catalog: Optional[Catalog] = None,
    config: SelectionConfig = DEFAULT_SELECTION_CONFIG,
    custom_codes: Optional[Iterable[str]] = None,
    cancel: Optional[CancellationToken] = None,
) -> PaletteSelection:
    """
    Choose exactly target_count catalog colors for an image.

    Args:
        image (RasterImage): Source pixels.
        target_count (int): Requested palette size (capped at the catalog size).
        quality (str | QualityTier): Sampling tier: fast, standard or high.
        catalog (Catalog, optional): Color catalog; the DMC catalog by default.
        config (SelectionConfig): Clustering and scoring parameters.
        custom_codes (Iterable[str], optional): Restrict the catalog to these codes.
        cancel (CancellationToken, optional): Cooperative cancellation.

    Returns:
        PaletteSelection: Palette in selection order, analysis data and warnings.

    Raises:
        InvalidInput: Non-positive target, unknown quality or catalog code.
        EmptyImage: The image has no pixels.
        InsufficientCatalogSize: The palette could not be filled.
    """
    if isinstance(target_count, bool) or not isinstance(target_count, (int, np.integer)) or target_count < 1:
        raise InvalidInput(f"Target color count must be at least 1, got {target_count!r}.")
    tier = resolve_quality(quality)
    catalog = resolve_catalog(catalog, custom_codes)

    notes: List[str] = []
    target = min(int(target_count), len(catalog))
    if target < target_count:
        message = f"Requested {target_count} colors but the catalog only has {len(catalog)}; using {target}."
        notes.append(message)
        warnings.warn(message, PaletteWarning, stacklevel=2)

    check_cancelled(cancel, "sampling")
    samples = sample_colors(image, tier)
    k = optimal_cluster_count(len(samples), target, config)
    clusters = cluster_colors(samples, k, config, cancel)
    importances = score_centroids(samples, clusters.centroids, clusters.labels, config)
    check_cancelled(cancel, "scoring")

    builder = PaletteBuilder(catalog, target, cancel)
    primary = primary_count(len(importances), target, config)
    centroid_labs = rgb_array_to_lab(np.array([c.centroid for c in importances[:primary]], dtype=np.uint8))
    for lab in centroid_labs:
        if builder.full or builder.add_nearest(lab) is None:
            break
    builder.fill_diverse()
    notes.extend(builder.warnings)

    palette = builder.palette()
    if len(palette) != target:
        raise InsufficientCatalogSize(target, len(palette))

    analysis = PaletteAnalysis(
        total_image_colors=int(len(np.unique(samples, axis=0))),
        image_complexity=image_complexity(samples),
        selection_strategy=selection_strategy(tier, target),
        guaranteed_count=target,
        sample_count=int(len(samples)),
        cluster_count=int(len(clusters.centroids)),
        iterations=clusters.iterations,
    )
    return PaletteSelection(palette=palette, analysis=analysis, importances=importances, warnings=notes)
