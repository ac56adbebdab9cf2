import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from bead.errors import InvalidInput


class QualityTier(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    HIGH = "high"


# Sample cap and share of image pixels for each analysis quality tier
QUALITY_TIERS: Dict[QualityTier, Tuple[int, float]] = {
    QualityTier.FAST: (10_000, 0.1),
    QualityTier.STANDARD: (50_000, 0.3),
    QualityTier.HIGH: (200_000, 0.7),
}

# Tiny images are analysed in full up to this many pixels, whatever the tier.
MIN_SAMPLE_COUNT = 256

# Strategy labels reported with a DMC-first palette
SELECTION_STRATEGIES: Dict[QualityTier, str] = {
    QualityTier.FAST: "Frequency-based selection",
    QualityTier.STANDARD: "Multi-factor analysis",
    QualityTier.HIGH: "Comprehensive perceptual analysis",
}

CATALOG_ENV_VAR = "BEADGEN_CATALOG"
DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "dmc_colors.csv"


@dataclass(frozen=True)
class SelectionConfig:
    """Tuning for the DMC-first palette selector."""
    oversampling: int = 8               # clusters requested per palette slot
    max_clusters: int = 2000
    cluster_divisor: int = 5            # never more than samples / divisor clusters
    primary_share: float = 0.8          # share of analysed colors matched directly
    similarity_threshold: float = 20.0  # Delta E for the distribution score
    distribution_sample_limit: int = 4096
    random_state: int = 42


@dataclass(frozen=True)
class ReductionConfig:
    """Tuning for full-match color reduction. Defaults are the tuned values the
    reducer has always shipped with; override rather than edit them."""
    low_usage_threshold: float = 0.5    # percent of cells
    importance_keep: float = 0.7        # low-usage colors above this survive pruning
    merge_threshold: float = 12.0       # Delta E
    bulk_gap: int = 50                  # above this gap, drop the weakest in batches
    bulk_batch: int = 3
    max_merge_iterations: int = 100
    mergeable_percentage: float = 2.0
    mergeable_distance: float = 15.0
    deviation_warning: int = 5
    imperceptible: float = 1.0          # Delta E below which a match counts as exact
    quality_distance_scale: float = 30.0


DEFAULT_SELECTION_CONFIG = SelectionConfig()
DEFAULT_REDUCTION_CONFIG = ReductionConfig()

# Complexity presets for the CLI
PRESETS: Dict[str, Dict[str, object]] = {
    "beginner": {"num_colors": 10, "width_cm": 20.0, "method": "dmc-first"},
    "intermediate": {"num_colors": 24, "width_cm": 30.0, "method": "full-match"},
    "master": {"num_colors": 50, "width_cm": 45.0, "method": "full-match"},
}


def resolve_quality(quality) -> QualityTier:
    try:
        return QualityTier(quality)
    except ValueError:
        valid = ", ".join(t.value for t in QualityTier)
        raise InvalidInput(f"Unknown quality tier '{quality}'. Expected one of: {valid}.")


def catalog_path_from_env() -> Optional[Path]:
    value = os.environ.get(CATALOG_ENV_VAR, "").strip()
    return Path(value) if value else None

# Sampling for color-count suggestions: (cap, share) per tier
SUGGESTION_SAMPLING: Dict[QualityTier, Tuple[int, float]] = {
    QualityTier.FAST: (5_000, 0.05),
    QualityTier.STANDARD: (20_000, 0.2),
    QualityTier.HIGH: (20_000, 0.2),
}
