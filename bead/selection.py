"""
Nearest-color queries and the exact-size palette builder shared by the
DMC-first selector and the full-match backfill.
"""

import warnings
from typing import List, Optional, Tuple

import numpy as np

from bead.cancel import CancellationToken, check_cancelled
from bead.catalog import Catalog, CatalogColor
from bead.colorspace import delta_e, pairwise_delta_e
from bead.errors import CatalogExhausted


def nearest_index(
    target_lab: np.ndarray,
    candidate_labs: np.ndarray,
    excluded: Optional[np.ndarray] = None,
) -> Tuple[int, float]:
    """
    Index of the candidate closest to target_lab by Delta E.

    Args:
        target_lab (np.ndarray): A single LAB triple.
        candidate_labs (np.ndarray): (M, 3) LAB candidates.
        excluded (np.ndarray, optional): Boolean mask of candidates to skip.

    Returns:
        (int, float): The first minimum and its distance, or (-1, inf) when
        every candidate is excluded.
    """
    dists = delta_e(np.asarray(target_lab, dtype=np.float64)[None, :], candidate_labs)
    if excluded is not None:
        dists = np.where(excluded, np.inf, dists)
    if len(dists) == 0 or not np.isfinite(dists).any():
        return -1, float("inf")
    idx = int(np.argmin(dists))
    return idx, float(dists[idx])


def nearest_many(
    labs: np.ndarray,
    palette_labs: np.ndarray,
    chunk_size: int = 256,
    cancel: Optional[CancellationToken] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorized nearest_index for (N, 3) LAB values against (M, 3) palette LABs."""
    labs = np.asarray(labs, dtype=np.float64).reshape(-1, 3)
    indices = np.empty(len(labs), dtype=np.intp)
    distances = np.empty(len(labs), dtype=np.float64)
    for start in range(0, len(labs), chunk_size):
        check_cancelled(cancel, "color matching")
        block = pairwise_delta_e(labs[start:start + chunk_size], palette_labs)
        idx = np.argmin(block, axis=1)
        indices[start:start + chunk_size] = idx
        distances[start:start + chunk_size] = block[np.arange(len(idx)), idx]
    return indices, distances


class PaletteBuilder:
    """
    Accumulates distinct catalog colors until a target size is reached.

    Colors are added either directly, as the nearest not-yet-used match for
    a LAB value, or by maximin diversity fill: repeatedly take the unused
    catalog color whose distance to the closest already-chosen color is
    largest. Ties pick the lowest catalog index, so the result is fully
    determined by the inputs.
    """

    def __init__(self, catalog: Catalog, target: int, cancel: Optional[CancellationToken] = None):
        self.catalog = catalog
        self.target = target
        self.cancel = cancel
        self.warnings: List[str] = []
        self._order: List[int] = []
        self._used = np.zeros(len(catalog), dtype=bool)
        self._min_dist: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self._order)

    @property
    def full(self) -> bool:
        return len(self._order) >= self.target

    def add(self, idx: int) -> bool:
        """Add catalog entry idx; returns False if it was already chosen."""
        if self._used[idx]:
            return False
        self._used[idx] = True
        self._order.append(int(idx))
        if self._min_dist is not None:
            np.minimum(self._min_dist, self.catalog.pairwise_distances()[idx], out=self._min_dist)
        return True

    def add_nearest(self, lab: np.ndarray) -> Optional[int]:
        """Add the unused catalog color closest to lab. None if none are left."""
        idx, _ = nearest_index(lab, self.catalog.lab, excluded=self._used)
        if idx < 0:
            return None
        self.add(idx)
        return idx

    def fill_diverse(self) -> int:
        """
        Maximin fill up to the target size.

        Returns:
            int: Number of colors added. Fewer than needed only when the
            catalog ran out, in which case a CatalogExhausted warning is issued.
        """
        added = 0
        if self.full:
            return added
        if self._min_dist is None:
            pairwise = self.catalog.pairwise_distances()
            if self._order:
                self._min_dist = pairwise[self._order].min(axis=0)
            else:
                self._min_dist = np.full(len(self.catalog), np.inf)

        while not self.full:
            check_cancelled(self.cancel, "diversity fill")
            if self._used.all():
                message = (
                    f"Catalog exhausted: only {len(self._order)} distinct colors available, "
                    f"{self.target} requested."
                )
                self.warnings.append(message)
                warnings.warn(message, CatalogExhausted, stacklevel=3)
                break
            scores = np.where(self._used, -np.inf, self._min_dist)
            self.add(int(np.argmax(scores)))
            added += 1
        return added

    def palette(self) -> Tuple[CatalogColor, ...]:
        return tuple(self.catalog[i] for i in self._order)
