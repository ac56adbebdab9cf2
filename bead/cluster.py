import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.cluster import KMeans, MiniBatchKMeans
from sklearn.exceptions import ConvergenceWarning

from bead.cancel import CancellationToken, check_cancelled
from bead.colorspace import round_half_up
from bead.config import DEFAULT_SELECTION_CONFIG, SelectionConfig
from bead.errors import EmptyImage, InvalidInput

# Above this many clusters full-batch Lloyd gets slow; switch to mini-batches.
MINIBATCH_CLUSTER_THRESHOLD = 256


@dataclass(frozen=True)
class ClusterResult:
    centroids: np.ndarray  # (k, 3) uint8 RGB
    labels: np.ndarray     # (n_samples,) cluster index per sample
    iterations: int


def optimal_cluster_count(sample_count: int, target_count: int, config: SelectionConfig = DEFAULT_SELECTION_CONFIG) -> int:
    """
    Over-provision clusters (8x the palette target by default) so later
    selection has enough distinct candidates, capped at samples / 5 and 2000.
    The cap never pushes the count below the palette target (or the sample
    count, if smaller), so tiny images keep one cluster per pixel.
    """
    base = min(target_count * config.oversampling, sample_count)
    cap = min(sample_count / config.cluster_divisor, config.max_clusters)
    floor = min(target_count, sample_count)
    return max(1, int(min(base, cap)), floor)


def cluster_colors(
    samples: np.ndarray,
    k: int,
    config: SelectionConfig = DEFAULT_SELECTION_CONFIG,
    cancel: Optional[CancellationToken] = None,
) -> ClusterResult:
    """
    K-means over RGB samples with a fixed seed, so a given sample always
    clusters the same way.

    Args:
        samples (np.ndarray): (N, 3) RGB samples.
        k (int): Requested cluster count; reduced to N when N < k.
        config (SelectionConfig): Seed source.
        cancel (CancellationToken, optional): Polled before and after fitting.

    Returns:
        ClusterResult: uint8 centroids, per-sample labels and iteration count.
    """
    samples = np.asarray(samples)
    if samples.ndim != 2 or samples.shape[1] != 3:
        raise InvalidInput(f"Samples must have shape (N, 3), got {samples.shape}.")
    if len(samples) == 0:
        raise EmptyImage("No color samples to cluster.")
    if k < 1:
        raise InvalidInput(f"Cluster count must be positive, got {k}.")
    k = min(k, len(samples))

    check_cancelled(cancel, "clustering")
    data = samples.astype(np.float64)
    if k > MINIBATCH_CLUSTER_THRESHOLD:
        model = MiniBatchKMeans(n_clusters=k, random_state=config.random_state, n_init=3, batch_size=max(1024, 4 * k))
    else:
        model = KMeans(n_clusters=k, random_state=config.random_state, n_init="auto")

    with warnings.catch_warnings():
        # Flat images have fewer distinct colors than clusters; that is expected here.
        warnings.simplefilter("ignore", ConvergenceWarning)
        model.fit(data)
    check_cancelled(cancel, "clustering")

    centers = model.cluster_centers_
    # Re-derive labels against the fitted centers so ties go to the lowest index.
    labels = _nearest_center(data, centers)
    centroids = np.clip(round_half_up(centers), 0, 255).astype(np.uint8)
    return ClusterResult(centroids=centroids, labels=labels, iterations=int(model.n_iter_))


def _nearest_center(data: np.ndarray, centers: np.ndarray, chunk_size: int = 8192) -> np.ndarray:
    labels = np.empty(len(data), dtype=np.intp)
    for start in range(0, len(data), chunk_size):
        chunk = data[start:start + chunk_size]
        d2 = ((chunk[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2)
        labels[start:start + chunk_size] = np.argmin(d2, axis=1)
    return labels
