"""
Color-space helpers: sRGB -> CIELAB conversion and the CIEDE2000 distance.

Every "how close are these two colors" decision in the package goes through
delta_e() / perceptual_distance(), so palette selection, reduction and
pixelization all agree on what "closest" means.
"""

from typing import NamedTuple, Sequence, Union

import numpy as np
from skimage.color import deltaE_ciede2000, rgb2lab


class RGBColor(NamedTuple):
    r: int
    g: int
    b: int

    def to_hex(self) -> str:
        return "#%02X%02X%02X" % (self.r, self.g, self.b)


class LABColor(NamedTuple):
    l: float
    a: float
    b: float


ColorLike = Union[RGBColor, Sequence[int], np.ndarray]


def rgb_array_to_lab(rgb: np.ndarray) -> np.ndarray:
    """
    Convert an (..., 3) array of 8-bit sRGB values to CIELAB (D65).

    Returns:
        np.ndarray: float64 array with the same leading shape as the input.
    """
    rgb = np.asarray(rgb)
    if rgb.shape[-1] != 3:
        raise ValueError(f"Expected RGB values in the last axis, got shape {rgb.shape}.")
    lead_shape = rgb.shape[:-1]
    flat = rgb.reshape(1, -1, 3).astype(np.float64) / 255.0
    if flat.shape[1] == 0:
        return np.empty(lead_shape + (3,), dtype=np.float64)
    return rgb2lab(flat).reshape(lead_shape + (3,))


def to_lab(rgb: ColorLike) -> LABColor:
    l, a, b = rgb_array_to_lab(np.asarray(rgb[:3], dtype=np.uint8))
    return LABColor(float(l), float(a), float(b))


def delta_e(lab1: np.ndarray, lab2: np.ndarray) -> np.ndarray:
    """Vectorized CIEDE2000 between broadcastable (..., 3) LAB arrays."""
    lab1 = np.asarray(lab1, dtype=np.float64)
    lab2 = np.asarray(lab2, dtype=np.float64)
    lab1, lab2 = np.broadcast_arrays(lab1, lab2)
    return deltaE_ciede2000(lab1, lab2)


def perceptual_distance(a: Union[LABColor, Sequence[float]], b: Union[LABColor, Sequence[float]]) -> float:
    return float(delta_e(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)))


def pairwise_delta_e(labs_a: np.ndarray, labs_b: np.ndarray, chunk_size: int = 256) -> np.ndarray:
    """
    All-pairs CIEDE2000 matrix between (N, 3) and (M, 3) LAB arrays.

    Rows are computed in chunks to keep the broadcast temporaries bounded.
    """
    labs_a = np.asarray(labs_a, dtype=np.float64).reshape(-1, 3)
    labs_b = np.asarray(labs_b, dtype=np.float64).reshape(-1, 3)
    out = np.empty((len(labs_a), len(labs_b)), dtype=np.float64)
    for start in range(0, len(labs_a), chunk_size):
        stop = min(start + chunk_size, len(labs_a))
        out[start:stop] = delta_e(labs_a[start:stop, None, :], labs_b[None, :, :])
    return out


def visual_impact(rgb: ColorLike) -> float:
    """
    How much a color stands out, from its HSL lightness and saturation.

    Very dark / very light and highly saturated colors score close to 1,
    mid-gray scores 0.
    """
    r, g, b = (float(c) / 255.0 for c in rgb[:3])
    high = max(r, g, b)
    low = min(r, g, b)
    lightness = (high + low) / 2.0
    if high == low:
        saturation = 0.0
    else:
        saturation = (high - low) / (1.0 - abs(2.0 * lightness - 1.0))
    contrast = abs(lightness - 0.5) * 2.0
    return contrast * 0.6 + saturation * 0.4


def round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)
