"""
Reference thread-color catalog.

A Catalog is an ordered, immutable collection of CatalogColor entries with
their CIELAB values computed once when the catalog is built. The all-pairs
Delta E matrix (used by diversity fill and similarity merging) is computed
lazily, once, under a lock, and is read-only afterwards.
"""

import csv
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from bead.colorspace import LABColor, RGBColor, pairwise_delta_e, rgb_array_to_lab
from bead.config import DEFAULT_CATALOG_PATH, catalog_path_from_env
from bead.errors import InvalidInput


@dataclass(frozen=True)
class CatalogColor:
    code: str
    name: str
    rgb: RGBColor
    lab: Optional[LABColor] = field(default=None, compare=False, repr=False)

    @property
    def hex(self) -> str:
        return self.rgb.to_hex()


class Catalog:
    def __init__(self, colors: Iterable[Union[CatalogColor, Tuple[str, str, Sequence[int]]]]):
        rows = [c if isinstance(c, CatalogColor) else CatalogColor(str(c[0]), str(c[1]), RGBColor(*c[2])) for c in colors]
        if not rows:
            raise InvalidInput("A color catalog needs at least one color.")

        index: Dict[str, int] = {}
        for i, row in enumerate(rows):
            if row.code in index:
                raise InvalidInput(f"Duplicate catalog code '{row.code}'.")
            if not all(0 <= int(v) <= 255 for v in row.rgb):
                raise InvalidInput(f"Catalog color '{row.code}' has an RGB value outside 0-255: {tuple(row.rgb)}.")
            index[row.code] = i

        rgb = np.array([tuple(row.rgb) for row in rows], dtype=np.uint8)
        lab = rgb_array_to_lab(rgb)
        rgb.setflags(write=False)
        lab.setflags(write=False)

        self._colors: Tuple[CatalogColor, ...] = tuple(
            CatalogColor(row.code, row.name, RGBColor(*(int(v) for v in row.rgb)), LABColor(*(float(v) for v in lab[i])))
            for i, row in enumerate(rows)
        )
        self._index = index
        self._rgb = rgb
        self._lab = lab
        self._pairwise: Optional[np.ndarray] = None
        self._pairwise_lock = threading.Lock()

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "Catalog":
        """
        Load a catalog from a CSV file with a `code,name,r,g,b` header.

        Raises:
            FileNotFoundError: If the file does not exist.
            InvalidInput: If a row is malformed or a code repeats.
        """
        path = Path(path)
        colors: List[Tuple[str, str, Tuple[int, int, int]]] = []
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for line_no, row in enumerate(reader, start=2):
                try:
                    rgb = (int(row["r"]), int(row["g"]), int(row["b"]))
                    colors.append((row["code"].strip(), row["name"].strip(), rgb))
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    raise InvalidInput(f"Malformed catalog row {line_no} in {path}: {e}")
        return cls(colors)

    def __len__(self) -> int:
        return len(self._colors)

    def __iter__(self) -> Iterator[CatalogColor]:
        return iter(self._colors)

    def __getitem__(self, i: int) -> CatalogColor:
        return self._colors[i]

    def __contains__(self, code: object) -> bool:
        return code in self._index

    @property
    def colors(self) -> Tuple[CatalogColor, ...]:
        return self._colors

    @property
    def rgb(self) -> np.ndarray:
        return self._rgb

    @property
    def lab(self) -> np.ndarray:
        return self._lab

    def index_of(self, code: str) -> int:
        try:
            return self._index[code]
        except KeyError:
            raise InvalidInput(f"Unknown catalog code '{code}'.")

    def get(self, code: str) -> CatalogColor:
        return self._colors[self.index_of(code)]

    def pairwise_distances(self) -> np.ndarray:
        """Delta E between every pair of catalog entries, computed on first use."""
        if self._pairwise is None:
            with self._pairwise_lock:
                if self._pairwise is None:
                    matrix = pairwise_delta_e(self._lab, self._lab)
                    # exact symmetry and a zero diagonal, whatever the rounding
                    matrix = np.minimum(matrix, matrix.T)
                    np.fill_diagonal(matrix, 0.0)
                    matrix.setflags(write=False)
                    self._pairwise = matrix
        return self._pairwise

    def subset(self, codes: Iterable[str]) -> "Catalog":
        """
        Catalog restricted to the given codes, in the order given.
        Repeated codes are kept once.
        """
        seen = set()
        picked: List[CatalogColor] = []
        for code in codes:
            code = str(code).strip()
            if not code or code in seen:
                continue
            seen.add(code)
            picked.append(self.get(code))
        if not picked:
            raise InvalidInput("No catalog codes were given for the custom color set.")
        return Catalog(picked)


_default_catalog: Optional[Catalog] = None
_default_catalog_lock = threading.Lock()


def default_catalog() -> Catalog:
    """
    The process-wide DMC catalog, loaded once on first use.

    Set BEADGEN_CATALOG to the path of another `code,name,r,g,b` CSV to swap it.
    """
    global _default_catalog
    if _default_catalog is None:
        with _default_catalog_lock:
            if _default_catalog is None:
                _default_catalog = Catalog.from_csv(catalog_path_from_env() or DEFAULT_CATALOG_PATH)
    return _default_catalog


def resolve_catalog(catalog: Optional[Catalog] = None, custom_codes: Optional[Iterable[str]] = None) -> Catalog:
    base = catalog if catalog is not None else default_catalog()
    if custom_codes is not None:
        return base.subset(custom_codes)
    return base
