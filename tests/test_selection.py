# tests/test_selection.py
import numpy as np
import pytest

from bead.cancel import CancellationToken
from bead.catalog import Catalog
from bead.colorspace import to_lab
from bead.errors import CatalogExhausted, OperationCancelled
from bead.selection import PaletteBuilder, nearest_index, nearest_many


def gray_catalog():
    return Catalog([
        ("K", "Black", (0, 0, 0)),
        ("W", "White", (255, 255, 255)),
        ("G", "Gray", (128, 128, 128)),
        ("R", "Red", (230, 20, 20)),
    ])


def test_nearest_index_with_exclusion():
    cat = gray_catalog()
    target = to_lab((120, 120, 120))
    idx, dist = nearest_index(target, cat.lab)
    assert cat[idx].code == "G"
    assert dist > 0

    excluded = np.zeros(len(cat), dtype=bool)
    excluded[idx] = True
    idx2, dist2 = nearest_index(target, cat.lab, excluded)
    assert cat[idx2].code != "G"
    assert dist2 >= dist

    assert nearest_index(target, cat.lab, np.ones(len(cat), dtype=bool)) == (-1, float("inf"))


def test_nearest_many_matches_nearest_index():
    cat = gray_catalog()
    labs = np.array([to_lab(c) for c in [(10, 10, 10), (250, 250, 250), (200, 30, 30)]])
    indices, distances = nearest_many(labs, cat.lab, chunk_size=2)
    assert [cat[i].code for i in indices] == ["K", "W", "R"]
    for lab, i, d in zip(labs, indices, distances):
        assert (i, pytest.approx(d)) == nearest_index(lab, cat.lab)


def test_builder_add_nearest_skips_used_colors():
    cat = gray_catalog()
    builder = PaletteBuilder(cat, 2)
    assert builder.add_nearest(to_lab((128, 128, 128))) == cat.index_of("G")
    # the gray is taken, so the next closest wins
    second = builder.add_nearest(to_lab((128, 128, 128)))
    assert second != cat.index_of("G")
    assert builder.full
    assert builder.add(second) is False


def test_fill_diverse_is_maximin():
    cat = gray_catalog()
    builder = PaletteBuilder(cat, 2)
    builder.add(cat.index_of("K"))
    builder.fill_diverse()
    # white is farthest from black
    assert [c.code for c in builder.palette()] == ["K", "W"]


def test_fill_diverse_from_empty_starts_at_first_entry():
    cat = gray_catalog()
    builder = PaletteBuilder(cat, 3)
    assert builder.fill_diverse() == 3
    codes = [c.code for c in builder.palette()]
    assert codes[0] == "K"
    assert len(set(codes)) == 3


def test_fill_diverse_warns_when_catalog_runs_out():
    cat = gray_catalog()
    builder = PaletteBuilder(cat, 6)
    with pytest.warns(CatalogExhausted):
        builder.fill_diverse()
    assert len(builder) == len(cat)
    assert builder.warnings and "exhausted" in builder.warnings[0]


def test_fill_diverse_honors_cancellation():
    token = CancellationToken()
    token.cancel()
    builder = PaletteBuilder(gray_catalog(), 3, cancel=token)
    with pytest.raises(OperationCancelled):
        builder.fill_diverse()
