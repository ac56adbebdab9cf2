# tests/test_stats.py
import pytest
from PIL import Image, ImageDraw

from bead import stats
from bead.catalog import Catalog
from bead.pixelize import pixelize
from bead.sampler import RasterImage


def bw_palette():
    return tuple(Catalog([("K", "Black", (0, 0, 0)), ("W", "White", (255, 255, 255)), ("R", "Red", (255, 0, 0))]))


def mostly_white_image():
    img = Image.new("RGB", (40, 10), color=(255, 255, 255))
    ImageDraw.Draw(img).rectangle([(0, 0), (9, 9)], fill=(0, 0, 0))
    return RasterImage.from_pil(img)


def test_pattern_statistics():
    palette = bw_palette()
    cells = pixelize(mostly_white_image(), (4, 1), palette)
    result = stats.pattern_statistics(cells, palette)
    assert result.total_cells == 4
    assert result.guaranteed_colors == 3
    assert result.color_usage == {"K": 1, "W": 3}
    assert result.average_selection_distance == pytest.approx(0.0, abs=1e-9)
    assert result.selection_quality == pytest.approx(1.0)


def test_color_statistics_sorted_by_count():
    palette = bw_palette()
    cells = pixelize(mostly_white_image(), (4, 1), palette)
    rows = stats.color_statistics(stats.pattern_statistics(cells, palette), palette)
    assert [r.color.code for r in rows] == ["W", "K"]
    assert rows[0].count == 3
    assert rows[0].percentage == pytest.approx(75.0)


def test_selection_quality_falls_with_distance():
    palette = (Catalog([("K", "Black", (0, 0, 0))])[0],)
    cells = pixelize(RasterImage.from_pil(Image.new("RGB", (4, 4), (255, 255, 255))), (2, 2), palette)
    result = stats.pattern_statistics(cells, palette)
    assert result.average_selection_distance > 50
    assert result.selection_quality == 0.0


def test_suggest_color_count_for_flat_image():
    image = RasterImage.from_pil(Image.new("RGB", (100, 100), (40, 90, 160)))
    suggestion = stats.suggest_color_count(image, (20, 20), "fast")
    assert suggestion.unique_colors == 1
    assert suggestion.optimal == 1
    assert suggestion.maximum == 28


def test_suggest_color_count_for_busy_image():
    img = Image.new("RGB", (200, 200))
    img.putdata([((i * 7) % 256, (i * 13) % 256, (i * 29) % 256) for i in range(200 * 200)])
    suggestion = stats.suggest_color_count(RasterImage.from_pil(img), (100, 100), "standard")
    assert suggestion.unique_colors > 80
    assert 8 <= suggestion.optimal <= 120
    assert suggestion.maximum >= suggestion.optimal
