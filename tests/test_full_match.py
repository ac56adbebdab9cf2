# tests/test_full_match.py
import numpy as np
import pytest
from PIL import Image, ImageDraw

from bead import full_match
from bead.cancel import CancellationToken
from bead.catalog import Catalog, default_catalog
from bead.colorspace import visual_impact
from bead.config import ReductionConfig
from bead.errors import CatalogExhausted, InvalidInput, OperationCancelled, PaletteWarning
from bead.full_match import ColorUsage
from bead.pixelize import Assignment, CellAverages
from bead.sampler import RasterImage


def stripes_image(colors, stripe_width=10, height=10):
    img = Image.new("RGB", (stripe_width * len(colors), height))
    draw = ImageDraw.Draw(img)
    for i, color in enumerate(colors):
        draw.rectangle([(i * stripe_width, 0), ((i + 1) * stripe_width - 1, height - 1)], fill=color)
    return RasterImage.from_pil(img)


def gradient_image(width=64, height=48):
    x = np.linspace(0, 255, width, dtype=np.float64)
    y = np.linspace(0, 255, height, dtype=np.float64)
    arr = np.zeros((height, width, 3), dtype=np.uint8)
    arr[..., 0] = x[None, :]
    arr[..., 1] = y[:, None]
    arr[..., 2] = 255 - x[None, :]
    return RasterImage.from_array(arr)


def test_fewer_colors_than_target_backfills():
    catalog = default_catalog()
    image = stripes_image([(0, 0, 0), (255, 255, 255), (227, 29, 66)])
    pattern = full_match.generate_full_match_pattern(image, (3, 1), 10, catalog=catalog)

    assert len(pattern.palette) == 10
    assert len({c.code for c in pattern.palette}) == 10
    assert pattern.strategy.startswith("No reduction needed (3 colors).")
    assert "Expanded from 3 to 10 colors." in pattern.strategy
    assert pattern.statistics.original_color_count == 3
    assert pattern.quality_score == pytest.approx(1.0)
    assert [c.assigned.code for c in pattern.grid] == ["310", "B5200", "666"]
    # every palette color is reported, used or not
    assert {u.color.code for u in pattern.usage} == {c.code for c in pattern.palette}
    assert sum(u.pixel_count for u in pattern.usage) == 3


def test_reduction_hits_target_and_grid_uses_palette_only():
    pattern = full_match.generate_full_match_pattern(gradient_image(), (32, 24), 6)
    assert len(pattern.palette) == 6
    assert len({c.code for c in pattern.palette}) == 6
    assert len(pattern.grid) == 32 * 24
    palette_codes = {c.code for c in pattern.palette}
    assert all(cell.assigned.code in palette_codes for cell in pattern.grid)
    assert pattern.statistics.original_color_count > 6
    assert pattern.statistics.remapped_cells > 0
    assert sum(u.pixel_count for u in pattern.usage) == 32 * 24
    assert 0.0 <= pattern.quality_score <= 1.0
    assert pattern.statistics.total_cells == 32 * 24


def test_full_match_is_deterministic():
    first = full_match.generate_full_match_pattern(gradient_image(), (16, 12), 5)
    second = full_match.generate_full_match_pattern(gradient_image(), (16, 12), 5)
    assert [c.code for c in first.palette] == [c.code for c in second.palette]
    assert first.grid == second.grid


def test_invalid_target_raises():
    with pytest.raises(InvalidInput):
        full_match.generate_full_match_pattern(gradient_image(), (4, 4), 0)


def test_cancelled_token_stops_matching():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        full_match.generate_full_match_pattern(gradient_image(), (8, 8), 4, cancel=token)


# --- reduction steps on a small hand-made catalog ---

def reds_catalog():
    return Catalog([
        ("A", "Red", (200, 0, 0)),
        ("A2", "Red too", (205, 0, 0)),
        ("B", "Blue", (0, 0, 200)),
        ("C", "Green", (0, 200, 0)),
        ("D", "Yellow", (230, 230, 0)),
    ])


def usage_for(catalog, code, percentage, importance, mergeable=True, count=None):
    return ColorUsage(
        color=catalog.get(code),
        pixel_count=count if count is not None else int(percentage * 10),
        percentage=percentage,
        importance=importance,
        average_distance=1.0,
        mergeable=mergeable,
    )


def test_analyze_color_usage():
    catalog = reds_catalog()
    usage = full_match.analyze_color_usage(np.array([0, 0, 0, 2]), np.array([0.0, 0.0, 0.0, 20.0]), catalog)
    assert [u.color.code for u in usage] == ["A", "B"]
    by_code = {u.color.code: u for u in usage}
    assert by_code["A"].pixel_count == 3
    assert by_code["A"].percentage == pytest.approx(75.0)
    assert by_code["A"].mergeable is False
    # 25% usage but a poor match
    assert by_code["B"].average_distance == pytest.approx(20.0)
    assert by_code["B"].mergeable is True
    # full usage weight, perfect match
    assert by_code["A"].importance == pytest.approx(0.5 + 0.3 * visual_impact((200, 0, 0)) + 0.2)


def test_similar_colors_are_merged_into_the_more_important():
    catalog = reds_catalog()
    usage = [
        usage_for(catalog, "A", 40, 0.9),
        usage_for(catalog, "B", 30, 0.8),
        usage_for(catalog, "C", 20, 0.7),
        usage_for(catalog, "A2", 10, 0.6),
    ]
    result = full_match.reduce_colors_to_target(usage, 3, catalog)
    assert [c.code for c in result.palette] == ["A", "B", "C"]
    assert "Merged similar colors." in result.strategy

    merged = full_match.merge_similar_colors(usage, 3, catalog)
    assert merged[0].color.code == "A"
    assert merged[0].pixel_count == 400 + 100
    assert merged[0].percentage == pytest.approx(50)


def test_no_mergeable_pair_drops_least_important():
    catalog = reds_catalog()
    usage = [
        usage_for(catalog, "B", 40, 0.9),
        usage_for(catalog, "C", 30, 0.5),
        usage_for(catalog, "D", 30, 0.7),
    ]
    merged = full_match.merge_similar_colors(usage, 2, catalog)
    assert [u.color.code for u in merged] == ["B", "D"]


def test_low_usage_colors_are_pruned():
    catalog = reds_catalog()
    usage = [
        usage_for(catalog, "A", 60, 0.9),
        usage_for(catalog, "B", 39.7, 0.8),
        usage_for(catalog, "C", 0.2, 0.3),
        usage_for(catalog, "D", 0.1, 0.75),
    ]
    result = full_match.reduce_colors_to_target(usage, 3, catalog)
    # D is rare but important enough to stay
    assert [c.code for c in result.palette] == ["A", "B", "D"]
    assert "Removed low usage" in result.strategy


def test_pruning_never_drops_below_target():
    catalog = reds_catalog()
    usage = [
        usage_for(catalog, "A", 70, 0.9, mergeable=False),
        usage_for(catalog, "B", 29.6, 0.8, mergeable=False),
        usage_for(catalog, "C", 0.2, 0.3, mergeable=False),
        usage_for(catalog, "D", 0.2, 0.2, mergeable=False),
    ]
    result = full_match.reduce_colors_to_target(usage, 3, catalog)
    assert "Removed low usage" not in result.strategy
    assert [c.code for c in result.palette] == ["A", "B", "C"]


def test_bulk_removal_when_far_over_target():
    colors = [(f"c{i}", f"Color {i}", (i * 4 % 256, (i * 37) % 256, (i * 91) % 256)) for i in range(60)]
    catalog = Catalog(colors)
    usage = [usage_for(catalog, f"c{i}", 100 / 60, 1.0 - i / 100, mergeable=False) for i in range(60)]
    config = ReductionConfig(bulk_gap=50, bulk_batch=3)
    merged = full_match.merge_similar_colors(usage, 5, catalog, config)
    assert len(merged) == 5
    # least important entries go first
    assert [u.color.code for u in merged] == ["c0", "c1", "c2", "c3", "c4"]


def test_remap_moves_dropped_cells_to_nearest_survivor():
    catalog = reds_catalog()
    average = np.zeros((1, 3, 4), dtype=np.uint8)
    average[0, 0, :3] = (200, 0, 0)
    average[0, 1, :3] = (205, 0, 0)
    average[0, 2, :3] = (0, 0, 200)
    averages = CellAverages(average=average, center=average.copy())
    assignment = Assignment(
        averages=averages,
        indices=np.array([[0, 1, 2]]),
        distances=np.zeros((1, 3)),
    )
    palette = (catalog.get("B"), catalog.get("A"))
    remapped, moved = full_match.remap_to_palette(assignment, palette, catalog)
    assert moved == 1
    # A2 is gone; its cell goes to A (palette position 1)
    assert remapped.indices.tolist() == [[1, 1, 0]]
    assert remapped.distances[0, 1] > 0


def test_large_deviation_from_target_is_reported():
    catalog = reds_catalog()
    usage = [usage_for(catalog, "A", 60, 0.9), usage_for(catalog, "B", 40, 0.8)]
    target = len(catalog) + 6
    with pytest.warns(PaletteWarning) as record:
        result = full_match.reduce_colors_to_target(usage, target, catalog)

    assert len(result.palette) == len(catalog)
    assert any(issubclass(w.category, CatalogExhausted) for w in record)
    assert any("Catalog exhausted" in note for note in result.warnings)
    assert any("Significant palette deviation" in note for note in result.warnings)
    assert f"Expanded from 2 to {len(catalog)} colors." in result.strategy
