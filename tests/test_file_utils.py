# tests/test_file_utils.py
import csv
import json

from PIL import Image

from bead import file_utils
from bead.catalog import Catalog
from bead.colorspace import RGBColor
from bead.layout import GridDims
from bead.pixelize import GridCell


def small_grid():
    black, white = Catalog([("310", "Black", (0, 0, 0)), ("B5200", "Snow White", (255, 255, 255))])
    cells = [
        GridCell(x, y, RGBColor(0, 0, 0), RGBColor(0, 0, 0), black if x == 0 else white, 0.0)
        for y in range(2)
        for x in range(3)
    ]
    return (black, white), cells


def test_save_bead_png_creates_file_with_metadata(tmp_path):
    img = Image.new("RGB", (10, 10), color=(100, 150, 200))

    output_file = tmp_path / "nested" / "test_output.png"
    cmd_line = "beadgen --num-colors 3 dummy.png out"
    metadata = {"User Note": "Test run", "Extra_Key": "Extra value"}

    file_utils.save_bead_png(img, output_file, command_line_invocation=cmd_line, additional_metadata=metadata)

    assert output_file.exists()
    with Image.open(output_file) as im:
        pnginfo = im.info
        assert pnginfo["beadgen:command_line"] == cmd_line
        assert pnginfo["beadgen:User_Note"] == "Test run"
        assert "beadgen:Extra_Key" in pnginfo
        assert pnginfo["Software"] == file_utils.SOFTWARE_TAG


def test_read_bead_metadata_strips_prefix(tmp_path):
    output_file = tmp_path / "meta.png"
    file_utils.save_bead_png(Image.new("RGB", (4, 4)), output_file, additional_metadata={"Grid": "60x40"})
    meta = file_utils.read_bead_metadata(output_file)
    assert meta == {"Grid": "60x40"}


def test_clean_metadata_key():
    assert file_utils.clean_metadata_key("User Note") == "User_Note"
    assert file_utils.clean_metadata_key("a/b:c") == "abc"
    assert file_utils.clean_metadata_key("9lives") == "beadgen_9lives"
    assert len(file_utils.clean_metadata_key("k" * 200)) == 70


def test_save_grid_csv(tmp_path):
    _, cells = small_grid()
    path = tmp_path / "grid.csv"
    file_utils.save_grid_csv(cells, GridDims(3, 2), path)
    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows == [["310", "B5200", "B5200"], ["310", "B5200", "B5200"]]


def test_save_pattern_json(tmp_path):
    palette, _ = small_grid()
    path = tmp_path / "summary.json"
    file_utils.save_pattern_json(path, palette, {"310": 2, "B5200": 4}, GridDims(3, 2), {"method": "dmc-first"})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["grid"] == {"width": 3, "height": 2}
    assert data["summary"] == {"method": "dmc-first"}
    assert data["palette"][0] == {
        "code": "310", "name": "Black", "rgb": [0, 0, 0], "hex": "#000000", "count": 2,
    }
    assert data["palette"][1]["count"] == 4
