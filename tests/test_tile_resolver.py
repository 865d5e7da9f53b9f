import pytest

from spreadmap.domain.models import ExportBox, PageExport, SpreadExportEntry, Tile, TileMapping
from spreadmap.infra.asset_store import MemoryAssetStore
from spreadmap.infra.document_cache import DocumentCache
from spreadmap.services.tile_resolver import (
    Missing, Resolution, TileResolver, format_mapping_info, parse_tile_mapping,
)


# Fakes
class FakePage:
    def __init__(self, number, width=1000.0, height=700.0):
        self.number = number
        self.width = width
        self.height = height
    def text_runs(self):
        return []

class FakeDoc:
    def __init__(self, page_count=1):
        self.page_count = page_count
        self.closed = False
    def get_page(self, number):
        if not 1 <= number <= self.page_count:
            raise IndexError(number)
        return FakePage(number)
    def close(self):
        self.closed = True

class FakePdf:
    def __init__(self):
        self.opened = []
    def open_bytes(self, data):
        self.opened.append(data)
        if data == b"broken":
            raise RuntimeError("cannot open broken document")
        return FakeDoc(page_count=2)


def _box(rect_id, x, order, include=True):
    return ExportBox(x, 100, 150, 120, rect_id=rect_id, include=include, order_index=order)


def _exports():
    page = PageExport(page_number=1, page_width=1000, page_height=700, boxes=[
        _box("L-b", 40, 2),
        _box("R-a", 600, 1),
        _box("L-a", 220, 1),
        _box("L-x", 40, None),                # unordered: never bucketed
        _box("L-off", 40, 3, include=False),  # excluded
        _box("L-c", 40, 3),
    ])
    return [
        SpreadExportEntry(pdf_id="pdf-2", filename="Cat_P02.pdf", spread_number=2, pages={1: page}),
        SpreadExportEntry(pdf_id="pdf-3", filename="Cat_P03.pdf", spread_number=3, pages={}),
        SpreadExportEntry(pdf_id="gone", filename="Cat_P04.pdf", spread_number=4, pages={1: page}),
        SpreadExportEntry(pdf_id="broken", filename="Cat_P05.pdf", spread_number=5, pages={1: page}),
    ]


def _resolver(tile_matches=None, pdf=None):
    assets = MemoryAssetStore()
    for pid in ("pdf-2", "pdf-3"):
        assets.put_asset(pid, f"{pid}.pdf", b"%PDF " + pid.encode())
    assets.put_asset("broken", "broken.pdf", b"broken")
    docs = DocumentCache(assets, pdf or FakePdf())
    return TileResolver(_exports(), docs, tile_matches), docs


def test_parse_tile_mapping():
    assert parse_tile_mapping("offer-p03-box02-misc.png") == TileMapping(3, "left", 2, 2)
    assert parse_tile_mapping("X-P04-foo-BOX11-.jpg") == TileMapping(4, "right", 2, 11)
    assert parse_tile_mapping("offer-p3-box12-.png") == TileMapping(3, "left", 2, 12)
    assert parse_tile_mapping("offer-p03-box2-.png") is None
    assert parse_tile_mapping("nothing.png") is None
    assert format_mapping_info("offer-p03-box02-misc.png") == "p03 box02"
    assert format_mapping_info("nothing.png") == "p?? box??"


def test_filename_scenario_picks_second_left_box():
    r, _ = _resolver()
    res = r.resolve(Tile(id="t1", original_file_name="offer-p03-box02-misc.png"))
    assert isinstance(res, Resolution)
    assert res.export.spread_number == 2
    assert res.half == "left" and res.box_index == 2
    assert res.box.rect_id == "L-b"


def test_right_half_from_even_page():
    r, _ = _resolver()
    res = r.resolve(Tile(id="t1", original_file_name="offer-p04-box01-misc.png"))
    assert res.box.rect_id == "R-a" and res.half == "right"


@pytest.mark.parametrize("filename,reason,kind", [
    ("no-mapping.png", "Missing page/box mapping", "no_mapping"),
    ("a-p17-box01-.png", "No pdf export for spreadIndex 9", "no_export"),
    ("a-p05-box01-.png", "No rects for export page", "no_rect"),
    ("a-p07-box01-.png", "PDF asset missing", "asset_missing"),
    ("a-p09-box01-.png", "PDF asset missing", "asset_missing"),
    ("a-p03-box04-.png", "No rect for box (L:3 R:1)", "no_rect"),
    ("a-p04-box02-.png", "No rect for box (L:3 R:1)", "no_rect"),
])
def test_missing_reasons_are_verbatim(filename, reason, kind):
    r, _ = _resolver()
    res = r.resolve(Tile(id="t", original_file_name=filename))
    assert res == Missing(reason, kind)


def test_rect_id_match_wins_over_filename():
    r, _ = _resolver(tile_matches={"R-a": "img-1"})
    res = r.resolve(Tile(id="t", image_key="img-1", original_file_name="offer-p03-box02-misc.png"))
    assert res.box.rect_id == "R-a"
    assert res.half == "right" and res.box_index == 1


def test_stale_rect_id_does_not_fall_through():
    r, docs = _resolver(tile_matches={"stale": "img-1"})
    res = r.resolve(Tile(id="t", image_key="img-1", original_file_name="offer-p03-box02-misc.png"))
    assert res == Missing("Matched rect not found in export", "no_match")
    assert "pdf-2" not in docs


def test_documents_are_opened_once_per_asset():
    pdf = FakePdf()
    r, docs = _resolver(pdf=pdf)
    for name in ("a-p03-box01-.png", "a-p03-box02-.png", "a-p04-box01-.png"):
        assert isinstance(r.resolve(Tile(id=name, original_file_name=name)), Resolution)
    assert len(pdf.opened) == 1
    docs.close_all()
    assert "pdf-2" not in docs


def test_degenerate_box_is_invalid_geometry():
    r, _ = _resolver()
    r.exports[0].pages[1].boxes.append(ExportBox(10, 10, 0, 50, rect_id="flat", order_index=4))
    res = r.resolve(Tile(id="t", original_file_name="a-p03-box04-.png"))
    assert res == Missing("Invalid rect geometry", "invalid_geometry")


def test_page_without_boxes_reports_empty_buckets():
    r, _ = _resolver()
    r.exports[0].pages[1] = PageExport(1, [], page_width=1000, page_height=700)
    res = r.resolve(Tile(id="t", original_file_name="t-p03-box01-a.png"))
    assert res == Missing("No rect for box (L:0 R:0)", "no_rect")
