import json

import pytest

from spreadmap.domain.models import DetectedRegion, PageDetectionState, PdfEntry, PdfRect, RegionConfig
from spreadmap.services import ordering as O
from spreadmap.services.export_projector import (
    build_export_map, detection_summary, dump_exports, find_rect_by_id, first_page_export,
    load_exports, parse_spread_number, project_to_export, spread_order,
)


@pytest.mark.parametrize("name,expected", [
    ("Catalogue_P03.pdf", 3),
    ("SCA-P12-final.pdf", 12),
    ("p4.pdf", 4),
    ("Spread P7 print.pdf", 7),
    ("Promo_2024.pdf", None),
    ("SHOP3.pdf", None),
    ("Cat_P123.pdf", None),
    (None, None),
])
def test_parse_spread_number(name, expected):
    assert parse_spread_number(name) == expected


def _entry(pdf_id, name, n=3):
    boxes = [DetectedRegion(rect=PdfRect(10 + 120 * i, 100, 100, 100), area_pdf=10000, rect_id=f"{pdf_id}-{i}")
             for i in range(n)]
    state = PageDetectionState(boxes=boxes, rect_configs={i: RegionConfig() for i in range(n)},
                               page_width=800, page_height=600)
    return PdfEntry(id=pdf_id, name=name, page_count=1, pages={1: state})


def test_spread_number_falls_back_to_upload_order():
    exports = build_export_map([_entry("a", "spread.pdf"), _entry("b", "other.pdf"), _entry("c", "x_P05.pdf")])
    assert [x.spread_number for x in exports] == [1, 2, 5]


def test_export_boxes_carry_rect_id_and_auto_order():
    x = project_to_export(_entry("a", "Cat_P01.pdf"))
    page = first_page_export(x)
    assert page.page_number == 1 and page.page_width == 800
    assert [(b.rect_id, b.order_index) for b in page.boxes] == [("a-0", 1), ("a-1", 2), ("a-2", 3)]


def test_manual_order_and_exclusion_in_export():
    e = _entry("a", "Cat_P01.pdf")
    s = e.pages[1]
    s = O.assign_next_order(s, 2)
    s = O.assign_next_order(s, 0)
    s = O.toggle_include(s, 1, False)
    e.pages[1] = s
    boxes = first_page_export(project_to_export(e)).boxes
    assert [(b.include, b.order_index) for b in boxes] == [(True, 2), (False, None), (True, 1)]
    # rect ids survive re-ordering
    assert [b.rect_id for b in boxes] == ["a-0", "a-1", "a-2"]


def test_export_json_round_trip_and_find(tmp_path):
    exports = build_export_map([_entry("a", "Cat_P02.pdf"), _entry("b", "Cat_P01.pdf")])
    path = tmp_path / "exports.json"
    dump_exports(path, exports)
    loaded = load_exports(path)
    assert [x.to_dict() for x in loaded] == [x.to_dict() for x in exports]
    assert [x.pdf_id for x in spread_order(loaded)] == ["b", "a"]
    export, page, box = find_rect_by_id(loaded, "a-1")
    assert export.pdf_id == "a" and page.page_number == 1 and box.order_index == 2
    assert find_rect_by_id(loaded, "missing") is None


def test_load_exports_accepts_page_list_and_legacy_geometry(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps([{
        "pdfId": "z", "filename": "cat.pdf", "spreadNumber": 4,
        "pages": [{"boxes": [{"rectId": "q", "xPdf": 1, "yPdf": 2, "wPdf": 30, "hPdf": 40, "orderIndex": 1}]}],
    }, {
        "pdfId": "y", "filename": "cat2.pdf",
        "pages": {"2": {"pageNumber": 2, "boxes": []}, "1": {"boxes": []}},
    }]), encoding="utf-8")
    first, second = load_exports(path)
    box = first.pages[1].boxes[0]
    assert (box.x, box.y, box.width, box.height, box.include) == (1, 2, 30, 40, True)
    assert second.spread_number == 2
    assert list(second.pages) == [1, 2]


def test_load_exports_corrupt_is_empty(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[{", encoding="utf-8")
    assert load_exports(path) == []


def test_detection_summary_counts():
    e = _entry("a", "Cat_P01.pdf")
    e.pages[1] = O.toggle_include(e.pages[1], 0, False)
    (row,) = detection_summary([e])
    assert row["regions"] == 3 and row["included"] == 2
    assert row["ordered"] == 0 and row["orderingComplete"] is False
    assert row["spreadNumber"] == 1 and row["hasPageSize"] is True
