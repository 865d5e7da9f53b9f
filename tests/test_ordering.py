from spreadmap.domain.models import DetectedRegion, PageDetectionState, PdfRect, RegionConfig
from spreadmap.services import ordering as O


def _state(rects):
    boxes = [DetectedRegion(rect=r, area_pdf=r.area, rect_id=f"r{i}") for i, r in enumerate(rects)]
    return PageDetectionState(boxes=boxes, rect_configs={i: RegionConfig() for i in range(len(boxes))})


# two rows in PDF space (y grows upwards): top row at y~200, bottom row at y~100
GRID = [
    PdfRect(230, 200, 80, 50),   # 0 top right
    PdfRect(10, 100, 80, 50),    # 1 bottom left
    PdfRect(10, 203, 80, 50),    # 2 top left, slightly higher
    PdfRect(120, 198, 80, 50),   # 3 top middle
    PdfRect(120, 101, 80, 50),   # 4 bottom right
]


def test_auto_order_rows_top_to_bottom_left_to_right():
    order = O.auto_order(list(enumerate(GRID)))
    assert order == [2, 3, 0, 1, 4]


def test_auto_order_is_deterministic():
    items = list(enumerate(GRID))
    assert O.auto_order(items) == O.auto_order(items) == O.auto_order(list(reversed(items)))


def test_resolve_order_numbers_auto_positions_from_one():
    assert O.resolve_order(_state(GRID)) == [(2, 1), (3, 2), (0, 3), (1, 4), (4, 5)]


def test_manual_order_overrides_wholesale():
    s = _state(GRID)
    s = O.assign_next_order(s, 4)
    s = O.assign_next_order(s, 0)
    # only the manually ordered subset comes back
    assert O.resolve_order(s) == [(4, 1), (0, 2)]
    assert O.has_manual_order(s)
    assert not O.is_ordering_complete(s)


def test_assign_skips_excluded_and_already_ordered():
    s = _state(GRID)
    s = O.toggle_include(s, 1, False)
    s = O.assign_next_order(s, 1)
    s = O.assign_next_order(s, 2)
    s = O.assign_next_order(s, 2)
    assert s.config(1).order_index is None
    assert s.config(2).order_index == 1
    assert s.current_order_counter == 2


def test_undo_and_reset():
    s = _state(GRID)
    for i in (3, 1, 0):
        s = O.assign_next_order(s, i)
    s = O.finish_ordering(s)
    s = O.undo_last_order(s)
    assert s.config(0).order_index is None
    assert s.current_order_counter == 3
    assert s.ordering_finished is False
    s = O.reset_order(s)
    assert all(c.order_index is None for c in s.rect_configs.values())
    assert s.current_order_counter == 1
    assert O.undo_last_order(s) is s


def test_excluded_region_keeps_order_but_is_not_returned():
    s = _state(GRID)
    s = O.assign_next_order(s, 0)
    s = O.assign_next_order(s, 2)
    s = O.toggle_include(s, 0)
    assert s.config(0).order_index == 1
    assert O.resolve_order(s) == [(2, 2)]
    s = O.toggle_include(s, 0)
    assert O.resolve_order(s) == [(0, 1), (2, 2)]


def test_transitions_do_not_mutate_input():
    s = _state(GRID)
    O.assign_next_order(s, 0)
    O.toggle_include(s, 1)
    O.adjust_padding(s, 2, 5)
    assert s.config(0).order_index is None
    assert s.config(1).include is True
    assert s.config(2).padding_override is None


def test_padding_clamped():
    s = _state(GRID)
    s = O.adjust_padding(s, 0, 500)
    assert O.effective_padding(s, 0) == 200
    s = O.adjust_padding(s, 0, -1000)
    assert O.effective_padding(s, 0) == 0
    s = O.reset_padding(s, 0)
    assert O.effective_padding(s, 0) == s.padding_px
