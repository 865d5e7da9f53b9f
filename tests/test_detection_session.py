import json

from spreadmap.domain.models import DetectedRegion, PdfEntry, PdfRect
from spreadmap.infra.state_store import JsonStateStore, MemoryStateStore
from spreadmap.services import ordering as O
from spreadmap.services.detection_session import DetectionSession


def _regions(n):
    return [DetectedRegion(rect=PdfRect(10 + 100 * i, 10, 80, 80), area_pdf=6400, rect_id=f"r{i}") for i in range(n)]


def test_apply_detection_resets_configs():
    store = MemoryStateStore()
    s = DetectionSession(store)
    s.add_pdf("a", "Cat_P01.pdf", page_count=2)
    s.apply_detection(_regions(3), 600, 800)
    s.mutate(O.assign_next_order, 1)
    state = s.apply_detection(_regions(2), 600, 800)
    assert len(state.boxes) == 2
    assert all(c.include and c.order_index is None for c in state.rect_configs.values())
    assert state.current_order_counter == 1
    assert (state.page_width, state.page_height) == (600, 800)


def test_every_mutation_is_written_through():
    store = MemoryStateStore()
    s = DetectionSession(store)
    s.add_pdf("a", "Cat_P01.pdf")
    s.apply_detection(_regions(2), 600, 800)
    before = store.saves
    s.mutate(O.toggle_include, 0, False)
    assert store.saves == before + 1
    saved = store.load()[0].pages[1]
    assert saved.config(0).include is False


def test_switching_page_flushes_outgoing_state():
    store = MemoryStateStore()
    s = DetectionSession(store)
    s.add_pdf("a", "Cat_P01.pdf", page_count=3)
    s.apply_detection(_regions(3), 600, 800)
    s.mutate(O.assign_next_order, 2)

    page2 = s.select_page(2)
    assert page2.boxes == []
    s.apply_detection(_regions(1), 600, 800)

    page1 = s.select_page(1)
    assert page1.config(2).order_index == 1
    reloaded = DetectionSession(store)
    assert reloaded.entry("a").pages[2].boxes[0].rect_id == "r0"
    assert reloaded.entry("a").pages[1].config(2).order_index == 1


def test_switching_pdf_flushes_outgoing_state():
    store = MemoryStateStore()
    s = DetectionSession(store)
    s.add_pdf("a", "Cat_P01.pdf")
    s.add_pdf("b", "Cat_P02.pdf")
    s.apply_detection(_regions(2), 600, 800)
    s.mutate(O.set_page_padding, 25)
    s.select_pdf("b")
    assert s.active_state.boxes == []
    s.select_pdf("a")
    assert s.active_state.padding_px == 25
    assert [e.id for e in s.entries] == ["a", "b"]


def test_json_store_round_trip(tmp_path):
    path = tmp_path / "state" / "detect.json"
    s = DetectionSession(JsonStateStore(path))
    s.add_pdf("a", "Cat_P01.pdf", page_count=2)
    s.apply_detection(_regions(2), 600, 800)
    s.mutate(O.adjust_padding, 1, 7)
    entries = JsonStateStore(path).load()
    assert len(entries) == 1 and isinstance(entries[0], PdfEntry)
    state = entries[0].pages[1]
    assert [b.rect_id for b in state.boxes] == ["r0", "r1"]
    assert state.config(1).padding_override == 17


def test_corrupt_json_falls_back_to_empty(tmp_path, caplog):
    path = tmp_path / "detect.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonStateStore(path).load() == []
    assert DetectionSession(JsonStateStore(path)).entries == []
    assert any("corrupt" in r.getMessage().lower() for r in caplog.records)


def test_missing_file_is_empty(tmp_path):
    assert JsonStateStore(tmp_path / "nope.json").load() == []


def test_remove_active_pdf_moves_to_next():
    store = MemoryStateStore()
    s = DetectionSession(store)
    s.add_pdf("a", "Cat_P01.pdf")
    s.add_pdf("b", "Cat_P02.pdf")
    s.apply_detection(_regions(1), 600, 800)
    s.remove_pdf("a")
    assert s.active_pdf_id == "b"
    assert s.active_state.boxes == []
    assert [e.id for e in store.load()] == ["b"]


def test_list_shaped_pages_and_configs_load(tmp_path):
    path = tmp_path / "detect.json"
    path.write_text(json.dumps({"pdfs": [{
        "id": "a", "name": "Cat_P01.pdf",
        "pages": [
            {"boxes": [], "rectConfigs": [{"include": False}, {"include": True, "orderIndex": 1}]},
            {"boxes": []},
        ],
    }]}), encoding="utf-8")
    (entry,) = JsonStateStore(path).load()
    assert sorted(entry.pages) == [1, 2]
    assert entry.pages[1].config(0).include is False
    assert entry.pages[1].config(1).order_index == 1


def test_unexpected_entry_shape_falls_back_to_empty(tmp_path, monkeypatch, caplog):
    path = tmp_path / "detect.json"
    path.write_text(json.dumps({"pdfs": [{"id": "a", "pages": "junk"}]}), encoding="utf-8")
    (entry,) = JsonStateStore(path).load()
    assert entry.pages == {}

    def broken(d):
        raise AttributeError("no items")
    monkeypatch.setattr(PdfEntry, "from_dict", broken)
    assert DetectionSession(JsonStateStore(path)).entries == []
    assert any("malformed" in r.getMessage() for r in caplog.records)
