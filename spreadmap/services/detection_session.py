# spreadmap/services/detection_session.py
from __future__ import annotations
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from spreadmap.domain.models import DetectedRegion, PageDetectionState, PdfEntry, RegionConfig

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def load(self) -> List[PdfEntry]: ...
    def save(self, entries: List[PdfEntry]) -> None: ...


class DetectionSession:
    """
    Operator-facing detection state: the list of uploaded PDFs and, for the active
    (pdf, page), the in-memory PageDetectionState.

    Every mutation goes through `mutate`/`apply_detection` and is written through to
    the store. Switching pdf or page flushes the outgoing page first.
    """

    def __init__(self, store: StateStore):
        self.store = store
        self._entries: Dict[str, PdfEntry] = {}
        for entry in store.load():
            self._entries[entry.id] = entry
        self.active_pdf_id: Optional[str] = next(iter(self._entries), None)
        self.active_page: int = self._entries[self.active_pdf_id].selected_page if self.active_pdf_id else 1
        self._state: PageDetectionState = self._load_state()

    # ---------- queries ----------
    @property
    def entries(self) -> List[PdfEntry]:
        """PdfEntry list in upload order."""
        return list(self._entries.values())

    @property
    def active_state(self) -> PageDetectionState:
        return self._state

    def entry(self, pdf_id: str) -> PdfEntry:
        return self._entries[pdf_id]

    # ---------- pdf / page selection ----------
    def add_pdf(self, pdf_id: str, name: str, page_count: int = 1) -> PdfEntry:
        if pdf_id in self._entries:
            return self._entries[pdf_id]
        entry = PdfEntry(id=pdf_id, name=name, page_count=max(1, int(page_count)))
        self._entries[pdf_id] = entry
        logger.info("Added PDF %s (%s, %d pages)", name, pdf_id, entry.page_count)
        if self.active_pdf_id is None:
            self.active_pdf_id = pdf_id
            self.active_page = 1
            self._state = self._load_state()
        self._save()
        return entry

    def remove_pdf(self, pdf_id: str) -> None:
        if pdf_id not in self._entries:
            return
        if pdf_id == self.active_pdf_id:
            del self._entries[pdf_id]
            self.active_pdf_id = next(iter(self._entries), None)
            self.active_page = self._entries[self.active_pdf_id].selected_page if self.active_pdf_id else 1
            self._state = self._load_state()
        else:
            del self._entries[pdf_id]
        self._save()

    def select_pdf(self, pdf_id: str) -> PageDetectionState:
        if pdf_id not in self._entries:
            raise KeyError(f"Unknown pdf id {pdf_id}")
        if pdf_id == self.active_pdf_id:
            return self._state
        self.flush()
        self.active_pdf_id = pdf_id
        self.active_page = self._entries[pdf_id].selected_page
        self._state = self._load_state()
        return self._state

    def select_page(self, page_number: int) -> PageDetectionState:
        entry = self._require_active()
        page_number = max(1, min(entry.page_count, int(page_number)))
        if page_number == self.active_page:
            return self._state
        self.flush()
        self.active_page = page_number
        entry.selected_page = page_number
        self._state = self._load_state()
        self._save()
        return self._state

    # ---------- mutations ----------
    def apply_detection(self, regions: Sequence[DetectedRegion],
                        page_width: float, page_height: float) -> PageDetectionState:
        """Replace the active page's regions with a fresh detection result."""
        self._require_active()
        state = PageDetectionState(
            boxes=list(regions),
            rect_configs={i: RegionConfig() for i in range(len(regions))},
            ordering_finished=False,
            current_order_counter=1,
            padding_px=self._state.padding_px,
            page_width=page_width,
            page_height=page_height,
        )
        return self._commit(state)

    def mutate(self, fn: Callable[..., PageDetectionState], *args, **kwargs) -> PageDetectionState:
        """Apply a pure state transition (see services.ordering) and persist it."""
        self._require_active()
        return self._commit(fn(self._state, *args, **kwargs))

    def flush(self) -> None:
        if self.active_pdf_id is None:
            return
        entry = self._entries[self.active_pdf_id]
        entry.pages = {**entry.pages, self.active_page: self._state}
        self._save()

    # ---------- internals ----------
    def _commit(self, state: PageDetectionState) -> PageDetectionState:
        self._state = state
        self.flush()
        return state

    def _require_active(self) -> PdfEntry:
        if self.active_pdf_id is None:
            raise RuntimeError("No PDF selected")
        return self._entries[self.active_pdf_id]

    def _load_state(self) -> PageDetectionState:
        if self.active_pdf_id is None:
            return PageDetectionState()
        stored = self._entries[self.active_pdf_id].pages.get(self.active_page)
        # copy so in-memory edits never alias the stored entry
        return replace(stored, boxes=list(stored.boxes), rect_configs=dict(stored.rect_configs)) if stored else PageDetectionState()

    def _save(self) -> None:
        self.store.save(self.entries)
