# spreadmap/services/export_projector.py
from __future__ import annotations
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from spreadmap.domain.models import (
    ExportBox, PageDetectionState, PageExport, PdfEntry, SpreadExportEntry,
)
from spreadmap.infra.state_store import read_json, write_json
from spreadmap.services.ordering import has_manual_order, is_ordering_complete, resolve_order

logger = logging.getLogger(__name__)

_SPREAD_RE = re.compile(r"(?:^|\s|-|_)P(\d{1,2})(?:\D|$)", re.IGNORECASE)


def parse_spread_number(filename: Optional[str]) -> Optional[int]:
    """'Catalogue_P03.pdf' -> 3; None when the name carries no spread marker."""
    if not filename:
        return None
    m = _SPREAD_RE.search(Path(filename).stem) or _SPREAD_RE.search(filename)
    return int(m.group(1)) if m else None


def _project_page(page_number: int, state: PageDetectionState) -> PageExport:
    order = dict(resolve_order(state))
    boxes = []
    for i, region in enumerate(state.boxes):
        r = region.rect
        boxes.append(ExportBox(
            r.x, r.y, r.width, r.height,
            rect_id=region.rect_id,
            include=state.is_included(i),
            order_index=order.get(i),
        ))
    return PageExport(page_number=page_number, boxes=boxes,
                      page_width=state.page_width, page_height=state.page_height)


def project_to_export(entry: PdfEntry, upload_index: int = 0) -> SpreadExportEntry:
    spread = parse_spread_number(entry.name)
    if spread is None:
        spread = upload_index + 1
    pages = {n: _project_page(n, state) for n, state in sorted(entry.pages.items())}
    return SpreadExportEntry(pdf_id=entry.id, filename=entry.name, spread_number=spread, pages=pages)


def build_export_map(entries: Sequence[PdfEntry]) -> List[SpreadExportEntry]:
    return [project_to_export(e, i) for i, e in enumerate(entries)]


def export_by_pdf_id(entries: Sequence[PdfEntry]) -> Dict[str, SpreadExportEntry]:
    return {x.pdf_id: x for x in build_export_map(entries)}


def spread_order(exports: Iterable[SpreadExportEntry]) -> List[SpreadExportEntry]:
    """Exports whose filename names a spread come first (by number), the rest keep upload order."""
    items = list(exports)
    named = [x for x in items if parse_spread_number(x.filename) is not None]
    rest = [x for x in items if parse_spread_number(x.filename) is None]
    return sorted(named, key=lambda x: x.spread_number) + rest


def first_page_export(entry: SpreadExportEntry) -> Optional[PageExport]:
    if not entry.pages:
        return None
    return entry.pages[min(entry.pages)]


def find_rect_by_id(exports: Iterable[SpreadExportEntry], rect_id: str):
    """(export, page, box) holding `rect_id`, or None."""
    for export in exports:
        for page in export.pages.values():
            for box in page.boxes:
                if box.rect_id == rect_id:
                    return export, page, box
    return None


def dump_exports(path: str | Path, exports: Sequence[SpreadExportEntry]) -> None:
    write_json(path, [x.to_dict() for x in exports])
    logger.info("Wrote %d spread exports to %s", len(exports), path)


def load_exports(path: str | Path) -> List[SpreadExportEntry]:
    data = read_json(path)
    if isinstance(data, dict):
        data = data.get("exports") or data.get("pdfs")
    if not isinstance(data, list):
        return []
    out: List[SpreadExportEntry] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            continue
        try:
            out.append(SpreadExportEntry.from_dict(item, fallback_spread=i + 1))
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed export entry %d in %s", i, path, exc_info=True)
    return out


def detection_summary(entries: Sequence[PdfEntry]) -> List[dict]:
    """Per-PDF counts shown next to each upload."""
    rows = []
    for e in entries:
        total = included = ordered = 0
        sized = True
        complete = bool(e.pages)
        for state in e.pages.values():
            total += len(state.boxes)
            included += sum(1 for i in range(len(state.boxes)) if state.is_included(i))
            if has_manual_order(state):
                ordered += sum(
                    1 for i in range(len(state.boxes))
                    if state.is_included(i) and state.config(i).order_index is not None
                )
            if state.page_width is None or state.page_height is None:
                sized = False
            if state.boxes and not is_ordering_complete(state):
                complete = False
        rows.append({
            "pdfId": e.id,
            "name": e.name,
            "spreadNumber": parse_spread_number(e.name),
            "pages": len(e.pages),
            "regions": total,
            "included": included,
            "ordered": ordered,
            "orderingComplete": complete,
            "hasPageSize": sized,
        })
    return rows
