# spreadmap/infra/excel_writer.py
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from spreadmap.domain.models import Tile
from spreadmap.errors import CancelledError, ReportWriteError
from spreadmap.services.tile_resolver import format_mapping_info

REPORT_HEADERS = [
    "Tile", "Mapping", "Status", "Reason", "PDF", "Spread", "Half", "Box",
    "PLUs", "Auto PLUs", "Title", "Percent Off", "Brand", "Price", "Detected Brands",
]

# fixed widths for the wide text columns, the rest are auto-sized
_WIDTHS = {"Tile": 40, "Reason": 36, "PLUs": 40, "Title": 60, "Detected Brands": 30}


def _clean_cell_value(val):
    """Strip characters Excel refuses to accept."""
    if isinstance(val, str):
        return ILLEGAL_CHARACTERS_RE.sub("", val)
    return val


def tile_row(tile: Tile) -> List:
    plus = [p for p in tile.plus if p]
    auto = [p for p, flag in zip(tile.plus, tile.extracted_plu_flags) if p and flag]
    offer = tile.offer
    if tile.pdf_mapping_status:
        status = tile.pdf_mapping_status
    elif tile.mapped_pdf_filename:
        status = "mapped"
    else:
        status = ""
    return [
        tile.file_name,
        format_mapping_info(tile.file_name),
        status,
        tile.pdf_mapping_reason or "",
        tile.mapped_pdf_filename or "",
        tile.mapped_spread_number,
        tile.mapped_half or "",
        tile.mapped_box_index,
        ", ".join(plus),
        len(auto),
        tile.title or "",
        offer.percent_off.raw if offer and offer.percent_off else "",
        offer.brand.label if offer and offer.brand else "",
        offer.price.raw if offer and offer.price else "",
        ", ".join(offer.detected_brands) if offer else "",
    ]


def write_tile_report(tiles: Iterable[Tile], target_path: str | Path,
                      should_cancel: Optional[Callable[[], bool]] = None) -> Path:
    """
    One row per tile with its mapping diagnosis, PLUs and offer summary.
    Written to a temp file beside the target, then moved into place.
    """
    should_cancel = should_cancel or (lambda: False)
    final = Path(target_path)
    final.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(prefix="spreadmap_", suffix=".xlsx", dir=final.parent)
    os.close(fd)

    try:
        wb = Workbook()
        ws = wb.active
        ws.title = "Tiles"
        ws.append(REPORT_HEADERS)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        for tile in tiles:
            if should_cancel():
                raise CancelledError("User cancelled during Excel write.")
            ws.append([_clean_cell_value(v) for v in tile_row(tile)])

        for idx, header in enumerate(REPORT_HEADERS, start=1):
            ws.column_dimensions[get_column_letter(idx)].width = _WIDTHS.get(header, max(10, len(header) + 2))
        ws.freeze_panes = "A2"

        wb.save(tmp_path)
        wb.close()

        try:
            os.replace(tmp_path, final)
        except OSError:
            if final.exists():
                final.unlink()
            shutil.move(tmp_path, final)
        return final

    except CancelledError:
        try: os.unlink(tmp_path)
        except OSError: pass
        raise
    except Exception as e:
        try: os.unlink(tmp_path)
        except OSError: pass
        raise ReportWriteError(str(e)) from e
