# spreadmap/services/tile_resolver.py
from __future__ import annotations
import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from spreadmap.domain.models import ExportBox, PageExport, PdfRect, SpreadExportEntry, Tile, TileMapping
from spreadmap.errors import AssetMissing, InvalidGeometry, MappingUnresolved
from spreadmap.infra.document_cache import DocumentCache
from spreadmap.ports.pdf_port import PdfPagePort
from spreadmap.services.export_projector import find_rect_by_id, first_page_export, spread_order

logger = logging.getLogger(__name__)

# tile image names carry positional addressing: "...-p03-...-box02-..."
_PAGE_RE = re.compile(r"-p(\d{1,2})-", re.IGNORECASE)
_BOX_RE = re.compile(r"-box(\d{2})-", re.IGNORECASE)

NO_MATCH = "no_match"
NO_MAPPING = "no_mapping"
NO_EXPORT = "no_export"
ASSET_MISSING = "asset_missing"
NO_RECT = "no_rect"
INVALID_GEOMETRY = "invalid_geometry"


def parse_tile_mapping(filename: Optional[str]) -> Optional[TileMapping]:
    """
    Page and box numbers from a tile file name. Odd pages are the left half of
    a spread; spread index is ceil(page / 2).
    """
    if not filename:
        return None
    page_m = _PAGE_RE.search(filename)
    box_m = _BOX_RE.search(filename)
    if not page_m or not box_m:
        return None
    page = int(page_m.group(1))
    box = int(box_m.group(1))
    if page < 1 or box < 1:
        return None
    return TileMapping(
        img_page=page,
        half="left" if page % 2 == 1 else "right",
        spread_index=math.ceil(page / 2),
        box_order=box,
    )


def format_mapping_info(filename: Optional[str]) -> str:
    m = parse_tile_mapping(filename)
    if not m:
        return "p?? box??"
    return f"p{m.img_page:02d} box{m.box_order:02d}"


@dataclass(frozen=True)
class Resolution:
    export: SpreadExportEntry
    page_export: PageExport
    box: ExportBox
    page: PdfPagePort
    half: str
    box_index: Optional[int]

    @property
    def rect(self) -> PdfRect:
        return self.box.rect


@dataclass(frozen=True)
class Missing:
    reason: str
    kind: str


def _half_for(box: ExportBox, page_width: float) -> str:
    return "left" if box.center_x < page_width / 2 else "right"


def split_buckets(boxes: Sequence[ExportBox], page_width: float) -> Tuple[List[ExportBox], List[ExportBox]]:
    """Included, ordered boxes split at the page mid-line, each side sorted by order index."""
    usable = [b for b in boxes if b.include and b.order_index is not None]
    left = sorted((b for b in usable if _half_for(b, page_width) == "left"), key=lambda b: b.order_index)
    right = sorted((b for b in usable if _half_for(b, page_width) == "right"), key=lambda b: b.order_index)
    return left, right


class TileResolver:
    """
    Maps a tile to one exported region. Strategies, in order:
      1. a recorded rect id for the tile's image (never falls through when present),
      2. page/box numbers encoded in the tile's file name.
    """

    def __init__(self, exports: Sequence[SpreadExportEntry], documents: DocumentCache,
                 tile_matches: Optional[Mapping[str, str]] = None):
        self.exports = spread_order(exports)
        self.documents = documents
        self._rect_by_image: Dict[str, str] = {}
        for rect_id, image_key in (tile_matches or {}).items():
            self._rect_by_image[image_key] = rect_id

    def matched_rect_id(self, tile: Tile) -> Optional[str]:
        return self._rect_by_image.get(tile.image_key) if tile.image_key else None

    def resolve(self, tile: Tile) -> Union[Resolution, Missing]:
        try:
            rect_id = self.matched_rect_id(tile)
            if rect_id:
                return self._by_rect_id(rect_id)
            return self._by_filename(tile.file_name)
        except MappingUnresolved as e:
            return Missing(e.reason, e.kind)
        except InvalidGeometry as e:
            logger.debug("Invalid geometry for %s: %s", tile.file_name, e)
            return Missing("Invalid rect geometry", INVALID_GEOMETRY)

    # ---------- strategies ----------
    def _by_rect_id(self, rect_id: str) -> Resolution:
        found = find_rect_by_id(self.exports, rect_id)
        if not found:
            raise MappingUnresolved("Matched rect not found in export", NO_MATCH)
        export, page_export, box = found
        page = self._load_page(export, page_export.page_number)
        width = page_export.page_width or page.width
        return self._finish(export, page_export, box, page, _half_for(box, width), box.order_index)

    def _by_filename(self, filename: str) -> Resolution:
        mapping = parse_tile_mapping(filename)
        if not mapping:
            raise MappingUnresolved("Missing page/box mapping", NO_MAPPING)
        export = next((x for x in self.exports if x.spread_number == mapping.spread_index), None)
        if export is None:
            raise MappingUnresolved(f"No pdf export for spreadIndex {mapping.spread_index}", NO_EXPORT)
        page = self._load_page(export, 1)
        page_export = first_page_export(export)
        if page_export is None:
            raise MappingUnresolved("No rects for export page", NO_RECT)
        left, right = split_buckets(page_export.boxes, page.width)
        bucket = left if mapping.half == "left" else right
        if mapping.box_order > len(bucket):
            raise MappingUnresolved(f"No rect for box (L:{len(left)} R:{len(right)})", NO_RECT)
        box = bucket[mapping.box_order - 1]
        return self._finish(export, page_export, box, page, mapping.half, mapping.box_order)

    # ---------- helpers ----------
    def _load_page(self, export: SpreadExportEntry, number: int) -> PdfPagePort:
        try:
            return self.documents.page(export.pdf_id, number)
        except AssetMissing:
            raise MappingUnresolved("PDF asset missing", ASSET_MISSING)
        except (RuntimeError, ValueError, IndexError) as e:
            # unreadable blob or a page the document does not have
            logger.warning("Could not load page %d of %s: %s", number, export.pdf_id, e)
            raise MappingUnresolved("PDF asset missing", ASSET_MISSING) from e

    @staticmethod
    def _finish(export, page_export, box, page, half, box_index) -> Resolution:
        if box.width <= 0 or box.height <= 0:
            raise InvalidGeometry(f"Degenerate export box {box.rect_id}: {box.width} x {box.height}")
        return Resolution(export=export, page_export=page_export, box=box,
                          page=page, half=half, box_index=box_index)
