# spreadmap/services/batch_extraction.py
from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from spreadmap import constants as C
from spreadmap.domain.models import CatalogueProject, SpreadExportEntry, Tile
from spreadmap.infra.document_cache import DocumentCache
from spreadmap.ports.asset_port import AssetStorePort
from spreadmap.ports.pdf_port import PdfPort
from spreadmap.services import tile_resolver as R
from spreadmap.services.offer_parser import OfferParser
from spreadmap.services.plu_extractor import extract_plus, fill_plu_slots
from spreadmap.services.text_extractor import extract_text_from_rect

logger = logging.getLogger(__name__)

ProgressCb = Callable[[int, int], None]
CancelCb = Callable[[], bool]

FAILED_KIND = "error"
EXTRA_KIND_LABELS = (
    (R.ASSET_MISSING, "asset missing"),
    (R.INVALID_GEOMETRY, "invalid geometry"),
    (FAILED_KIND, "failed"),
)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BatchSummary:
    processed: int = 0
    with_plus: int = 0
    total_plus: int = 0
    missing: int = 0
    spreads: int = 0
    missing_by_kind: Dict[str, int] = field(default_factory=dict)
    state: RunState = RunState.IDLE
    error: Optional[str] = None

    def count_missing(self, kind: str) -> None:
        self.missing += 1
        self.missing_by_kind[kind] = self.missing_by_kind.get(kind, 0) + 1

    def message(self) -> str:
        k = self.missing_by_kind
        parts = [
            f"spreads {self.spreads}",
            f"no export {k.get(R.NO_EXPORT, 0)}",
            f"no rect {k.get(R.NO_RECT, 0)}",
            f"no match {k.get(R.NO_MATCH, 0)}",
        ]
        # rarer kinds only when they occurred
        for kind, label in EXTRA_KIND_LABELS:
            if k.get(kind):
                parts.append(f"{label} {k[kind]}")
        return (
            f"{self.processed} tiles processed, {self.with_plus} with PLUs, {self.total_plus} PLUs filled, "
            f"{self.missing} missing mappings (" + ", ".join(parts) + ")."
        )


class BatchExtractionService:
    """
    Best-effort sweep over a project's tiles: resolve each to a PDF region, read its
    text, fill PLU slots and parse the offer. One run at a time per service.
    """

    def __init__(self, assets: AssetStorePort, exports: Sequence[SpreadExportEntry],
                 parser: Optional[OfferParser] = None, pdf: Optional[PdfPort] = None,
                 max_plu_fields: int = C.MAX_PLU_FIELDS,
                 clock: Callable[[], float] = time.time):
        self.assets = assets
        self.exports = list(exports)
        self.parser = parser or OfferParser()
        self.pdf = pdf
        self.max_plu_fields = max_plu_fields
        self.clock = clock
        self.state = RunState.IDLE
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.state is RunState.RUNNING

    def run(self, project: CatalogueProject,
            on_progress: Optional[ProgressCb] = None,
            should_cancel: Optional[CancelCb] = None) -> Optional[BatchSummary]:
        """
        Process every tile of `project` in order, replacing each tile in
        `project.tiles` as it completes. Returns None when a run is already active.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Batch extraction already running; ignoring request")
            return None
        summary = BatchSummary(spreads=len(self.exports), state=RunState.RUNNING)
        self.state = RunState.RUNNING
        total = len(project.tiles)
        logger.info("Batch extraction started: %d tiles, %d spreads", total, summary.spreads)
        try:
            with DocumentCache(self.assets, self.pdf) as documents:
                resolver = R.TileResolver(self.exports, documents, project.tile_matches)
                logged = 0
                for i, tile in enumerate(list(project.tiles)):
                    if should_cancel and should_cancel():
                        summary.state = RunState.CANCELLED
                        logger.info("Batch extraction cancelled after %d/%d tiles", i, total)
                        break
                    updated, missing_reason = self._process_tile(tile, resolver, summary)
                    project.tiles[i] = updated
                    if missing_reason and logged < C.MISSING_LOG_LIMIT:
                        logger.debug("Missing mapping for %s (%s): %s",
                                     tile.file_name, R.format_mapping_info(tile.file_name), missing_reason)
                        logged += 1
                    if on_progress:
                        on_progress(i + 1, total)
                else:
                    summary.state = RunState.SUCCEEDED
        except Exception as e:
            summary.state = RunState.FAILED
            summary.error = f"{type(e).__name__}: {e}"
            logger.exception("Batch extraction failed")
        finally:
            self.state = summary.state
            self._lock.release()
        logger.info("Batch extraction %s: %s", summary.state.value, summary.message())
        return summary

    # ---------- per tile ----------
    def _process_tile(self, tile: Tile, resolver: R.TileResolver, summary: BatchSummary):
        try:
            result = resolver.resolve(tile)
            if isinstance(result, R.Missing):
                summary.count_missing(result.kind)
                return self._mark_missing(tile, result.reason), result.reason
            return self._apply(tile, result, summary), None
        except Exception as e:
            reason = f"Extraction failed: {type(e).__name__}"
            logger.warning("Tile %s failed: %s", tile.file_name, e, exc_info=True)
            summary.count_missing(FAILED_KIND)
            return self._mark_missing(tile, reason), reason

    @staticmethod
    def _mark_missing(tile: Tile, reason: str) -> Tile:
        return replace(tile, pdf_mapping_status=C.MAPPING_MISSING, pdf_mapping_reason=reason)

    def _apply(self, tile: Tile, res: R.Resolution, summary: BatchSummary) -> Tile:
        text = extract_text_from_rect(res.page, res.rect)
        plus = extract_plus(text)
        offer = self.parser.parse(text)

        set_title = not tile.title or not tile.title_edited_manually
        updated = replace(
            tile,
            extracted_text=text,
            offer=offer,
            offer_updated_at=self.clock() * 1000,
            title=(offer.title or tile.title) if set_title else tile.title,
            title_edited_manually=False if set_title else tile.title_edited_manually,
            pdf_mapping_status=None,
            pdf_mapping_reason=None,
            mapped_pdf_filename=res.export.filename or res.export.pdf_id,
            mapped_spread_number=res.export.spread_number,
            mapped_half=res.half,
            mapped_box_index=res.box_index,
        )
        summary.processed += 1
        if plus:
            trimmed = plus[: self.max_plu_fields]
            updated = fill_plu_slots(updated, trimmed, self.max_plu_fields)
            summary.with_plus += 1
            summary.total_plus += len(trimmed)
        return updated
