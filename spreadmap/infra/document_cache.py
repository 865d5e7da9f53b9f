from __future__ import annotations
import logging
from typing import Dict, Optional

from spreadmap.errors import AssetMissing
from spreadmap.ports.asset_port import AssetStorePort
from spreadmap.ports.pdf_port import PdfDocumentPort, PdfPagePort, PdfPort

logger = logging.getLogger(__name__)


class DocumentCache:
    """
    Open PDF documents and pages keyed by asset id / page number.
    Owned by one batch run or one detection session; call close_all() when done.
    """

    def __init__(self, assets: AssetStorePort, pdf: Optional[PdfPort] = None):
        if pdf is None:
            from spreadmap.infra.pdf_adapter import PdfAdapter
            pdf = PdfAdapter()
        self.assets = assets
        self.pdf = pdf
        self._docs: Dict[str, PdfDocumentPort] = {}
        self._pages: Dict[str, Dict[int, PdfPagePort]] = {}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close_all()
        return False

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._docs

    def open(self, asset_id: str) -> PdfDocumentPort:
        doc = self._docs.get(asset_id)
        if doc is not None:
            return doc
        asset = self.assets.get_asset(asset_id)
        if asset is None:
            raise AssetMissing(asset_id)
        doc = self.pdf.open_bytes(asset.blob)
        logger.debug("Opened PDF %s (%s, %d pages)", asset_id, asset.name, doc.page_count)
        self._docs[asset_id] = doc
        return doc

    def page(self, asset_id: str, number: int = 1) -> PdfPagePort:
        per_doc = self._pages.setdefault(asset_id, {})
        page = per_doc.get(number)
        if page is None:
            page = self.open(asset_id).get_page(number)
            per_doc[number] = page
        return page

    def invalidate(self, asset_id: str) -> None:
        """Drop a document whose underlying asset changed."""
        self._pages.pop(asset_id, None)
        doc = self._docs.pop(asset_id, None)
        if doc is not None:
            try:
                doc.close()
            except Exception:
                logger.warning("Failed to close PDF %s", asset_id, exc_info=True)

    def close_all(self) -> None:
        for asset_id in list(self._docs):
            self.invalidate(asset_id)
        self._pages.clear()
