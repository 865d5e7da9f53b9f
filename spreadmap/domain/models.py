from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from spreadmap import constants as C
from spreadmap.errors import InvalidGeometry

# affine matrix (a, b, c, d, e, f) as used by PDF text matrices
Matrix = Tuple[float, float, float, float, float, float]


def new_rect_id() -> str:
    return uuid.uuid4().hex


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}


def _num(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if out == out else None  # NaN -> None


def _int(value: Any) -> Optional[int]:
    n = _num(value)
    return int(n) if n is not None else None


def _keyed(raw: Any, start: int) -> List[Tuple[Optional[int], Any]]:
    """(key, value) pairs from a dict keyed by number or a list indexed from `start`."""
    if isinstance(raw, list):
        return [(start + i, v) for i, v in enumerate(raw)]
    if isinstance(raw, dict):
        return [(_int(k), v) for k, v in raw.items()]
    return []


# ───────── Geometry ─────────

@dataclass(frozen=True)
class PdfRect:
    """Rectangle in PDF points, origin bottom-left."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise InvalidGeometry(f"Negative rect size: {self.width} x {self.height}")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: dict) -> "PdfRect":
        # legacy payloads carry xPdf/yPdf/wPdf/hPdf
        x = d.get("x", d.get("xPdf"))
        y = d.get("y", d.get("yPdf"))
        w = d.get("width", d.get("wPdf"))
        h = d.get("height", d.get("hPdf"))
        return cls(float(x or 0), float(y or 0), float(w or 0), float(h or 0))


@dataclass(frozen=True)
class CanvasRect:
    """Rectangle in rendered-canvas pixels, origin top-left."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise InvalidGeometry(f"Negative rect size: {self.width} x {self.height}")

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True)
class Viewport:
    """
    A rendered view of one PDF page. `scale` maps points to CSS pixels;
    `device_pixel_ratio` is only applied when going to/from the raster bitmap.
    """
    scale: float
    page_width: float
    page_height: float
    device_pixel_ratio: float = 1.0

    def __post_init__(self):
        if not (self.scale > 0):
            raise InvalidGeometry(f"Viewport scale must be positive, got {self.scale}")
        if not (self.page_width > 0 and self.page_height > 0):
            raise InvalidGeometry(f"Viewport page size must be positive, got {self.page_width} x {self.page_height}")
        if not (self.device_pixel_ratio > 0):
            raise InvalidGeometry(f"Device pixel ratio must be positive, got {self.device_pixel_ratio}")

    @property
    def width(self) -> float:
        return self.page_width * self.scale

    @property
    def height(self) -> float:
        return self.page_height * self.scale

    @property
    def transform(self) -> Matrix:
        # PDF user space -> canvas space (y flipped)
        return (self.scale, 0.0, 0.0, -self.scale, 0.0, self.page_height * self.scale)


@dataclass(frozen=True)
class DetectParams:
    canny_low: int = C.CANNY_LOW
    canny_high: int = C.CANNY_HIGH
    min_area_percent: float = C.MIN_AREA_PERCENT
    dilate_iterations: int = C.DILATE_ITERATIONS


@dataclass(frozen=True)
class TextRun:
    """One text-layer item: string, text matrix and advance size in PDF user space."""
    text: str
    transform: Matrix
    width: float
    height: float


# ───────── Detection state ─────────

@dataclass
class DetectedRegion:
    rect: PdfRect
    area_pdf: float
    rect_id: str = field(default_factory=new_rect_id)

    def to_dict(self) -> dict:
        return {"rectId": self.rect_id, **self.rect.to_dict(), "areaPdf": self.area_pdf}

    @classmethod
    def from_dict(cls, d: dict) -> "DetectedRegion":
        rect = PdfRect.from_dict(d)
        area = _num(d.get("areaPdf"))
        return cls(rect=rect, area_pdf=area if area is not None else rect.area,
                   rect_id=d.get("rectId") or new_rect_id())


@dataclass
class RegionConfig:
    include: bool = True
    padding_override: Optional[float] = None
    order_index: Optional[int] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "include": self.include,
            "paddingOverride": self.padding_override,
            "orderIndex": self.order_index,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "RegionConfig":
        return cls(
            include=bool(d.get("include", True)),
            padding_override=_num(d.get("paddingOverride")),
            order_index=_int(d.get("orderIndex")),
        )


@dataclass
class PageDetectionState:
    boxes: List[DetectedRegion] = field(default_factory=list)
    rect_configs: Dict[int, RegionConfig] = field(default_factory=dict)
    ordering_finished: bool = False
    current_order_counter: int = 1
    padding_px: float = C.DEFAULT_PADDING_PX
    page_width: Optional[float] = None
    page_height: Optional[float] = None

    def config(self, index: int) -> RegionConfig:
        return self.rect_configs.get(index) or RegionConfig()

    def is_included(self, index: int) -> bool:
        return self.config(index).include

    def to_dict(self) -> dict:
        return _drop_none({
            "boxes": [b.to_dict() for b in self.boxes],
            "rectConfigs": {str(i): c.to_dict() for i, c in sorted(self.rect_configs.items())},
            "orderingFinished": self.ordering_finished,
            "currentOrderCounter": self.current_order_counter,
            "paddingPx": self.padding_px,
            "pageWidth": self.page_width,
            "pageHeight": self.page_height,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "PageDetectionState":
        configs: Dict[int, RegionConfig] = {}
        for idx, value in _keyed(d.get("rectConfigs"), 0):
            if idx is not None and isinstance(value, dict):
                configs[idx] = RegionConfig.from_dict(value)
        padding = _num(d.get("paddingPx", d.get("rectPaddingPx")))
        return cls(
            boxes=[DetectedRegion.from_dict(b) for b in (d.get("boxes") or []) if isinstance(b, dict)],
            rect_configs=configs,
            ordering_finished=bool(d.get("orderingFinished", False)),
            current_order_counter=_int(d.get("currentOrderCounter")) or 1,
            padding_px=padding if padding is not None else C.DEFAULT_PADDING_PX,
            page_width=_num(d.get("pageWidth")),
            page_height=_num(d.get("pageHeight")),
        )


@dataclass
class PdfEntry:
    id: str
    name: str
    page_count: int = 1
    selected_page: int = 1
    pages: Dict[int, PageDetectionState] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "pageCount": self.page_count,
            "selectedPage": self.selected_page,
            "pages": {str(n): p.to_dict() for n, p in sorted(self.pages.items())},
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PdfEntry":
        pages: Dict[int, PageDetectionState] = {}
        for n, value in _keyed(d.get("pages"), 1):
            if n is not None and isinstance(value, dict):
                pages[n] = PageDetectionState.from_dict(value)
        return cls(
            id=str(d.get("id") or d.get("fileId")),
            name=str(d.get("name") or ""),
            page_count=_int(d.get("pageCount")) or 1,
            selected_page=_int(d.get("selectedPage")) or 1,
            pages=pages,
        )


# ───────── Spread export ─────────

@dataclass
class ExportBox:
    x: float
    y: float
    width: float
    height: float
    rect_id: Optional[str] = None
    include: bool = True
    order_index: Optional[int] = None

    @property
    def rect(self) -> PdfRect:
        return PdfRect(self.x, self.y, self.width, self.height)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    def to_dict(self) -> dict:
        return _drop_none({
            "rectId": self.rect_id,
            "x": self.x, "y": self.y, "width": self.width, "height": self.height,
            "include": self.include,
            "orderIndex": self.order_index,
        })

    @classmethod
    def from_dict(cls, d: dict) -> "ExportBox":
        r = PdfRect.from_dict(d)
        include = d.get("include")
        return cls(r.x, r.y, r.width, r.height,
                   rect_id=d.get("rectId"),
                   include=True if include is None else bool(include),
                   order_index=_int(d.get("orderIndex")))


@dataclass
class PageExport:
    page_number: int
    boxes: List[ExportBox] = field(default_factory=list)
    page_width: Optional[float] = None
    page_height: Optional[float] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "pageNumber": self.page_number,
            "pageWidth": self.page_width,
            "pageHeight": self.page_height,
            "boxes": [b.to_dict() for b in self.boxes],
        })

    @classmethod
    def from_dict(cls, d: dict, fallback_number: int = 1) -> "PageExport":
        return cls(
            page_number=_int(d.get("pageNumber")) or fallback_number,
            boxes=[ExportBox.from_dict(b) for b in (d.get("boxes") or []) if isinstance(b, dict)],
            page_width=_num(d.get("pageWidth")),
            page_height=_num(d.get("pageHeight")),
        )


@dataclass
class SpreadExportEntry:
    pdf_id: str
    filename: Optional[str]
    spread_number: int
    pages: Dict[int, PageExport] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "pdfId": self.pdf_id,
            "filename": self.filename,
            "spreadNumber": self.spread_number,
            "pages": {str(n): p.to_dict() for n, p in sorted(self.pages.items())},
        }

    @classmethod
    def from_dict(cls, d: dict, fallback_spread: int = 1) -> "SpreadExportEntry":
        # pages may arrive as a list or as a dict keyed by string page number
        pages: Dict[int, PageExport] = {}
        for fallback, value in _keyed(d.get("pages"), 1):
            if not isinstance(value, dict):
                continue
            page = PageExport.from_dict(value, fallback_number=fallback or 1)
            pages[page.page_number] = page
        return cls(
            pdf_id=str(d.get("pdfId")),
            filename=d.get("filename"),
            spread_number=_int(d.get("spreadNumber")) or fallback_spread,
            pages=dict(sorted(pages.items())),
        )


# ───────── Offer ─────────

@dataclass(frozen=True)
class PercentOff:
    raw: str
    value: int


@dataclass(frozen=True)
class BrandMatch:
    label: str
    matched_from: str
    score: float


@dataclass(frozen=True)
class Price:
    raw: str
    value: float
    qualifier: Optional[str] = None


@dataclass(frozen=True)
class Save:
    raw: str
    value: Optional[float] = None


@dataclass
class OfferExtraction:
    percent_off: Optional[PercentOff] = None
    brand: Optional[BrandMatch] = None
    price: Optional[Price] = None
    save: Optional[Save] = None
    detected_brands: List[str] = field(default_factory=list)
    product_details: Optional[str] = None
    title: Optional[str] = None
    raw_text: str = ""
    cleaned_text: str = ""
    lines: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return _drop_none({
            "percentOff": {"raw": self.percent_off.raw, "value": self.percent_off.value} if self.percent_off else None,
            "brand": {"label": self.brand.label, "matchedFrom": self.brand.matched_from,
                      "score": self.brand.score} if self.brand else None,
            "price": _drop_none({"raw": self.price.raw, "value": self.price.value,
                                 "qualifier": self.price.qualifier}) if self.price else None,
            "save": _drop_none({"raw": self.save.raw, "value": self.save.value}) if self.save else None,
            "detectedBrands": list(self.detected_brands),
            "productDetails": self.product_details,
            "title": self.title,
            "source": {"rawText": self.raw_text, "cleanedText": self.cleaned_text, "lines": list(self.lines)},
        })

    @classmethod
    def from_dict(cls, d: dict) -> "OfferExtraction":
        po, br, pr, sv = d.get("percentOff"), d.get("brand"), d.get("price"), d.get("save")
        src = d.get("source") or {}
        return cls(
            percent_off=PercentOff(po["raw"], int(po["value"])) if po else None,
            brand=BrandMatch(br["label"], br.get("matchedFrom", br["label"]), float(br.get("score", 1))) if br else None,
            price=Price(pr["raw"], float(pr["value"]), pr.get("qualifier")) if pr else None,
            save=Save(sv["raw"], _num(sv.get("value"))) if sv else None,
            detected_brands=list(d.get("detectedBrands") or []),
            product_details=d.get("productDetails"),
            title=d.get("title"),
            raw_text=src.get("rawText", ""),
            cleaned_text=src.get("cleanedText", ""),
            lines=list(src.get("lines") or []),
        )


# ───────── Tiles ─────────

@dataclass(frozen=True)
class TileMapping:
    img_page: int
    half: str          # "left" | "right"
    spread_index: int
    box_order: int


_TILE_FIELDS = {
    "id", "title", "titleEditedManually", "originalFileName", "imageKey", "extractedText",
    "linkBuilderState", "extractedPluFlags", "offer", "offerUpdatedAt", "pdfMappingStatus",
    "pdfMappingReason", "mappedPdfFilename", "mappedSpreadNumber", "mappedHalf", "mappedBoxIndex",
}


def empty_plu_flags(n: int = C.MAX_PLU_FIELDS) -> List[bool]:
    return [False] * n


@dataclass
class Tile:
    id: str
    original_file_name: Optional[str] = None
    image_key: Optional[str] = None
    title: Optional[str] = None
    title_edited_manually: bool = False
    extracted_text: Optional[str] = None
    link_builder_state: Dict[str, Any] = field(default_factory=lambda: {"plus": [""] * C.MAX_PLU_FIELDS})
    extracted_plu_flags: List[bool] = field(default_factory=empty_plu_flags)
    offer: Optional[OfferExtraction] = None
    offer_updated_at: Optional[float] = None
    pdf_mapping_status: Optional[str] = None
    pdf_mapping_reason: Optional[str] = None
    mapped_pdf_filename: Optional[str] = None
    mapped_spread_number: Optional[int] = None
    mapped_half: Optional[str] = None
    mapped_box_index: Optional[int] = None
    # fields owned by other tooling, carried through untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def plus(self) -> List[str]:
        return list(self.link_builder_state.get("plus") or [])

    @property
    def file_name(self) -> str:
        return self.original_file_name or self.id

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out.update(_drop_none({
            "id": self.id,
            "title": self.title,
            "titleEditedManually": self.title_edited_manually or None,
            "originalFileName": self.original_file_name,
            "imageKey": self.image_key,
            "extractedText": self.extracted_text,
            "linkBuilderState": dict(self.link_builder_state),
            "extractedPluFlags": list(self.extracted_plu_flags),
            "offer": self.offer.to_dict() if self.offer else None,
            "offerUpdatedAt": self.offer_updated_at,
            "pdfMappingStatus": self.pdf_mapping_status,
            "pdfMappingReason": self.pdf_mapping_reason,
            "mappedPdfFilename": self.mapped_pdf_filename,
            "mappedSpreadNumber": self.mapped_spread_number,
            "mappedHalf": self.mapped_half,
            "mappedBoxIndex": self.mapped_box_index,
        }))
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "Tile":
        lbs = dict(d.get("linkBuilderState") or {})
        lbs.setdefault("plus", [""] * C.MAX_PLU_FIELDS)
        flags = [bool(f) for f in (d.get("extractedPluFlags") or [])] or empty_plu_flags()
        return cls(
            id=str(d.get("id")),
            original_file_name=d.get("originalFileName"),
            image_key=d.get("imageKey"),
            title=d.get("title"),
            title_edited_manually=bool(d.get("titleEditedManually", False)),
            extracted_text=d.get("extractedText"),
            link_builder_state=lbs,
            extracted_plu_flags=flags,
            offer=OfferExtraction.from_dict(d["offer"]) if isinstance(d.get("offer"), dict) else None,
            offer_updated_at=_num(d.get("offerUpdatedAt")),
            pdf_mapping_status=d.get("pdfMappingStatus"),
            pdf_mapping_reason=d.get("pdfMappingReason"),
            mapped_pdf_filename=d.get("mappedPdfFilename"),
            mapped_spread_number=_int(d.get("mappedSpreadNumber")),
            mapped_half=d.get("mappedHalf"),
            mapped_box_index=_int(d.get("mappedBoxIndex")),
            extra={k: v for k, v in d.items() if k not in _TILE_FIELDS},
        )


@dataclass
class CatalogueProject:
    id: str
    name: str = ""
    tiles: List[Tile] = field(default_factory=list)
    # rectId -> tile imageKey, recorded when an operator pairs a region with a tile image
    tile_matches: Dict[str, str] = field(default_factory=dict)
    pdf_asset_ids: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out.update({
            "id": self.id,
            "name": self.name,
            "tiles": [t.to_dict() for t in self.tiles],
            "tileMatches": dict(self.tile_matches),
            "pdfAssetIds": list(self.pdf_asset_ids),
        })
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "CatalogueProject":
        known = {"id", "name", "tiles", "tileMatches", "pdfAssetIds"}
        return cls(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            tiles=[Tile.from_dict(t) for t in (d.get("tiles") or []) if isinstance(t, dict)],
            tile_matches={str(k): str(v) for k, v in (d.get("tileMatches") or {}).items()},
            pdf_asset_ids=[str(x) for x in (d.get("pdfAssetIds") or [])],
            extra={k: v for k, v in d.items() if k not in known},
        )
