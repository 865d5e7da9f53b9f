"""
Region include/padding/order state transitions.

Every function takes a PageDetectionState and returns a new one; the input is
never mutated, so callers (the detection session, tests) decide when to persist.
"""
from __future__ import annotations
import statistics
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from spreadmap import constants as C
from spreadmap.domain.models import PageDetectionState, PdfRect, RegionConfig


def _set_config(state: PageDetectionState, index: int, cfg: RegionConfig, **changes) -> PageDetectionState:
    configs: Dict[int, RegionConfig] = dict(state.rect_configs)
    configs[index] = cfg
    return replace(state, rect_configs=configs, **changes)


def _valid_index(state: PageDetectionState, index: int) -> bool:
    return 0 <= index < len(state.boxes)


# ---------- include / padding ----------

def toggle_include(state: PageDetectionState, index: int, include: Optional[bool] = None) -> PageDetectionState:
    if not _valid_index(state, index):
        return state
    cfg = state.config(index)
    value = (not cfg.include) if include is None else bool(include)
    return _set_config(state, index, replace(cfg, include=value))


def effective_padding(state: PageDetectionState, index: int) -> float:
    override = state.config(index).padding_override
    return state.padding_px if override is None else override


def adjust_padding(state: PageDetectionState, index: int, delta: float) -> PageDetectionState:
    if not _valid_index(state, index):
        return state
    cfg = state.config(index)
    value = max(0.0, min(float(C.MAX_PADDING_PX), effective_padding(state, index) + delta))
    return _set_config(state, index, replace(cfg, padding_override=value))


def reset_padding(state: PageDetectionState, index: int) -> PageDetectionState:
    if not _valid_index(state, index):
        return state
    return _set_config(state, index, replace(state.config(index), padding_override=None))


def set_page_padding(state: PageDetectionState, padding_px: float) -> PageDetectionState:
    return replace(state, padding_px=max(0.0, min(float(C.MAX_PADDING_PX), float(padding_px))))


# ---------- manual ordering ----------

def assign_next_order(state: PageDetectionState, index: int) -> PageDetectionState:
    """Give region `index` the next order number. Excluded or already-ordered regions are skipped."""
    if not _valid_index(state, index):
        return state
    cfg = state.config(index)
    if not cfg.include or cfg.order_index is not None:
        return state
    return _set_config(
        state, index, replace(cfg, order_index=state.current_order_counter),
        current_order_counter=state.current_order_counter + 1,
    )


def undo_last_order(state: PageDetectionState) -> PageDetectionState:
    assigned = [(cfg.order_index, idx) for idx, cfg in state.rect_configs.items() if cfg.order_index is not None]
    if not assigned:
        return state
    _, idx = max(assigned)
    return _set_config(
        state, idx, replace(state.rect_configs[idx], order_index=None),
        current_order_counter=max(1, state.current_order_counter - 1),
        ordering_finished=False,
    )


def reset_order(state: PageDetectionState) -> PageDetectionState:
    configs = {idx: replace(cfg, order_index=None) for idx, cfg in state.rect_configs.items()}
    return replace(state, rect_configs=configs, current_order_counter=1, ordering_finished=False)


def finish_ordering(state: PageDetectionState) -> PageDetectionState:
    return replace(state, ordering_finished=True)


def has_manual_order(state: PageDetectionState) -> bool:
    return any(
        state.config(i).include and state.config(i).order_index is not None
        for i in range(len(state.boxes))
    )


def is_ordering_complete(state: PageDetectionState) -> bool:
    included = [i for i in range(len(state.boxes)) if state.config(i).include]
    return bool(included) and all(state.config(i).order_index is not None for i in included)


# ---------- automatic ordering ----------

def auto_order(items: Sequence[Tuple[int, PdfRect]]) -> List[int]:
    """
    Reading order for regions: group into rows by vertical centre, rows top to bottom,
    left to right inside a row. Single pass over regions sorted by centre; a region joins
    the current row while its centre is within ROW_TOLERANCE * median height of the row's
    running average centre.
    """
    if not items:
        return []
    median_h = statistics.median(rect.height for _, rect in items)
    tolerance = C.ROW_TOLERANCE * median_h

    # PDF y grows upwards; negate so smaller means higher on the page
    entries = sorted(
        ((idx, -(rect.y + rect.height / 2), rect.x) for idx, rect in items),
        key=lambda e: e[1],
    )

    rows: List[List[Tuple[int, float, float]]] = []
    row: List[Tuple[int, float, float]] = []
    row_sum = 0.0
    for entry in entries:
        if row and abs(entry[1] - row_sum / len(row)) < tolerance:
            row.append(entry)
            row_sum += entry[1]
            continue
        if row:
            rows.append(row)
        row = [entry]
        row_sum = entry[1]
    rows.append(row)

    ordered: List[int] = []
    for r in rows:
        ordered.extend(idx for idx, _, _ in sorted(r, key=lambda e: e[2]))
    return ordered


def resolve_order(state: PageDetectionState) -> List[Tuple[int, int]]:
    """
    (box index, order index) for the included regions, in order.
    Any manual order among included regions wins outright: only manually ordered
    regions are returned, sorted by their order index. Otherwise the automatic
    row order is used and numbered from 1.
    """
    included = [i for i in range(len(state.boxes)) if state.config(i).include]
    manual = [(i, state.config(i).order_index) for i in included if state.config(i).order_index is not None]
    if manual:
        return sorted(manual, key=lambda pair: (pair[1], pair[0]))
    order = auto_order([(i, state.boxes[i].rect) for i in included])
    return [(idx, pos) for pos, idx in enumerate(order, start=1)]
