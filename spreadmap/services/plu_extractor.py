# spreadmap/services/plu_extractor.py
from __future__ import annotations
import re
from dataclasses import replace
from typing import Iterator, List, Optional, Sequence, Tuple

from spreadmap import constants as C
from spreadmap.domain.models import Tile

_RANGE_RE = re.compile(r"(\d{4,8})\s*-\s*(\d{1,8})", re.ASCII)
_SINGLE_RE = re.compile(r"\b\d{4,8}\b", re.ASCII)


def is_disallowed_context(text: str, start: int, end: int) -> bool:
    """
    True when the token text[start:end] looks like part of a price, a percentage
    or a decimal. Only two characters either side are inspected.
    """
    before = text[start - 1] if start > 0 else ""
    after = text[end] if end < len(text) else ""
    snippet = text[max(0, start - 2):min(len(text), end + 2)]
    if "%" in snippet:
        return True
    if before == "." or after == ".":
        return True
    return before == "$"


def expand_range(start_str: str, end_str: str, limit: int = C.MAX_RANGE_EXPANSION) -> List[str]:
    """'12345', '50' -> 12345..12350; the end borrows the start's leading digits when shorter."""
    try:
        start = int(start_str)
        if len(end_str) < len(start_str):
            end = int(start_str[: len(start_str) - len(end_str)] + end_str)
        else:
            end = int(end_str)
    except ValueError:
        return []
    if end < start:
        return []
    return [str(i) for i in range(start, min(end, start + limit - 1) + 1)]


def _token_spans(text: str) -> Iterator[Tuple[str, re.Match]]:
    for m in _RANGE_RE.finditer(text):
        if "." in m.group(0) or is_disallowed_context(text, m.start(), m.end()):
            continue
        yield "range", m
    for m in _SINGLE_RE.finditer(text):
        if is_disallowed_context(text, m.start(), m.end()):
            continue
        yield "single", m


def extract_plus(text: Optional[str]) -> List[str]:
    """PLU codes in `text`, ranges expanded, first occurrence order, no duplicates."""
    if not text:
        return []
    out: List[str] = []
    seen = set()

    def add(value: str) -> None:
        if not (C.PLU_MIN_LEN <= len(value) <= C.PLU_MAX_LEN) or value in seen:
            return
        seen.add(value)
        out.append(value)

    for kind, m in _token_spans(text):
        if kind == "range":
            for code in expand_range(m.group(1), m.group(2)):
                add(code)
        else:
            add(m.group(0))
    return out


def strip_plu_tokens(text: Optional[str]) -> str:
    """Blank out every PLU-looking token or range, then collapse runs of whitespace."""
    if not text:
        return ""
    chars = list(text)
    for _, m in _token_spans(text):
        for i in range(m.start(), m.end()):
            chars[i] = " "
    return re.sub(r"\s{2,}", " ", "".join(chars)).strip()


# ---------- tile slots ----------

def fill_plu_slots(tile: Tile, plus: Sequence[str], max_fields: int = C.MAX_PLU_FIELDS) -> Tile:
    """
    New tile with the first `max_fields` PLUs written into its slots and those slots
    flagged as auto-extracted. An empty `plus` leaves the tile as it is.
    """
    trimmed = list(plus)[:max_fields]
    if not trimmed:
        return tile
    slots = tile.plus
    if len(slots) < max_fields:
        slots = slots + [""] * (max_fields - len(slots))
    slots = [trimmed[i] if i < len(trimmed) else "" for i in range(len(slots))]
    flags = [i < len(trimmed) for i in range(max(len(slots), max_fields))]
    state = {**tile.link_builder_state, "plus": slots}
    return replace(tile, link_builder_state=state, extracted_plu_flags=flags)


def clear_flag_on_edit(tile: Tile, slot: int, value: str) -> Tile:
    """Operator typed into PLU slot `slot`: store the value and drop its auto-extracted flag."""
    slots = tile.plus
    if slot < 0:
        raise IndexError(slot)
    if slot >= len(slots):
        slots = slots + [""] * (slot + 1 - len(slots))
    slots[slot] = value
    flags = list(tile.extracted_plu_flags)
    if slot < len(flags):
        flags[slot] = False
    return replace(tile, link_builder_state={**tile.link_builder_state, "plus": slots},
                   extracted_plu_flags=flags)
