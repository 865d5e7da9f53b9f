# spreadmap/services/offer_parser.py
from __future__ import annotations
import re
from typing import List, Optional, Sequence, Tuple

from spreadmap import constants as C
from spreadmap.domain.brands import BrandOption
from spreadmap.domain.models import BrandMatch, OfferExtraction, PercentOff, Price, Save
from spreadmap.services.plu_extractor import extract_plus, strip_plu_tokens

# (regex, is "up to" form), tried in order on each line
_PERCENT_PATTERNS = [
    (re.compile(r"up\s*to\s*(\d{1,3})\s*%", re.IGNORECASE), True),
    (re.compile(r"save\s*(\d{1,3})\s*%", re.IGNORECASE), False),
    (re.compile(r"(\d{1,3})\s*%\s*(off)?", re.IGNORECASE), False),
]
_PRICE_RE = re.compile(r"\$\s*\d+(?:\.\d{2})?")
_QUALIFIER_RE = re.compile(r"(each|ea|pair|set|pack|kit|only|from|per\s+\w+)", re.IGNORECASE)
_PREFERRED_QUALIFIER_RE = re.compile(r"(each|ea|per|pair|set|pack|kit|for)", re.IGNORECASE)
_SAVE_RE = re.compile(r"save\s*\$\s*\d+(?:\.\d{2})?", re.IGNORECASE)
_ALSO_AVAILABLE_RE = re.compile(r"also\s+available", re.IGNORECASE)
_NOISE_RE = re.compile(r"\b(?:save|off|now|only|just|was|from)\b", re.IGNORECASE)
_EMPTY_BRACKETS_RE = re.compile(r"\(\s*\)|\[\s*\]")
_WORD_RE = re.compile(r"[A-Za-z]+")


def normalize_text(value: str) -> str:
    value = re.sub(r"[‘’]", "'", value)
    value = re.sub(r"[–—]", "-", value)
    return re.sub(r"\s+", " ", value).strip()


def norm(value: str) -> str:
    """Lower-case, punctuation to spaces, single spaced. Used for brand comparison."""
    value = re.sub(r"[^a-z0-9\s]", " ", value.lower())
    return re.sub(r"\s+", " ", value).strip()


def _contains_phrase(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    return re.search(r"(?<![a-z0-9])" + re.escape(needle) + r"(?![a-z0-9])", haystack) is not None


def _remove_segment(source: str, segment: Optional[str]) -> str:
    if not segment:
        return source
    return re.sub(re.escape(segment), " ", source, flags=re.IGNORECASE)


class OfferParser:
    """
    Turns the raw text of a tile region into an OfferExtraction: percent off,
    brand, price, save amount, detected brands, a cleaned description and a title.
    """

    def __init__(self, brands: Sequence[BrandOption] = ()):
        self.brands = list(brands)
        self._normed: List[Tuple[BrandOption, str, str]] = [
            (b, norm(b.label), norm(b.value)) for b in self.brands
        ]

    # ---------- brand helpers ----------
    def _eligible(self, label_norm: str) -> bool:
        if not label_norm:
            return False
        tokens = label_norm.split(" ")
        if len(tokens) == 1 and len(tokens[0]) <= C.SHORT_BRAND_MAX_LEN:
            return tokens[0].upper() in C.SHORT_BRAND_ALLOWLIST
        return True

    def _mentions_brand(self, line: str) -> bool:
        text = norm(line)
        return any(self._eligible(ln) and _contains_phrase(text, ln) for _, ln, _ in self._normed)

    def find_brand(self, lines: Sequence[str]) -> Optional[BrandMatch]:
        """Longest brand label (or value code) found in the first few lines."""
        text = norm(" ".join(lines[: C.BRAND_SCAN_LINES]))
        best: Optional[Tuple[int, BrandMatch]] = None
        for brand, label_norm, value_norm in self._normed:
            if not self._eligible(label_norm):
                continue
            if _contains_phrase(text, label_norm):
                matched = brand.label
            elif value_norm and _contains_phrase(text, value_norm):
                matched = brand.value
            else:
                continue
            if best is None or len(label_norm) > best[0]:
                best = (len(label_norm), BrandMatch(brand.label, matched, 1.0))
        return best[1] if best else None

    def detect_brands(self, text: str) -> List[str]:
        """Every plausible brand mention in `text`: exact phrase beats first-token hit."""
        haystack = norm(text)
        scored: List[Tuple[int, int, str]] = []
        for brand, label_norm, _ in self._normed:
            if not self._eligible(label_norm):
                continue
            if _contains_phrase(haystack, label_norm):
                scored.append((2, len(label_norm), brand.label))
                continue
            first = label_norm.split(" ")[0]
            if " " in label_norm and self._eligible(first) and len(first) > C.SHORT_BRAND_MAX_LEN \
                    and _contains_phrase(haystack, first):
                scored.append((1, len(label_norm), brand.label))
        scored.sort(key=lambda s: (-s[0], -s[1]))
        out: List[str] = []
        for _, _, label in scored:
            if label not in out:
                out.append(label)
            if len(out) >= C.MAX_DETECTED_BRANDS:
                break
        return out

    # ---------- field finders ----------
    @staticmethod
    def find_percent_off(lines: Sequence[str]) -> Tuple[Optional[PercentOff], Optional[str]]:
        """(PercentOff, the text it was read from)"""
        for line in lines:
            for regex, up_to in _PERCENT_PATTERNS:
                m = regex.search(line)
                if not m:
                    continue
                num = int(m.group(1))
                raw = f"Up to {num}% Off" if up_to else f"{num}% Off"
                return PercentOff(raw, num), m.group(0).strip()
        return None, None

    @staticmethod
    def find_price(lines: Sequence[str], normalized: str) -> Optional[Price]:
        first = _PRICE_RE.search(normalized)
        if not first:
            return None
        chosen: Optional[str] = None
        chosen_line = normalized
        for line in lines:
            if not _PREFERRED_QUALIFIER_RE.search(line):
                continue
            m = _PRICE_RE.search(line)
            if m:
                chosen, chosen_line = m.group(0), line
                break
        if chosen is None:
            chosen = first.group(0)
            chosen_line = next((line for line in lines if chosen in line), normalized)
        try:
            value = float(chosen.replace("$", "").strip())
        except ValueError:
            return None
        qualifier = None
        idx = chosen_line.find(chosen)
        if idx != -1:
            after = chosen_line[idx + len(chosen): idx + len(chosen) + 12]
            q = _QUALIFIER_RE.search(after)
            if q:
                qualifier = q.group(0).strip()
        return Price(chosen, value, qualifier)

    @staticmethod
    def find_save(lines: Sequence[str]) -> Optional[Save]:
        for line in lines:
            m = _SAVE_RE.search(line)
            if not m:
                continue
            raw = m.group(0)
            digits = re.sub(r"save", "", raw, flags=re.IGNORECASE).replace("$", "").strip()
            try:
                value: Optional[float] = float(digits)
            except ValueError:
                value = None
            return Save(re.sub(r"\s+", " ", raw).strip(), value)
        return None

    # ---------- line filtering ----------
    def _is_plu_list_line(self, line: str) -> bool:
        if "(" not in line or "%" in line or not extract_plus(line):
            return False
        rest = strip_plu_tokens(line)
        if len(_WORD_RE.findall(rest)) > 1:
            return False
        return not self._mentions_brand(line)

    def candidate_lines(self, lines: Sequence[str]) -> List[str]:
        return [
            line for line in lines
            if not _ALSO_AVAILABLE_RE.search(line) and not self._is_plu_list_line(line)
        ]

    # ---------- entry point ----------
    def parse(self, raw_text: Optional[str]) -> OfferExtraction:
        raw_text = raw_text or ""
        normalized = normalize_text(raw_text)
        lines = [ln for ln in (normalize_text(x) for x in re.split(r"\r?\n", raw_text)) if ln]
        source_lines = lines if lines else ([normalized] if normalized else [])
        candidates = self.candidate_lines(source_lines) or source_lines
        body = " ".join(candidates)

        percent, percent_text = self.find_percent_off(candidates)
        price = self.find_price(candidates, body)
        save = self.find_save(candidates)
        brand = self.find_brand(candidates)
        detected = self.detect_brands(normalized)

        cleaned = body
        cleaned = _remove_segment(cleaned, save.raw if save else None)
        cleaned = _remove_segment(cleaned, percent_text)
        cleaned = _remove_segment(cleaned, percent.raw if percent else None)
        cleaned = _remove_segment(cleaned, price.raw if price else None)
        if brand:
            cleaned = _remove_segment(cleaned, brand.matched_from or brand.label)
        cleaned = strip_plu_tokens(cleaned)
        cleaned = _NOISE_RE.sub(" ", cleaned)
        cleaned = _EMPTY_BRACKETS_RE.sub(" ", cleaned)
        cleaned = re.sub(r"[-|•]+", " ", cleaned)
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        details = cleaned or None

        parts: List[str] = []
        if percent:
            parts.append(percent.raw)
        if brand and details:
            parts.append(f"{brand.label} {details}".strip())
        elif details:
            parts.append(details)
        elif brand:
            parts.append(brand.label)
        if price:
            parts.append(f"{price.raw} {price.qualifier}" if price.qualifier else price.raw)
        if save:
            parts.append(save.raw)

        return OfferExtraction(
            percent_off=percent,
            brand=brand,
            price=price,
            save=save,
            detected_brands=detected,
            product_details=details,
            title=" - ".join(parts) if parts else None,
            raw_text=raw_text,
            cleaned_text=normalized,
            lines=source_lines,
        )
