from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrandOption:
    label: str
    value: str


def _read_table(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return pd.read_excel(path, engine="openpyxl", dtype=str, header=None).fillna("")
    sep = "\t" if suffix in (".tsv", ".tab", ".txt") else ","
    return pd.read_csv(path, sep=sep, dtype=str, header=None, keep_default_na=False)


def dedupe_brands(options: Iterable[BrandOption]) -> List[BrandOption]:
    """Drop repeated values (first wins) and sort by label."""
    seen = set()
    out: List[BrandOption] = []
    for o in options:
        if o.value in seen:
            continue
        seen.add(o.value)
        out.append(o)
    return sorted(out, key=lambda o: o.label.casefold())


def load_brand_options(path: str | Path) -> List[BrandOption]:
    """
    Read a brand dictionary: two columns, display label then value code.
    A header row naming `label` and `value` is recognised and skipped.
    """
    p = Path(path)
    df = _read_table(p)
    if df.shape[1] < 2:
        logger.warning("Brand file %s has fewer than two columns", p)
        return []
    df = df.iloc[:, :2].apply(lambda col: col.astype(str).str.strip())
    df.columns = ["label", "value"]
    first = df.iloc[0] if len(df) else None
    if first is not None and first["label"].lower() == "label" and first["value"].lower() == "value":
        df = df.iloc[1:]
    df = df[(df["label"] != "") & (df["value"] != "")]
    options = dedupe_brands(BrandOption(r.label, r.value) for r in df.itertuples(index=False))
    logger.info("Loaded %d brands from %s", len(options), p)
    return options
