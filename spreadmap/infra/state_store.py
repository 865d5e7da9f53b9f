from __future__ import annotations
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from spreadmap.domain.models import CatalogueProject, PdfEntry

logger = logging.getLogger(__name__)


def _atomic_write_json(target: Path, payload: Any) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    # temp file in the same directory so the final replace is atomic
    fd, tmp_path = tempfile.mkstemp(prefix="spreadmap_", suffix=".json", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, target)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: str | Path) -> Optional[Any]:
    """Parsed JSON, or None when the file is missing or unreadable."""
    p = Path(path)
    if not p.is_file():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Ignoring corrupt JSON at %s", p, exc_info=True)
        return None


class JsonStateStore:
    """Durable store for the detection tool's PdfEntry list."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> List[PdfEntry]:
        data = read_json(self.path)
        if isinstance(data, dict):
            data = data.get("pdfs")
        if not isinstance(data, list):
            return []
        try:
            return [PdfEntry.from_dict(d) for d in data if isinstance(d, dict)]
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Detection state at %s is malformed; starting empty", self.path, exc_info=True)
            return []

    def save(self, entries: List[PdfEntry]) -> None:
        _atomic_write_json(self.path, {"pdfs": [e.to_dict() for e in entries]})


class MemoryStateStore:
    def __init__(self, entries: Optional[List[PdfEntry]] = None):
        self.payload: Dict[str, Any] = {"pdfs": [e.to_dict() for e in (entries or [])]}
        self.saves = 0

    def load(self) -> List[PdfEntry]:
        return [PdfEntry.from_dict(d) for d in self.payload.get("pdfs", [])]

    def save(self, entries: List[PdfEntry]) -> None:
        self.payload = {"pdfs": [e.to_dict() for e in entries]}
        self.saves += 1


def load_project(path: str | Path) -> CatalogueProject:
    data = read_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"No catalogue project found at {path}")
    return CatalogueProject.from_dict(data)


def save_project(path: str | Path, project: CatalogueProject) -> None:
    _atomic_write_json(Path(path), project.to_dict())


def write_json(path: str | Path, payload: Any) -> None:
    _atomic_write_json(Path(path), payload)
