# spreadmap/logging_setup.py
from __future__ import annotations
import logging, os, sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "spreadmap"
FILE_HANDLER = "spreadmap_file"
CONSOLE_HANDLER = "spreadmap_console"

FILE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"


def log_file_path() -> Path:
    """Batch runs and CLI commands share one rotating log, under SPREADMAP_LOG_DIR or ~/.spreadmap/logs."""
    base = Path(os.getenv("SPREADMAP_LOG_DIR") or Path.home() / ".spreadmap" / "logs")
    base.mkdir(parents=True, exist_ok=True)
    return base / "spreadmap.log"


def _resolve_level(level: int | str | None) -> int:
    for candidate in (os.getenv("SPREADMAP_LOG_LEVEL"), level):
        if isinstance(candidate, int):
            return candidate
        if candidate:
            named = logging.getLevelName(str(candidate).upper())
            if isinstance(named, int):
                return named
    return logging.INFO


def _named(root: logging.Logger, name: str) -> logging.Handler | None:
    return next((h for h in root.handlers if h.name == name), None)


def configure_logging(level: int | str | None = None, console: bool = False) -> logging.Logger:
    root = logging.getLogger()
    target = log_file_path()

    fh = _named(root, FILE_HANDLER)
    if fh is not None and getattr(fh, "baseFilename", "") != os.path.abspath(target):
        # log directory moved (another project, another env): reopen there
        root.removeHandler(fh)
        fh.close()
        fh = None
    if fh is None:
        fh = RotatingFileHandler(target, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        fh.name = FILE_HANDLER
        root.addHandler(fh)

    if console and _named(root, CONSOLE_HANDLER) is None:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        sh.name = CONSOLE_HANDLER
        root.addHandler(sh)

    root.setLevel(_resolve_level(level))
    return logging.getLogger(LOGGER_NAME)
