# spreadmap/errors.py
from __future__ import annotations


class SpreadmapError(Exception):
    """Base class for all pipeline errors."""


class EngineUnavailable(SpreadmapError):
    """The region-detection backend could not be imported or initialized."""


class AssetMissing(SpreadmapError):
    """A referenced PDF/image asset is not present in the asset store."""

    def __init__(self, asset_id: str):
        super().__init__(f"Asset not found: {asset_id}")
        self.asset_id = asset_id


class MappingUnresolved(SpreadmapError):
    """A tile could not be resolved to a PDF region. `reason` is operator-facing."""

    def __init__(self, reason: str, kind: str = "no_mapping"):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind


class InvalidGeometry(SpreadmapError, ValueError):
    """Malformed viewport or degenerate rectangle."""


class CancelledError(SpreadmapError):
    """The operator cancelled a long-running operation."""


class ReportWriteError(SpreadmapError):
    """Writing the Excel report failed."""
