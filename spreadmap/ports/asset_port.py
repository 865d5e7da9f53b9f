from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol

@dataclass(frozen=True)
class Asset:
    asset_id: str
    name: str
    blob: bytes

class AssetStorePort(Protocol):
    def get_asset(self, asset_id: str) -> Optional[Asset]: ...
