from __future__ import annotations
from pathlib import Path
from typing import Dict, Optional

from spreadmap.ports.asset_port import Asset


class FileAssetStore:
    """Assets stored as files under one directory; the asset id is the file name."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        # no path traversal out of the asset directory
        path = self.root / Path(asset_id).name
        if not path.is_file():
            return None
        return Asset(asset_id=asset_id, name=path.name, blob=path.read_bytes())


class MemoryAssetStore:
    def __init__(self, assets: Optional[Dict[str, Asset]] = None):
        self._assets: Dict[str, Asset] = dict(assets or {})

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        return self._assets.get(asset_id)

    def put_asset(self, asset_id: str, name: str, data: bytes) -> str:
        self._assets[asset_id] = Asset(asset_id=asset_id, name=name, blob=data)
        return asset_id
