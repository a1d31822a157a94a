"""Asset service: stores run outputs (films, narration audio, music) by content hash."""
import base64
import os
from typing import Any, Dict, Iterable, Optional

from .artifact_store import ArtifactStore


class AssetService:
    def __init__(self, root: Optional[str] = None) -> None:
        self.store = ArtifactStore(root=root)

    def asset_put(self, data_b64: str, content_type: str, tags: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        artifact_id = self.store.put(base64.b64decode(data_b64), content_type=content_type, tags=tags)
        return self.asset_get(artifact_id)

    def asset_put_file(self, path: str, content_type: str, tags: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        if not os.path.exists(path):
            raise FileNotFoundError(path)
        artifact_id = self.store.put_file(path, content_type=content_type, tags=tags)
        return self.asset_get(artifact_id)

    def asset_get(self, artifact_id: str) -> Dict[str, Any]:
        meta = self.store.get_metadata(artifact_id)
        return {
            "artifact_id": artifact_id,
            "path": self.store.get_path(artifact_id),
            "content_type": meta.content_type,
            "size_bytes": meta.size_bytes,
            "tags": meta.tags,
        }

    def asset_list(self, tags: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        return {"results": self.store.list(tags=tags)}
