from __future__ import annotations

import base64
import hashlib
import os

import pytest

from mcp_servers.assets.artifact_store import ArtifactStore
from mcp_servers.assets.server import AssetService
from orchestrator.cache import PromptCache


def test_put_is_content_addressed(tmp_path):
    store = ArtifactStore(root=str(tmp_path))
    first = store.put(b"narration", content_type="audio/wav", tags=["narration"])
    second = store.put(b"narration", content_type="audio/wav", tags=["other"])
    assert first == second == hashlib.sha256(b"narration").hexdigest()
    assert open(store.get_path(first), "rb").read() == b"narration"
    assert store.get_metadata(first).tags == ["narration"]


def test_put_file_matches_put_bytes(tmp_path):
    store = ArtifactStore(root=str(tmp_path / "store"))
    src = tmp_path / "film.mp4"
    src.write_bytes(b"\x00" * 4096)
    artifact_id = store.put_file(str(src), content_type="video/mp4", tags=["film"])
    assert artifact_id == store.put(b"\x00" * 4096, content_type="video/mp4")
    meta = store.get_metadata(artifact_id)
    assert meta.size_bytes == 4096
    assert meta.content_type == "video/mp4"
    assert not os.path.exists(store.get_path(artifact_id) + ".tmp")


def test_missing_artifact_raises(tmp_path):
    store = ArtifactStore(root=str(tmp_path))
    with pytest.raises(FileNotFoundError):
        store.get_path("0" * 64)


def test_list_filters_by_tag(tmp_path):
    store = ArtifactStore(root=str(tmp_path))
    store.put(b"a", content_type="audio/wav", tags=["narration"])
    store.put(b"b", content_type="audio/mpeg", tags=["music"])
    assert [m["content_type"] for m in store.list(tags=["music"])] == ["audio/mpeg"]
    assert len(store.list()) == 2


def test_asset_service_round_trip(tmp_path):
    service = AssetService(root=str(tmp_path))
    out = service.asset_put(base64.b64encode(b"wav-bytes").decode("ascii"), "audio/wav", ["narration"])
    assert out["size_bytes"] == 9
    assert out["tags"] == ["narration"]
    assert service.asset_get(out["artifact_id"])["path"] == out["path"]
    assert len(service.asset_list(["narration"])["results"]) == 1
    with pytest.raises(FileNotFoundError):
        service.asset_put_file(str(tmp_path / "nope.mp4"), "video/mp4")


def test_prompt_cache_persists_between_instances(tmp_path):
    path = str(tmp_path / "run" / "prompt_cache.json")
    cache = PromptCache(path)
    key = cache.make_key("veo", 8, "Earth from orbit")
    assert key.startswith("veo|8|")
    assert cache.get(key) is None
    cache.set(key, "job-1")
    assert PromptCache(path).get(key) == "job-1"
    assert len(PromptCache(path)) == 1
    assert cache.make_key("veo", 6, "Earth from orbit") != key
