from __future__ import annotations

import base64

import pytest

from orchestrator import mcp_clients


class DummyClient:
    def __init__(self, responses: dict | None = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.responses = responses or {}

    def call(self, name: str, args: dict) -> dict:
        self.calls.append((name, args))
        if name in self.responses:
            return self.responses[name]
        if name == "asset_put":
            return {"artifact_id": "dummy-id"}
        if name == "asset_get":
            return {"path": "/tmp/dummy"}
        return {}


def _remote(monkeypatch, env: str, dummy: DummyClient, transport: str = "sse") -> None:
    monkeypatch.setenv(env, "http://mcp-host:7101/mcp/sse")
    monkeypatch.setenv("MCP_TRANSPORT", transport)
    monkeypatch.setattr(mcp_clients, "_make_client", lambda url, timeout_sec=None: dummy)


def test_asset_client_uses_remote_client_for_sse(monkeypatch):
    dummy = DummyClient()
    _remote(monkeypatch, "MCP_ASSETS_URL", dummy)

    client = mcp_clients.AssetClient()
    artifact_id = client.put(b"hello", content_type="text/plain", tags=["test"])
    path = client.get_path("dummy-id")

    assert client.mode == "sse"
    assert artifact_id == "dummy-id"
    assert path == "/tmp/dummy"
    assert [name for name, _ in dummy.calls] == ["asset_put", "asset_get"]
    assert base64.b64decode(dummy.calls[0][1]["data_b64"]) == b"hello"


def test_asset_client_missing_remote_path(monkeypatch):
    dummy = DummyClient({"asset_get": {}})
    _remote(monkeypatch, "MCP_ASSETS_URL", dummy, transport="http")

    client = mcp_clients.AssetClient()
    with pytest.raises(FileNotFoundError):
        client.get_path("gone")


def test_asset_client_local_fallback(monkeypatch, tmp_path):
    monkeypatch.delenv("MCP_ASSETS_URL", raising=False)
    monkeypatch.setenv("ARTIFACT_ROOT", str(tmp_path))

    client = mcp_clients.AssetClient()
    artifact_id = client.put(b"wav", content_type="audio/wav", tags=["narration"])

    assert client.mode == "local"
    assert open(client.get_path(artifact_id), "rb").read() == b"wav"


def test_render_client_stringifies_act_keys(monkeypatch):
    dummy = DummyClient({"assemble_film": {"artifact_id": "film", "path": "/tmp/film.mp4"}})
    _remote(monkeypatch, "MCP_RENDER_URL", dummy)

    out = mcp_clients.RenderClient().assemble(["a.mp4"], act_types={0: "vast", 3: "return"}, quality="fast")

    assert out["artifact_id"] == "film"
    name, args = dummy.calls[0]
    assert name == "assemble_film"
    assert args["act_types"] == {"0": "vast", "3": "return"}
    assert args["clips"] == ["a.mp4"]


def test_qc_client_routes_every_tool(monkeypatch):
    dummy = DummyClient()
    _remote(monkeypatch, "MCP_QC_URL", dummy)

    client = mcp_clients.QCClient()
    client.qc_pre_render({}, {}, [], {"beats": []}, None, None)
    client.qc_post_render({}, [], [], expected_scene_count=15)
    client.qc_narration_audio("audio-id")
    client.qc_final_media("film-id", expected_duration_sec=120.0)

    assert [name for name, _ in dummy.calls] == ["qc_pre_render", "qc_post_render", "qc_narration_audio", "qc_final_media"]
    assert dummy.calls[1][1]["expected_scene_count"] == 15
    assert dummy.calls[2][1] == {"uri": "audio-id"}


def test_make_client_picks_transport(monkeypatch):
    monkeypatch.setenv("MCP_TRANSPORT", "sse")
    assert isinstance(mcp_clients._make_client("http://x/mcp/sse"), mcp_clients.MCPSSEClient)
    monkeypatch.setenv("MCP_TRANSPORT", "http")
    assert isinstance(mcp_clients._make_client("http://x/mcp"), mcp_clients.MCPHttpClient)
