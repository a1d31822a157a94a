"""MCP clients with local fallbacks for core services."""
from __future__ import annotations

import base64
import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict, Iterable, List, Optional
from datetime import timedelta

from mcp_servers.assets.artifact_store import ArtifactStore
from mcp_servers.qc.server import QCService
from mcp_servers.render.server import RenderService
from mcp.client.sse import sse_client
from mcp.client.session import ClientSession
import anyio


def _env_url(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


class MCPHttpClient:
    def __init__(self, url: str, timeout_sec: Optional[float] = None) -> None:
        self.url = url
        self.timeout_sec = float(timeout_sec or os.getenv("MCP_HTTP_TIMEOUT_SEC", "60"))

    def call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": name, "arguments": args},
        }
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(self.url, data=data, headers={"Content-Type": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise RuntimeError(f"MCP HTTP {exc.code} {exc.reason}: {body}") from exc
        except urllib.error.URLError as exc:
            raise RuntimeError(f"MCP HTTP connection failed: {exc}") from exc
        parsed = json.loads(raw)
        if "error" in parsed:
            raise RuntimeError(parsed["error"])
        return parsed.get("result", {})


class MCPSSEClient:
    def __init__(self, url: str, timeout_sec: Optional[float] = None) -> None:
        self.url = url
        self.timeout_sec = float(timeout_sec or os.getenv("MCP_HTTP_TIMEOUT_SEC", "60"))
        self.read_timeout_sec = float(os.getenv("MCP_SSE_READ_TIMEOUT_SEC", "300"))

    def call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return anyio.run(self._call_async, name, args)

    async def _call_async(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        async with sse_client(
            self.url,
            timeout=self.timeout_sec,
            sse_read_timeout=self.read_timeout_sec,
        ) as (read_stream, write_stream):
            async with ClientSession(
                read_stream,
                write_stream,
                read_timeout_seconds=timedelta(seconds=self.read_timeout_sec),
            ) as session:
                await session.initialize()
                result = await session.call_tool(name, arguments=args)
                if result.isError:
                    raise RuntimeError(result)
                if result.structuredContent is not None:
                    payload = result.structuredContent
                    if isinstance(payload, dict) and "result" in payload and isinstance(payload["result"], dict):
                        return payload["result"]
                    return payload
                # Fallback to JSON in text content if present.
                for item in result.content:
                    if getattr(item, "type", None) == "text":
                        try:
                            payload = json.loads(item.text)
                            if isinstance(payload, dict) and "result" in payload and isinstance(payload["result"], dict):
                                return payload["result"]
                            return payload
                        except Exception:
                            break
                raise RuntimeError("MCP SSE response missing structured content")


def _transport() -> str:
    return (os.getenv("MCP_TRANSPORT") or "http").strip().lower()


def _make_client(url: str, timeout_sec: Optional[float] = None) -> MCPHttpClient | MCPSSEClient:
    if _transport() == "sse":
        return MCPSSEClient(url, timeout_sec=timeout_sec)
    return MCPHttpClient(url, timeout_sec=timeout_sec)


class AssetClient:
    def __init__(self) -> None:
        self.url = _env_url("MCP_ASSETS_URL")
        if self.url:
            self.client = _make_client(self.url)
            self.mode = _transport()
        else:
            self.store = ArtifactStore()
            self.mode = "local"

    def put(
        self,
        data: bytes,
        content_type: str = "application/octet-stream",
        tags: Optional[Iterable[str]] = None,
    ) -> str:
        if self.mode != "local":
            payload = {
                "data_b64": base64.b64encode(data).decode("ascii"),
                "content_type": content_type,
                "tags": list(tags or []),
            }
            res = self.client.call("asset_put", payload)
            artifact_id = res.get("artifact_id")
            if not artifact_id:
                raise RuntimeError("asset_put missing artifact_id")
            return artifact_id
        return self.store.put(data=data, content_type=content_type, tags=tags)

    def get_path(self, artifact_id: str) -> str:
        if self.mode != "local":
            res = self.client.call("asset_get", {"artifact_id": artifact_id})
            path = res.get("path")
            if not path:
                raise FileNotFoundError(artifact_id)
            return path
        return self.store.get_path(artifact_id)


class RenderClient:
    def __init__(self) -> None:
        self.url = _env_url("MCP_RENDER_URL")
        if self.url:
            self.client = _make_client(self.url, timeout_sec=os.getenv("MCP_RENDER_TIMEOUT_SEC"))
            self.mode = _transport()
        else:
            self.service = RenderService()
            self.mode = "local"

    def assemble(
        self,
        clips: List[str],
        timeline: Optional[Dict[str, Any]] = None,
        narration: Optional[Dict[str, Any]] = None,
        narration_audio: Optional[List[Optional[str]]] = None,
        music: Optional[str] = None,
        act_types: Optional[Dict[Any, str]] = None,
        quality: Optional[str] = None,
    ) -> Dict[str, Any]:
        if self.mode != "local":
            return self.client.call(
                "assemble_film",
                {
                    "clips": clips,
                    "timeline": timeline,
                    "narration": narration,
                    "narration_audio": narration_audio,
                    "music": music,
                    "act_types": {str(k): v for k, v in (act_types or {}).items()} or None,
                    "quality": quality,
                },
            )
        return self.service.assemble(
            clips,
            timeline=timeline,
            narration=narration,
            narration_audio=narration_audio,
            music=music,
            act_types=act_types,
            quality=quality,
        )


class QCClient:
    def __init__(self) -> None:
        self.url = _env_url("MCP_QC_URL")
        if self.url:
            self.client = _make_client(self.url, timeout_sec=os.getenv("MCP_QC_TIMEOUT_SEC"))
            self.mode = _transport()
        else:
            self.service = QCService()
            self.mode = "local"

    def qc_pre_render(
        self,
        structure: Dict[str, Any],
        narration: Dict[str, Any],
        shot_plan: List[Dict[str, Any]],
        timeline: Optional[Dict[str, Any]] = None,
        avoid_list: Optional[Dict[str, Any]] = None,
        fingerprints: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if self.mode != "local":
            return self.client.call(
                "qc_pre_render",
                {
                    "structure": structure,
                    "narration": narration,
                    "shot_plan": shot_plan,
                    "timeline": timeline,
                    "avoid_list": avoid_list,
                    "fingerprints": fingerprints,
                },
            )
        return self.service.qc_pre_render(structure, narration, shot_plan, timeline, avoid_list, fingerprints)

    def qc_post_render(
        self,
        structure: Dict[str, Any],
        scenes: List[Dict[str, Any]],
        narration_segments: List[Dict[str, Any]],
        expected_scene_count: Optional[int] = None,
    ) -> Dict[str, Any]:
        if self.mode != "local":
            return self.client.call(
                "qc_post_render",
                {
                    "structure": structure,
                    "scenes": scenes,
                    "narration_segments": narration_segments,
                    "expected_scene_count": expected_scene_count,
                },
            )
        return self.service.qc_post_render(structure, scenes, narration_segments, expected_scene_count)

    def qc_narration_audio(self, uri: str) -> Dict[str, Any]:
        if self.mode != "local":
            return self.client.call("qc_narration_audio", {"uri": uri})
        return self.service.qc_narration_audio(uri)

    def qc_final_media(self, uri: str, expected_duration_sec: Optional[float] = None) -> Dict[str, Any]:
        if self.mode != "local":
            return self.client.call("qc_final_media", {"uri": uri, "expected_duration_sec": expected_duration_sec})
        return self.service.qc_final_media(uri, expected_duration_sec)
