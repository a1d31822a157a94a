"""MCP server entrypoint for QC service."""
import os
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .server import QCService


host = os.getenv("MCP_HOST", "127.0.0.1")
port = int(os.getenv("MCP_PORT", "8000"))
path = os.getenv("MCP_PATH", "/mcp").rstrip("/")
sse_path = f"{path}/sse"
message_path = f"{path}/messages/"

mcp = FastMCP(
    "mcp-qc",
    json_response=True,
    host=host,
    port=port,
    sse_path=sse_path,
    message_path=message_path,
)
service = QCService()


@mcp.tool()
def qc_pre_render(
    structure: Dict[str, Any],
    narration: Dict[str, Any],
    shot_plan: List[Dict[str, Any]],
    timeline: Optional[Dict[str, Any]] = None,
    avoid_list: Optional[Dict[str, Any]] = None,
    fingerprints: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return service.qc_pre_render(structure, narration, shot_plan, timeline, avoid_list, fingerprints)


@mcp.tool()
def qc_post_render(
    structure: Dict[str, Any],
    scenes: List[Dict[str, Any]],
    narration_segments: List[Dict[str, Any]],
    expected_scene_count: Optional[int] = None,
) -> Dict[str, Any]:
    return service.qc_post_render(structure, scenes, narration_segments, expected_scene_count)


@mcp.tool()
def qc_timeline_validate(timeline: Dict[str, Any], max_act_index: int = 3) -> Dict[str, Any]:
    return service.qc_timeline_validate(timeline, max_act_index)


@mcp.tool()
def qc_narration_audio(uri: str) -> Dict[str, Any]:
    return service.qc_narration_audio(uri)


@mcp.tool()
def qc_final_media(uri: str, expected_duration_sec: Optional[float] = None) -> Dict[str, Any]:
    return service.qc_final_media(uri, expected_duration_sec)


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", "stdio")
    mcp.run(transport=transport)
