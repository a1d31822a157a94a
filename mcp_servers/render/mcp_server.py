"""MCP server entrypoint for render service."""
import os
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .server import RenderService


host = os.getenv("MCP_HOST", "127.0.0.1")
port = int(os.getenv("MCP_PORT", "8000"))
path = os.getenv("MCP_PATH", "/mcp").rstrip("/")
sse_path = f"{path}/sse"
message_path = f"{path}/messages/"

mcp = FastMCP(
    "mcp-render",
    json_response=True,
    host=host,
    port=port,
    sse_path=sse_path,
    message_path=message_path,
)
service = RenderService()


@mcp.tool()
def assemble_film(
    clips: List[str],
    timeline: Optional[Dict[str, Any]] = None,
    narration: Optional[Dict[str, Any]] = None,
    narration_audio: Optional[List[Optional[str]]] = None,
    music: Optional[str] = None,
    act_types: Optional[Dict[str, str]] = None,
    quality: Optional[str] = None,
) -> Dict[str, Any]:
    """Stitch ordered beat clips, narration audio and an optional music bed into one film."""
    return service.assemble(
        clips,
        timeline=timeline,
        narration=narration,
        narration_audio=narration_audio,
        music=music,
        act_types=act_types,
        quality=quality,
    )


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", "stdio")
    mcp.run(transport=transport)
