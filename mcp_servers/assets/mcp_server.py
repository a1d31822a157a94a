"""MCP server entrypoint for asset service."""
import os
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .server import AssetService


path = os.getenv("MCP_PATH", "/mcp").rstrip("/")

mcp = FastMCP(
    "mcp-assets",
    json_response=True,
    host=os.getenv("MCP_HOST", "127.0.0.1"),
    port=int(os.getenv("MCP_PORT", "8000")),
    sse_path=f"{path}/sse",
    message_path=f"{path}/messages/",
)
service = AssetService()


@mcp.tool()
def asset_put(data_b64: str, content_type: str, tags: Optional[List[str]] = None) -> Dict[str, Any]:
    """Store bytes. data_b64 is base64-encoded."""
    return service.asset_put(data_b64=data_b64, content_type=content_type, tags=tags)


@mcp.tool()
def asset_put_file(path: str, content_type: str, tags: Optional[List[str]] = None) -> Dict[str, Any]:
    return service.asset_put_file(path=path, content_type=content_type, tags=tags)


@mcp.tool()
def asset_get(artifact_id: str) -> Dict[str, Any]:
    return service.asset_get(artifact_id)


@mcp.tool()
def asset_list(tags: Optional[List[str]] = None) -> Dict[str, Any]:
    return service.asset_list(tags=tags)


if __name__ == "__main__":
    mcp.run(transport=os.getenv("MCP_TRANSPORT", "stdio"))
