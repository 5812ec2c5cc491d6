"""
MCP stdio server exposing the MT4 bridge as tools.

Usage:
    env MT4_HOST=192.168.1.20 MT4_PORT=8080 mt4-mcp-server
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from src.utils.logging_utils import configure_logging

from .config import ToolConfig
from .handlers import TOOL_DEFINITIONS, ToolDispatcher

logger = logging.getLogger(__name__)

SERVER_NAME = "mt4-mcp-server"


def tool_list() -> List[Tool]:
    return [Tool(name=d["name"], description=d["description"], inputSchema=d["inputSchema"]) for d in TOOL_DEFINITIONS]


def build_server(dispatcher: ToolDispatcher) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> List[Tool]:
        return tool_list()

    @server.call_tool()
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        # requests is blocking; keep the stdio loop responsive
        text = await asyncio.to_thread(dispatcher.call, name, arguments or {})
        return [TextContent(type="text", text=text)]

    return server


async def serve(config: Optional[ToolConfig] = None) -> None:
    config = config or ToolConfig.from_env()
    server = build_server(ToolDispatcher(config))
    logger.info(f"MT4 MCP server running on stdio (bridge {config.base_url})")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    config = ToolConfig.from_env()
    configure_logging(config.log_level)
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
