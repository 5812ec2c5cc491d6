"""
src package for mt4-mcp-bridge.

This package groups the two halves of the MCP -> MT4 relay:
- bridge: HTTP-facing bridge that exchanges command/result files with MT4
- tools: MCP tool front that forwards to the bridge over HTTP
- utils: shared helpers
"""
__all__ = [
    "bridge",
    "tools",
    "utils",
]
