"""
mt4-mcp-bridge.tools

Client-side half of the relay: MCP tools that forward to the HTTP bridge.

- `bridge_client`: requests-based client for the bridge endpoints
- `handlers`: tool definitions and the dispatcher formatting replies
- `workspace`: local EA working directory (sources, compile logs)
- `server`: MCP stdio transport
"""
