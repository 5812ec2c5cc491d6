"""
mt4-mcp-bridge.bridge

Terminal-side half of the relay: an HTTP-facing bridge that talks to a
MetaTrader 4 terminal exclusively through files in its data directory.

- `command_codec`: command records and the flat/JSON file formats
- `terminal`: terminal instance discovery and atomic file access
- `polling`: bounded polling for result files
- `compiler`: MetaEditor command-line compilation
- `mt4_bridge`: the operations served by `core.bridge_server`
- `simulator`: a stand-in for the terminal EA during development
"""
