"""
Start the MT4 MCP server on stdio (same as the `mt4-mcp-server` command).

Usage:
  env MT4_HOST=192.168.1.20 MT4_PORT=8080 python scripts/run_mcp_server.py
"""
from pathlib import Path
import sys

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from src.tools.server import main


if __name__ == "__main__":
    main()
