"""
Start the MT4 HTTP bridge with uvicorn.

Usage:
  python scripts/run_bridge_server.py
  python scripts/run_bridge_server.py --port 8080 --data-path "C:\\Users\\me\\AppData\\Roaming\\MetaQuotes\\Terminal"

Settings not given on the command line come from the environment / .env.
"""
from pathlib import Path
import sys
import argparse

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import uvicorn

from core.bridge_server import create_app
from src.bridge.config import BridgeConfig
from src.utils.logging_utils import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="MT4 HTTP bridge")
    parser.add_argument("--host", type=str, default=None, help="Listen address (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: PORT or 8080)")
    parser.add_argument("--data-path", type=str, default=None, help="MT4 data folder holding terminal instances")
    parser.add_argument("--terminal-dir", type=str, default=None, help="Exact terminal instance folder")
    args = parser.parse_args()

    config = BridgeConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.data_path:
        config.data_path = Path(args.data_path)
    if args.terminal_dir:
        config.terminal_dir = Path(args.terminal_dir)

    configure_logging(config.log_level)
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
