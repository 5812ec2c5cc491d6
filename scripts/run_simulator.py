"""
Run the terminal simulator loop or a single pass against a fake MT4 data folder.

Usage:
  python scripts/run_simulator.py --data-path sim_terminal --seed --once
  python scripts/run_simulator.py --data-path sim_terminal --poll 1.0

Point the bridge at the same folder with MT4_DATA_PATH=sim_terminal.
"""
from pathlib import Path
import sys
import argparse

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from src.bridge.simulator import TerminalSimulator, DEFAULT_TERMINAL_ID
from src.utils.logging_utils import configure_logging


def _seed(sim: TerminalSimulator) -> None:
    sim.write_account({"login": 1000001, "balance": 10000.00, "equity": 10000.00, "currency": "USD", "leverage": 100})
    sim.write_market_data("EURUSD", {"symbol": "EURUSD", "bid": 1.08500, "ask": 1.08512, "spread": 12})
    sim.write_positions([])
    sim.write_history(7, [])
    sim.write_experts_list([{"name": "MCPBridge", "description": "Bridge EA"}])


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--data-path", type=str, default="sim_terminal", help="Fake MT4 data folder (relative to project root)")
    parser.add_argument("--terminal-id", type=str, default=DEFAULT_TERMINAL_ID, help="32-character terminal folder name")
    parser.add_argument("--seed", action="store_true", help="Write example account/market snapshots")
    parser.add_argument("--once", action="store_true", help="Process once and exit")
    parser.add_argument("--poll", type=float, default=1.0, help="Poll interval in seconds for watch loop")
    args = parser.parse_args()

    configure_logging()
    sim = TerminalSimulator.create(project_root / args.data_path, args.terminal_id)
    if args.seed:
        _seed(sim)

    if args.once:
        for rec in sim.process_once():
            print(rec)
    else:
        sim.watch_loop(poll_interval=args.poll)


if __name__ == "__main__":
    main()
