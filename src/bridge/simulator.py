"""
Terminal-side simulator for the MT4 bridge file protocol.

`TerminalSimulator` plays the part of the MT4 bridge EA for development
and tests: it lays out a fake terminal data folder, seeds snapshot files,
and `process_once()` consumes pending command files and answers with
result files the way the EA does. No trading happens; results echo the
command with a made-up ticket.

Design aims:
- Pure Python, stdlib only
- Deterministic and testable: process_once returns the handled commands
- Commands are consumed once (the command file is deleted after reading)
"""
from __future__ import annotations

from itertools import count
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import logging
import time

from . import command_codec as codec
from .mt4_bridge import (
    ACCOUNT_FILE,
    BACKTEST_COMMAND_FILE,
    BACKTEST_STATUS_FILE,
    CLOSE_COMMAND_FILE,
    CLOSE_RESULT_FILE,
    EXPERTS_LIST_FILE,
    ORDER_COMMAND_FILE,
    ORDER_RESULT_FILE,
    POSITIONS_FILE,
    market_data_file,
)
from .terminal import TERMINAL_ID_LENGTH, atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_TERMINAL_ID = "0123456789ABCDEF0123456789ABCDEF"


class TerminalSimulator:
    """Fake MT4 terminal answering bridge commands from its Files folder."""

    def __init__(self, terminal_dir: Path, first_ticket: int = 100001) -> None:
        self.terminal_dir = Path(terminal_dir)
        self.files_dir = self.terminal_dir / "MQL4" / "Files"
        self.experts_dir = self.terminal_dir / "MQL4" / "Experts"
        self._tickets = count(first_ticket)

    @classmethod
    def create(cls, data_path: Path, terminal_id: str = DEFAULT_TERMINAL_ID, **kwargs: Any) -> "TerminalSimulator":
        """Lay out `<data_path>/<terminal_id>/MQL4/{Files,Experts,Include}`."""
        if len(terminal_id) != TERMINAL_ID_LENGTH:
            raise ValueError(f"terminal_id must be {TERMINAL_ID_LENGTH} characters")
        terminal_dir = Path(data_path) / terminal_id
        for sub in ("Files", "Experts", "Include"):
            (terminal_dir / "MQL4" / sub).mkdir(parents=True, exist_ok=True)
        return cls(terminal_dir, **kwargs)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def write_account(self, info: Dict[str, Any]) -> Path:
        return atomic_write_text(self.files_dir / ACCOUNT_FILE, codec.format_kv(info))

    def write_market_data(self, symbol: str, data: Dict[str, Any]) -> Path:
        return atomic_write_text(self.files_dir / market_data_file(symbol), codec.format_kv(data))

    def write_positions(self, positions: List[Dict[str, Any]]) -> Path:
        return atomic_write_text(self.files_dir / POSITIONS_FILE, codec.format_kv_blocks(positions))

    def write_history(self, days: int, trades: List[Dict[str, Any]]) -> Path:
        return atomic_write_text(self.files_dir / f"history_{days}d.txt", codec.format_kv_blocks(trades))

    def write_experts_list(self, experts: List[Dict[str, str]]) -> Path:
        lines = [f"{e['name']}|{e.get('description', '')}|{e.get('modified', '')}" for e in experts]
        return atomic_write_text(self.files_dir / EXPERTS_LIST_FILE, "\n".join(lines))

    # ------------------------------------------------------------------
    # Command handling
    # ------------------------------------------------------------------
    def _consume(self, name: str) -> Optional[Dict[str, Any]]:
        path = self.files_dir / name
        if not path.exists():
            return None
        text = path.read_text(encoding="utf-8")
        path.unlink()
        return json.loads(text)

    def _answer_order(self, cmd: Dict[str, Any]) -> Dict[str, Any]:
        result = {
            "success": True,
            "ticket": next(self._tickets),
            "symbol": cmd.get("symbol", ""),
            "operation": cmd.get("operation", ""),
            "lots": f"{float(cmd.get('lots', 0)):.2f}",
            "price": cmd.get("price", 0),
            "stop_loss": cmd.get("stop_loss", 0),
            "take_profit": cmd.get("take_profit", 0),
        }
        atomic_write_text(self.files_dir / ORDER_RESULT_FILE, codec.format_kv(result))
        return result

    def _answer_close(self, cmd: Dict[str, Any]) -> Dict[str, Any]:
        result = {"success": True, "ticket": cmd.get("ticket", 0), "closed": True}
        atomic_write_text(self.files_dir / CLOSE_RESULT_FILE, codec.format_kv(result))
        return result

    def _answer_backtest(self, cmd: Dict[str, Any]) -> Dict[str, Any]:
        status = {
            "status": "queued",
            "expert": cmd.get("expert", ""),
            "symbol": cmd.get("symbol", ""),
            "timeframe": cmd.get("timeframe", ""),
            "progress": 0,
            "current_drawdown": 0.0,
            "balance": cmd.get("initial_deposit", 0),
            "trades": 0,
        }
        atomic_write_text(self.files_dir / BACKTEST_STATUS_FILE, json.dumps(status))
        return status

    def process_once(self) -> List[Dict[str, Any]]:
        """Consume every pending command file and write its result.

        Returns a list of records with keys 'command' and 'result'.
        """
        handlers = [
            (ORDER_COMMAND_FILE, self._answer_order),
            (CLOSE_COMMAND_FILE, self._answer_close),
            (BACKTEST_COMMAND_FILE, self._answer_backtest),
        ]
        processed: List[Dict[str, Any]] = []
        for name, handler in handlers:
            try:
                cmd = self._consume(name)
            except json.JSONDecodeError as e:
                logger.error(f"Discarded malformed command in {name}: {e}")
                continue
            if cmd is None:
                continue
            processed.append({"command": cmd, "result": handler(cmd)})
        return processed

    def watch_loop(self, poll_interval: float = 1.0) -> None:
        """Blocking loop that polls for commands, like the EA's timer."""
        logger.info(f"Simulating terminal {self.terminal_dir} (poll_interval={poll_interval}s)")
        try:
            while True:
                for rec in self.process_once():
                    logger.info(f"[SIM] {rec['command'].get('action')} -> {rec['result']}")
                time.sleep(poll_interval)
        except KeyboardInterrupt:
            logger.info("Simulator stopped by user")


__all__ = ["TerminalSimulator", "DEFAULT_TERMINAL_ID"]
