"""
Polling bridge between HTTP requests and the MT4 terminal's exchange files.

`MT4Bridge` turns each operation into file traffic against one terminal
instance:

  - snapshots (account, market data, positions, history, experts list)
    are read and parsed from files the EA rewrites on its own timer;
  - orders and closes write a single-slot command file, then poll the
    matching result file (bounded backoff); with no fresh result in time
    the caller gets a "command sent" acknowledgement instead;
  - backtests write their command and return immediately;
  - EA sources are written into `MQL4/Experts` and compiled with
    MetaEditor.

Command slots are singletons: two commands written before the EA polls
overwrite each other. No locking is attempted.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import json
import logging
import time

from . import command_codec as codec
from .compiler import compile_ea, find_metaeditor
from .config import BridgeConfig
from .polling import wait_for_result
from .terminal import BridgeError, FileMissingError, TerminalFiles

logger = logging.getLogger(__name__)

ORDER_COMMAND_FILE = "order_commands.txt"
ORDER_RESULT_FILE = "order_result.txt"
CLOSE_COMMAND_FILE = "close_commands.txt"
CLOSE_RESULT_FILE = "close_result.txt"
BACKTEST_COMMAND_FILE = "backtest_commands.txt"
BACKTEST_RESULTS_FILE = "backtest_results.txt"
BACKTEST_RESULTS_DETAILED_FILE = "backtest_results_detailed.txt"
BACKTEST_STATUS_FILE = "mt4_reports/backtest_status.json"
ACCOUNT_FILE = "account_info.txt"
POSITIONS_FILE = "positions.txt"
EXPERTS_LIST_FILE = "experts_list.txt"

FEATURES = [
    "account_info",
    "market_data",
    "orders",
    "positions",
    "history",
    "backtesting",
    "ea_upload",
    "ea_compilation",
]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def market_data_file(symbol: str) -> str:
    return f"market_data_{codec.validate_symbol(symbol)}.txt"


def history_file(days: int) -> str:
    return f"history_{days}d.txt"


class MT4Bridge:
    """Operations exposed by the HTTP bridge, backed by terminal files."""

    def __init__(
        self,
        config: BridgeConfig,
        terminal: Optional[TerminalFiles] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.terminal = terminal or TerminalFiles(config.data_path, config.terminal_dir)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def health(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "status": "ok",
            "timestamp": _utc_now(),
            "mt4_path": str(self.config.data_path),
            "features": list(FEATURES),
        }
        try:
            info["terminal_dir"] = str(self.terminal.resolve())
        except BridgeError as e:
            info["terminal_dir"] = None
            info["terminal_error"] = str(e)
        return info

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def account_info(self) -> Dict[str, str]:
        return codec.parse_kv_text(self.terminal.read_file(ACCOUNT_FILE))

    def market_data(self, symbol: str) -> Dict[str, str]:
        return codec.parse_kv_text(self.terminal.read_file(market_data_file(symbol)))

    def positions(self) -> Dict[str, Any]:
        return {"positions": codec.parse_kv_blocks(self.terminal.read_file(POSITIONS_FILE))}

    def history(self, days: int = 7) -> Dict[str, Any]:
        if days < 1:
            raise ValueError("'days' must be >= 1")
        return {"history": codec.parse_kv_blocks(self.terminal.read_file(history_file(days)))}

    def experts(self) -> Dict[str, Any]:
        return {"experts": codec.parse_experts_list(self.terminal.read_file(EXPERTS_LIST_FILE))}

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _submit(self, command_file: str, result_file: str, command: Any, ack: str) -> Dict[str, Any]:
        before = self.terminal.signature(result_file)
        self.terminal.write_file(command_file, command.to_json())
        logger.info(f"{command.action} written to {command_file}")

        result = wait_for_result(
            self.terminal.path_for(result_file),
            before,
            self.config.poll,
            sleep=self._sleep,
        )
        if result is None:
            return {"success": True, "pending": True, "message": ack}
        return {"success": True, "result": result}

    def place_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        cmd = codec.validate_order_dict(payload)
        return self._submit(ORDER_COMMAND_FILE, ORDER_RESULT_FILE, cmd, "Order command sent to MT4")

    def close_position(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        cmd = codec.validate_close_dict(payload)
        return self._submit(CLOSE_COMMAND_FILE, CLOSE_RESULT_FILE, cmd, "Close command sent to MT4")

    def run_backtest(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        cmd = codec.validate_backtest_dict(payload)
        self.terminal.write_file(BACKTEST_COMMAND_FILE, cmd.to_json())
        logger.info(f"{cmd.action} written for {cmd.expert} {cmd.symbol} {cmd.timeframe}")
        return {
            "success": True,
            "message": "Backtest command sent to MT4",
            "expert": cmd.expert,
            "symbol": cmd.symbol,
            "timeframe": cmd.timeframe,
        }

    def backtest_results(self, detailed: bool = False) -> Dict[str, Any]:
        name = BACKTEST_RESULTS_DETAILED_FILE if detailed else BACKTEST_RESULTS_FILE
        text = self.terminal.read_file(name)
        try:
            results = json.loads(text)
        except json.JSONDecodeError:
            return {"report": text}
        return results if isinstance(results, dict) else {"results": results}

    def backtest_status(self) -> Dict[str, Any]:
        text = self.terminal.read_file(BACKTEST_STATUS_FILE)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise BridgeError(f"Invalid backtest status file: {e}")

    # ------------------------------------------------------------------
    # Expert Advisors
    # ------------------------------------------------------------------
    def upload_ea(self, ea_name: Any, ea_content: Any) -> Dict[str, Any]:
        if not ea_name or not ea_content:
            raise ValueError("Missing ea_name or ea_content")
        if not isinstance(ea_content, str):
            raise ValueError("'ea_content' must be a string")
        name = codec.validate_ea_name(ea_name)

        experts = self.terminal.experts_dir()
        path = experts / f"{name}.mq4"
        try:
            # byte-exact, no newline translation
            path.write_bytes(ea_content.encode("utf-8"))
            size = path.stat().st_size
        except OSError as e:
            raise BridgeError(f"Failed to write EA {name}: {e}")
        logger.info(f"{codec.ACTION_UPLOAD_EA} {name} -> {path} ({size} bytes)")

        return {
            "success": True,
            "message": "EA uploaded successfully",
            "ea_name": name,
            "file_path": str(path),
            "file_size": size,
            "experts_directory": str(experts),
            "timestamp": _utc_now(),
        }

    def compile_ea(self, ea_name: Any) -> Dict[str, Any]:
        if not ea_name:
            raise ValueError("Missing ea_name")
        name = codec.validate_ea_name(ea_name)

        source = self.terminal.experts_dir() / f"{name}.mq4"
        if not source.is_file():
            raise FileMissingError(f"EA file not found: {name}.mq4")

        logger.info(f"{codec.ACTION_COMPILE_EA} {name}")
        res = compile_ea(
            source,
            metaeditor_paths=self.config.metaeditor_paths,
            include_dir=self.terminal.include_dir(),
            timeout=self.config.compile_timeout,
        )
        result = res.to_dict()
        result["ex4_file"] = result.pop("ex4_path")
        result.update(
            ea_name=name,
            source_file=str(source),
            timestamp=_utc_now(),
            message="EA compiled successfully" if res.success else f"Compilation failed with {res.errors} error(s)",
        )
        return result

    def list_eas(self) -> Dict[str, Any]:
        files = self.terminal.list_ea_files()
        return {
            "success": True,
            "experts_directory": str(self.terminal.experts_dir()),
            "files": files,
            "count": len(files),
        }

    def metaeditor_status(self) -> Dict[str, Any]:
        editor = find_metaeditor(self.config.metaeditor_paths)
        return {
            "success": True,
            "metaeditor_path": str(editor),
            "experts_directory": str(self.terminal.experts_dir()),
            "mt4_data_path": str(self.config.data_path),
            "available_paths": [str(p) for p in self.config.metaeditor_paths],
        }


__all__ = ["MT4Bridge", "FEATURES", "market_data_file", "history_file"]
