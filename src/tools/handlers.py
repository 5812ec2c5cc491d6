"""
Named tool operations exposed to an MCP caller.

Each tool maps onto one bridge endpoint: arguments are checked for
presence, defaults are applied, the bridge is called, and the answer is
formatted as text. Every failure (unknown tool, bad arguments, bridge
unreachable, local file problems) comes back as an "Error: ..." string.

Two tools read local report files when the bridge call fails
(`get_backtest_results`, `get_backtest_status`), and the EA tools keep a
local working copy in an `EAWorkspace`.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote
import json
import logging

from src.bridge.command_codec import ORDER_OPERATIONS, TEST_MODELS, TIMEFRAMES, validate_ea_name

from .bridge_client import BridgeClient, BridgeClientError
from .config import ToolConfig
from .workspace import EA_FOLDERS, EAWorkspace

logger = logging.getLogger(__name__)

_EMPTY = {"type": "object", "properties": {}}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "get_account_info",
        "description": "Get MetaTrader 4 account information",
        "inputSchema": _EMPTY,
    },
    {
        "name": "get_market_data",
        "description": "Get current market data for a symbol",
        "inputSchema": {
            "type": "object",
            "properties": {"symbol": {"type": "string", "description": "Trading symbol (e.g., EURUSD, GBPUSD)"}},
            "required": ["symbol"],
        },
    },
    {
        "name": "place_order",
        "description": "Place a trading order in MetaTrader 4",
        "inputSchema": {
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Trading symbol"},
                "operation": {"type": "string", "enum": list(ORDER_OPERATIONS), "description": "Order operation type"},
                "lots": {"type": "number", "description": "Position size in lots"},
                "price": {"type": "number", "description": "Order price (for pending orders)"},
                "stop_loss": {"type": "number", "description": "Stop loss price"},
                "take_profit": {"type": "number", "description": "Take profit price"},
                "comment": {"type": "string", "description": "Order comment"},
            },
            "required": ["symbol", "operation", "lots"],
        },
    },
    {
        "name": "get_positions",
        "description": "Get all open positions",
        "inputSchema": _EMPTY,
    },
    {
        "name": "close_position",
        "description": "Close an open position",
        "inputSchema": {
            "type": "object",
            "properties": {"ticket": {"type": "number", "description": "Position ticket number"}},
            "required": ["ticket"],
        },
    },
    {
        "name": "get_history",
        "description": "Get trading history",
        "inputSchema": {
            "type": "object",
            "properties": {"days": {"type": "number", "description": "Number of days to look back", "default": 7}},
        },
    },
    {
        "name": "run_backtest",
        "description": "Run a backtest on an Expert Advisor",
        "inputSchema": {
            "type": "object",
            "properties": {
                "expert": {"type": "string", "description": "Expert Advisor name (without .ex4 extension)"},
                "symbol": {"type": "string", "description": "Trading symbol (e.g., EURUSD, GBPUSD)"},
                "timeframe": {"type": "string", "enum": list(TIMEFRAMES), "description": "Timeframe for backtesting"},
                "from_date": {"type": "string", "description": "Start date (YYYY-MM-DD format)"},
                "to_date": {"type": "string", "description": "End date (YYYY-MM-DD format)"},
                "initial_deposit": {"type": "number", "description": "Initial deposit amount", "default": 10000},
                "model": {"type": "string", "enum": list(TEST_MODELS), "description": "Testing model", "default": "Every tick"},
                "optimization": {"type": "boolean", "description": "Enable optimization", "default": False},
                "parameters": {
                    "type": "object",
                    "description": "Expert Advisor parameters as key-value pairs",
                    "additionalProperties": True,
                },
            },
            "required": ["expert", "symbol", "timeframe", "from_date", "to_date"],
        },
    },
    {
        "name": "get_backtest_results",
        "description": "Get results from the last backtest",
        "inputSchema": {
            "type": "object",
            "properties": {
                "detailed": {"type": "boolean", "description": "Include detailed trade-by-trade results", "default": False},
            },
        },
    },
    {
        "name": "list_experts",
        "description": "List available Expert Advisors for backtesting",
        "inputSchema": _EMPTY,
    },
    {
        "name": "get_backtest_status",
        "description": "Get the current status of a running backtest",
        "inputSchema": _EMPTY,
    },
    {
        "name": "sync_ea",
        "description": "Save an Expert Advisor locally and upload it to the MT4 Experts folder",
        "inputSchema": {
            "type": "object",
            "properties": {
                "ea_name": {"type": "string", "description": "EA name (without .mq4 extension)"},
                "ea_content": {"type": "string", "description": "Full MQL4 source code"},
            },
            "required": ["ea_name", "ea_content"],
        },
    },
    {
        "name": "compile_ea",
        "description": "Compile an uploaded Expert Advisor with MetaEditor",
        "inputSchema": {
            "type": "object",
            "properties": {"ea_name": {"type": "string", "description": "EA name (without .mq4 extension)"}},
            "required": ["ea_name"],
        },
    },
    {
        "name": "list_local_eas",
        "description": "List Expert Advisor sources in the local working directory",
        "inputSchema": {
            "type": "object",
            "properties": {
                "folder": {"type": "string", "enum": list(EA_FOLDERS), "description": "Folder to list", "default": "active"},
            },
        },
    },
    {
        "name": "sync_ea_from_file",
        "description": "Read a local .mq4 file and sync it to MT4",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "Path to the .mq4 file"},
                "ea_name": {"type": "string", "description": "EA name (defaults to the file name)"},
            },
            "required": ["file_path"],
        },
    },
]


def _pretty(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _require(args: Dict[str, Any], *names: str) -> None:
    for name in names:
        if args.get(name) is None or args.get(name) == "":
            raise ValueError(f"Missing required argument: {name}")


def _mtime_iso(path: Path) -> str:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()


class ToolDispatcher:
    """Dispatch MCP tool calls to the MT4 bridge and format the replies."""

    def __init__(
        self,
        config: ToolConfig,
        client: Optional[BridgeClient] = None,
        workspace: Optional[EAWorkspace] = None,
    ) -> None:
        self.config = config
        self.client = client or BridgeClient(config.host, config.port, timeout=config.timeout, token=config.token)
        self.workspace = workspace or EAWorkspace(config.ea_root)
        self._handlers: Dict[str, Callable[[Dict[str, Any]], str]] = {
            "get_account_info": self.get_account_info,
            "get_market_data": self.get_market_data,
            "place_order": self.place_order,
            "get_positions": self.get_positions,
            "close_position": self.close_position,
            "get_history": self.get_history,
            "run_backtest": self.run_backtest,
            "get_backtest_results": self.get_backtest_results,
            "list_experts": self.list_experts,
            "get_backtest_status": self.get_backtest_status,
            "sync_ea": self.sync_ea,
            "compile_ea": self.compile_ea,
            "list_local_eas": self.list_local_eas,
            "sync_ea_from_file": self.sync_ea_from_file,
        }

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Run tool `name`; never raises, failures come back as text."""
        args = dict(arguments or {})
        try:
            handler = self._handlers.get(name)
            if handler is None:
                raise ValueError(f"Unknown tool: {name}")
            return handler(args)
        except Exception as e:  # the MCP caller only ever receives text
            logger.error(f"Tool {name} failed: {e}")
            return f"Error: {e}"

    # ------------------------------------------------------------------
    # Account and market
    # ------------------------------------------------------------------
    def get_account_info(self, args: Dict[str, Any]) -> str:
        return f"MT4 Account Information:\n{_pretty(self.client.call('/api/account'))}"

    def get_market_data(self, args: Dict[str, Any]) -> str:
        _require(args, "symbol")
        symbol = str(args["symbol"])
        data = self.client.call(f"/api/market/{quote(symbol, safe='')}")
        return f"Market data for {symbol}:\n{_pretty(data)}"

    def get_positions(self, args: Dict[str, Any]) -> str:
        return f"Open Positions:\n{_pretty(self.client.call('/api/positions'))}"

    def get_history(self, args: Dict[str, Any]) -> str:
        days = int(args.get("days") or 7)
        return f"Trading History ({days} days):\n{_pretty(self.client.call(f'/api/history?days={days}'))}"

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def place_order(self, args: Dict[str, Any]) -> str:
        _require(args, "symbol", "operation", "lots")
        order = {
            "symbol": args["symbol"],
            "operation": args["operation"],
            "lots": args["lots"],
            "price": args.get("price") or 0,
            "stop_loss": args.get("stop_loss") or 0,
            "take_profit": args.get("take_profit") or 0,
            "comment": args.get("comment") or "",
        }
        return f"Order result:\n{_pretty(self.client.call('/api/order', order))}"

    def close_position(self, args: Dict[str, Any]) -> str:
        _require(args, "ticket")
        result = self.client.call("/api/close", {"ticket": args["ticket"]})
        return f"Close position result:\n{_pretty(result)}"

    # ------------------------------------------------------------------
    # Backtesting
    # ------------------------------------------------------------------
    def run_backtest(self, args: Dict[str, Any]) -> str:
        _require(args, "expert", "symbol", "timeframe", "from_date", "to_date")
        payload = {
            "expert": args["expert"],
            "symbol": args["symbol"],
            "timeframe": args["timeframe"],
            "from_date": args["from_date"],
            "to_date": args["to_date"],
            "initial_deposit": args.get("initial_deposit") or 10000,
            "model": args.get("model") or "Every tick",
            "optimization": bool(args.get("optimization", False)),
            "parameters": args.get("parameters") or {},
        }
        return f"Backtest initiated:\n{_pretty(self.client.call('/api/backtest', payload))}"

    def get_backtest_results(self, args: Dict[str, Any]) -> str:
        detailed = bool(args.get("detailed", False))
        endpoint = "/api/backtest/results?detailed=true" if detailed else "/api/backtest/results"
        try:
            results = self.client.call(endpoint)
        except BridgeClientError as e:
            logger.warning(f"Backtest results unavailable from bridge ({e}); reading report file")
            return self._backtest_results_from_file(detailed)
        return f"Backtest Results:\n{_pretty(results)}"

    def _backtest_results_from_file(self, detailed: bool) -> str:
        results_file = self.config.reports_path / "backtest_results.json"
        html_report = self.config.reports_path / "backtest_report.html"
        if not results_file.is_file():
            return f"No backtest results file found at {results_file}. EA should write results to this file."
        try:
            results = json.loads(results_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return f"Error reading backtest results file: {e}"
        if not isinstance(results, dict):
            results = {"results": results}
        results["file_updated"] = _mtime_iso(results_file)
        if detailed and html_report.is_file():
            results["html_report"] = {
                "path": str(html_report),
                "updated": _mtime_iso(html_report),
                "size": html_report.stat().st_size,
            }
        return f"Backtest Results (from file):\n{_pretty(results)}"

    def get_backtest_status(self, args: Dict[str, Any]) -> str:
        try:
            status = self.client.call("/api/backtest/status")
        except BridgeClientError as e:
            logger.warning(f"Backtest status unavailable from bridge ({e}); reading status file")
            return self._backtest_status_from_file()
        return f"Backtest Status:\n{_pretty(status)}"

    def _backtest_status_from_file(self) -> str:
        status_file = self.config.reports_path / "backtest_status.json"
        if not status_file.is_file():
            return f"No backtest status file found at {status_file}. EA should write status to this file."
        try:
            status = json.loads(status_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return f"Error reading backtest status file: {e}"
        if not isinstance(status, dict):
            status = {"status": status}
        status["file_updated"] = _mtime_iso(status_file)
        return f"Backtest Status (from file):\n{_pretty(status)}"

    def list_experts(self, args: Dict[str, Any]) -> str:
        return f"Available Expert Advisors:\n{_pretty(self.client.call('/api/experts'))}"

    # ------------------------------------------------------------------
    # Expert Advisor development
    # ------------------------------------------------------------------
    def sync_ea(self, args: Dict[str, Any]) -> str:
        _require(args, "ea_name", "ea_content")
        name = validate_ea_name(args["ea_name"])
        content = str(args["ea_content"])

        local_path = self.workspace.save_source(name, content)
        logger.info(f"Saved {name} locally at {local_path}")

        try:
            result = self.client.call(
                "/api/ea/upload",
                {"ea_name": name, "ea_content": content},
                timeout=self.config.upload_timeout,
            )
        except BridgeClientError as e:
            logger.warning(f"Upload of {name} failed: {e}")
            return self._manual_instructions(name, local_path, str(e))
        if not isinstance(result, dict) or not result.get("success"):
            reason = result.get("error", "upload rejected") if isinstance(result, dict) else "upload rejected"
            return self._manual_instructions(name, local_path, str(reason))

        lines = [
            f"EA '{name}' synced to MT4.",
            f"Local copy: {local_path}",
            f"Remote file: {result.get('file_path')}",
            f"Size: {result.get('file_size')} bytes",
            f"Next: run compile_ea with ea_name '{name}'.",
        ]
        return "\n".join(lines)

    def _manual_instructions(self, name: str, local_path: Path, reason: str) -> str:
        return "\n".join([
            f"EA '{name}' was saved locally but could not be uploaded to MT4.",
            f"Reason: {reason}",
            f"Local copy: {local_path}",
            "",
            "Manual deployment:",
            f"1. Copy {local_path.name} to the MQL4/Experts folder of the MT4 terminal",
            "   (File > Open Data Folder in MT4).",
            f"2. Open {local_path.name} in MetaEditor and press F7 to compile.",
            "3. Refresh the Expert Advisors list in the MT4 Navigator.",
            f"4. Check the bridge at {self.config.base_url}/api/health before retrying sync_ea.",
        ])

    def compile_ea(self, args: Dict[str, Any]) -> str:
        _require(args, "ea_name")
        name = validate_ea_name(args["ea_name"])
        stamp = datetime.now(timezone.utc).isoformat()

        try:
            result = self.client.call("/api/ea/compile", {"ea_name": name}, timeout=self.config.compile_timeout)
        except BridgeClientError as e:
            log_path = self.workspace.write_log(name, f"Compilation of {name}.mq4\nDate: {stamp}\nStatus: FAILED\n\n{e}\n")
            return f"Error: {e}\nLog saved to {log_path}"

        status = "SUCCESS" if result.get("success") else "FAILED"
        log_text = "\n".join([
            f"Compilation of {name}.mq4",
            f"Date: {stamp}",
            f"Status: {status}",
            f"Errors: {result.get('errors', 0)}",
            f"Warnings: {result.get('warnings', 0)}",
            f"Exit code: {result.get('exit_code')}",
            f"Compiled file: {result.get('ex4_file') or '-'}",
            "",
            str(result.get("log") or ""),
        ])
        log_path = self.workspace.write_log(name, log_text)

        summary = {k: result.get(k) for k in ("success", "compiled", "errors", "warnings", "ex4_file", "message")}
        summary["local_log"] = str(log_path)
        return f"Compilation result for {name}:\n{_pretty(summary)}"

    def list_local_eas(self, args: Dict[str, Any]) -> str:
        folder = args.get("folder") or "active"
        items = self.workspace.list_eas(folder)
        if not items:
            return f"No EA files in {self.workspace.folder(folder)}"
        lines = [f"Local EAs in {folder} ({len(items)}):"]
        for item in items:
            lines.append(f"- {item['name']} ({item['size']} bytes, modified {item['modified']})")
        return "\n".join(lines)

    def sync_ea_from_file(self, args: Dict[str, Any]) -> str:
        _require(args, "file_path")
        path = Path(str(args["file_path"])).expanduser()
        if not path.is_file():
            raise ValueError(f"EA file not found: {path}")
        if path.suffix.lower() != ".mq4":
            raise ValueError(f"Expected an .mq4 file, got {path.name}")
        name = args.get("ea_name") or path.stem
        content = path.read_text(encoding="utf-8")
        return self.sync_ea({"ea_name": name, "ea_content": content})


__all__ = ["ToolDispatcher", "TOOL_DEFINITIONS"]
