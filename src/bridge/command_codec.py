"""
Command records and file formats shared with the MT4 bridge EA.

The terminal-side EA polls single-slot command files written by the
bridge and answers with result files. This module owns the text formats
on both sides of that exchange and does no file I/O itself.

Commands (bridge -> EA) are single-line JSON objects:
  - PLACE_ORDER: symbol, operation, lots, price, stop_loss, take_profit, comment
  - CLOSE_POSITION: ticket
  - RUN_BACKTEST: expert, symbol, timeframe, from_date, to_date,
    initial_deposit, model, optimization, parameters
Every command also carries `action` and a millisecond `timestamp`.

Snapshots and results (EA -> bridge) are either JSON objects or flat
`key=value` lines; positions and history repeat `key=value` blocks
separated by a `---` line, and the experts list uses `name|desc|modified`.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict, field
from typing import Dict, Any, List, Tuple
import datetime
import json
import re
import time


ACTION_PLACE_ORDER = "PLACE_ORDER"
ACTION_CLOSE_POSITION = "CLOSE_POSITION"
ACTION_RUN_BACKTEST = "RUN_BACKTEST"
ACTION_UPLOAD_EA = "UPLOAD_EA"
ACTION_COMPILE_EA = "COMPILE_EA"

ORDER_OPERATIONS = ("BUY", "SELL", "BUY_LIMIT", "SELL_LIMIT", "BUY_STOP", "SELL_STOP")
TIMEFRAMES = ("M1", "M5", "M15", "M30", "H1", "H4", "D1", "W1", "MN1")
TEST_MODELS = ("Every tick", "Control points", "Open prices only")

DEFAULT_INITIAL_DEPOSIT = 10000.0
DEFAULT_MODEL = "Every tick"
BLOCK_SEPARATOR = "---"

_EA_NAME_RE = re.compile(r"^[A-Za-z0-9_\-. ]+$")
_ERRORS_RE = re.compile(r"(\d+)\s*error\(s\)", re.IGNORECASE)
_WARNINGS_RE = re.compile(r"(\d+)\s*warning\(s\)", re.IGNORECASE)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _compact(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"))


@dataclass
class OrderCommand:
    symbol: str
    operation: str
    lots: float
    price: float = 0.0
    stop_loss: float = 0.0
    take_profit: float = 0.0
    comment: str = ""
    timestamp: int = field(default_factory=_now_ms)

    action = ACTION_PLACE_ORDER

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, **asdict(self)}

    def to_json(self) -> str:
        return _compact(self.to_dict())


@dataclass
class CloseCommand:
    ticket: int
    timestamp: int = field(default_factory=_now_ms)

    action = ACTION_CLOSE_POSITION

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, **asdict(self)}

    def to_json(self) -> str:
        return _compact(self.to_dict())


@dataclass
class BacktestCommand:
    expert: str
    symbol: str
    timeframe: str
    from_date: str
    to_date: str
    initial_deposit: float = DEFAULT_INITIAL_DEPOSIT
    model: str = DEFAULT_MODEL
    optimization: bool = False
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=_now_ms)

    action = ACTION_RUN_BACKTEST

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, **asdict(self)}

    def to_json(self) -> str:
        return _compact(self.to_dict())


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _require_str(d: Dict[str, Any], key: str) -> str:
    v = d.get(key)
    if not isinstance(v, str) or not v.strip():
        raise ValueError(f"'{key}' is required and must be a non-empty string")
    return v.strip()


def _optional_float(d: Dict[str, Any], key: str, default: float = 0.0) -> float:
    v = d.get(key)
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        raise ValueError(f"'{key}' must be a number if provided")
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValueError(f"'{key}' must be a number if provided")


def _as_bool(v: Any, key: str) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.lower() in ("true", "false", "1", "0"):
        return v.lower() in ("true", "1")
    if isinstance(v, int) and v in (0, 1):
        return bool(v)
    raise ValueError(f"'{key}' must be a boolean")


def _parse_date(value: str, key: str) -> datetime.date:
    try:
        return datetime.datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"'{key}' must be a date in YYYY-MM-DD format, got {value!r}")


def validate_order_dict(d: Dict[str, Any]) -> OrderCommand:
    """Validate an order request and return an OrderCommand.

    Raises ValueError with a clear message on validation failure.
    """
    if not isinstance(d, dict):
        raise ValueError("order must be an object")

    symbol = validate_symbol(_require_str(d, "symbol"))

    operation = str(d.get("operation") or "").strip().upper()
    if operation not in ORDER_OPERATIONS:
        raise ValueError(f"'operation' must be one of {', '.join(ORDER_OPERATIONS)}")

    if d.get("lots") is None:
        raise ValueError("'lots' is required")
    lots = _optional_float(d, "lots")
    if lots <= 0:
        raise ValueError("'lots' must be > 0")

    comment = d.get("comment") or ""
    if not isinstance(comment, str):
        raise ValueError("'comment' must be a string if provided")

    return OrderCommand(
        symbol=symbol,
        operation=operation,
        lots=lots,
        price=_optional_float(d, "price"),
        stop_loss=_optional_float(d, "stop_loss"),
        take_profit=_optional_float(d, "take_profit"),
        comment=comment,
    )


def validate_close_dict(d: Dict[str, Any]) -> CloseCommand:
    if not isinstance(d, dict):
        raise ValueError("close request must be an object")
    ticket = d.get("ticket")
    if ticket is None or ticket == "" or isinstance(ticket, bool):
        raise ValueError("'ticket' is required")
    try:
        as_float = float(ticket)
    except (TypeError, ValueError):
        raise ValueError("'ticket' must be an integer")
    if not as_float.is_integer() or as_float <= 0:
        raise ValueError("'ticket' must be a positive integer")
    return CloseCommand(ticket=int(as_float))


def validate_backtest_dict(d: Dict[str, Any]) -> BacktestCommand:
    """Validate a backtest request, filling the tester defaults."""
    if not isinstance(d, dict):
        raise ValueError("backtest request must be an object")

    expert = validate_ea_name(_require_str(d, "expert"))
    symbol = validate_symbol(_require_str(d, "symbol"))

    timeframe = str(d.get("timeframe") or "").strip().upper()
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"'timeframe' must be one of {', '.join(TIMEFRAMES)}")

    from_date = _require_str(d, "from_date")
    to_date = _require_str(d, "to_date")
    if _parse_date(from_date, "from_date") > _parse_date(to_date, "to_date"):
        raise ValueError("'from_date' must not be after 'to_date'")

    initial_deposit = _optional_float(d, "initial_deposit", DEFAULT_INITIAL_DEPOSIT)
    if initial_deposit <= 0:
        raise ValueError("'initial_deposit' must be > 0")

    model = d.get("model") or DEFAULT_MODEL
    if model not in TEST_MODELS:
        raise ValueError(f"'model' must be one of {', '.join(TEST_MODELS)}")

    optimization = d.get("optimization")
    optimization = False if optimization is None else _as_bool(optimization, "optimization")

    parameters = d.get("parameters")
    if parameters is None:
        parameters = {}
    if not isinstance(parameters, dict):
        raise ValueError("'parameters' must be an object if provided")

    return BacktestCommand(
        expert=expert,
        symbol=symbol,
        timeframe=timeframe,
        from_date=from_date,
        to_date=to_date,
        initial_deposit=initial_deposit,
        model=model,
        optimization=optimization,
        parameters=parameters,
    )


def validate_ea_name(name: Any) -> str:
    """Return a plain EA file stem or raise ValueError.

    A trailing `.mq4` is dropped so callers may pass either form.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError("'ea_name' is required and must be a non-empty string")
    name = name.strip()
    if name.lower().endswith(".mq4"):
        name = name[:-4]
    if not name or ".." in name or not _EA_NAME_RE.match(name):
        raise ValueError(f"Invalid EA name: {name!r}")
    return name


def validate_symbol(symbol: str) -> str:
    if not re.match(r"^[A-Za-z0-9._#\-]+$", symbol) or ".." in symbol:
        raise ValueError(f"Invalid symbol: {symbol!r}")
    return symbol


# ---------------------------------------------------------------------------
# Flat text formats
# ---------------------------------------------------------------------------

def parse_kv_text(text: str) -> Dict[str, str]:
    """Parse `key=value` lines. Lines without a key or value are skipped."""
    data: Dict[str, str] = {}
    for line in text.splitlines():
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        k, v = k.strip(), v.strip()
        if k and v:
            data[k] = v
    return data


def parse_kv_blocks(text: str, separator: str = BLOCK_SEPARATOR) -> List[Dict[str, str]]:
    """Parse repeated `key=value` blocks separated by `separator` lines."""
    records: List[Dict[str, str]] = []
    current: List[str] = []
    for line in text.splitlines() + [separator]:
        if line.strip() == separator:
            block = parse_kv_text("\n".join(current))
            if block:
                records.append(block)
            current = []
        else:
            current.append(line)
    return records


def parse_experts_list(text: str) -> List[Dict[str, str]]:
    experts: List[Dict[str, str]] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split("|")]
        experts.append({
            "name": parts[0],
            "description": parts[1] if len(parts) > 1 else "",
            "modified": parts[2] if len(parts) > 2 else "",
        })
    return experts


def format_kv(data: Dict[str, Any]) -> str:
    return "\n".join(f"{k}={_flat_value(v)}" for k, v in data.items())


def format_kv_blocks(records: List[Dict[str, Any]], separator: str = BLOCK_SEPARATOR) -> str:
    return f"\n{separator}\n".join(format_kv(r) for r in records)


def _flat_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def decode_result(text: str) -> Dict[str, Any]:
    """Decode a result file written by the EA.

    JSON objects are decoded with json.loads; anything else is read as
    flat `key=value` lines. Raises ValueError on malformed JSON.
    """
    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            obj = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid json: {e}")
        if not isinstance(obj, dict):
            raise ValueError("result must be a JSON object")
        return obj
    return parse_kv_text(stripped)


def extract_json_value(text: str, key: str) -> str:
    """Return the raw value token for `key` in single-line JSON `text`.

    Mirrors the scanner the EA uses: numbers come back exactly as written
    ("0.10" stays "0.10"), quoted strings are unescaped, and a missing key
    yields "" rather than an error. Nested objects and arrays are not
    supported.
    """
    marker = f'"{key}"'
    start = text.find(marker)
    while start != -1:
        pos = start + len(marker)
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos < len(text) and text[pos] == ":":
            pos += 1
            while pos < len(text) and text[pos].isspace():
                pos += 1
            if pos < len(text) and text[pos] == '"':
                return _read_quoted(text, pos + 1)
            end = pos
            while end < len(text) and text[end] not in ",}]" and not text[end].isspace():
                end += 1
            return text[pos:end]
        start = text.find(marker, start + 1)
    return ""


def _read_quoted(text: str, pos: int) -> str:
    out: List[str] = []
    while pos < len(text):
        ch = text[pos]
        if ch == "\\" and pos + 1 < len(text):
            out.append(text[pos + 1])
            pos += 2
            continue
        if ch == '"':
            break
        out.append(ch)
        pos += 1
    return "".join(out)


def parse_compile_log(text: str) -> Tuple[int, int]:
    """Return (errors, warnings) from a MetaEditor compile log."""
    errors = _ERRORS_RE.search(text)
    warnings = _WARNINGS_RE.search(text)
    return (int(errors.group(1)) if errors else 0, int(warnings.group(1)) if warnings else 0)


__all__ = [
    "ACTION_PLACE_ORDER",
    "ACTION_CLOSE_POSITION",
    "ACTION_RUN_BACKTEST",
    "ACTION_UPLOAD_EA",
    "ACTION_COMPILE_EA",
    "ORDER_OPERATIONS",
    "TIMEFRAMES",
    "TEST_MODELS",
    "OrderCommand",
    "CloseCommand",
    "BacktestCommand",
    "validate_order_dict",
    "validate_close_dict",
    "validate_backtest_dict",
    "validate_ea_name",
    "validate_symbol",
    "parse_kv_text",
    "parse_kv_blocks",
    "parse_experts_list",
    "format_kv",
    "format_kv_blocks",
    "decode_result",
    "extract_json_value",
    "parse_compile_log",
]
