"""
Configuration for the MT4 HTTP bridge (terminal side).

Values come from environment variables (a `.env` file in the working
directory is honoured via python-dotenv) and are collected into a
`BridgeConfig` instance that is passed explicitly to the bridge, the
compiler and the HTTP app. Nothing here is read at import time.

Environment:
  - MT4_DATA_PATH: folder holding the terminal instance directories
    (default: %APPDATA%/MetaQuotes/Terminal)
  - MT4_TERMINAL_DIR: exact terminal instance directory (skips discovery)
  - MT4_METAEDITOR_PATH / MT4_INSTALL_PATH: metaeditor executable
  - MT4_COMPILE_TIMEOUT: seconds before a compile is killed (30)
  - BRIDGE_RESULT_TIMEOUT, BRIDGE_POLL_INITIAL, BRIDGE_POLL_MAX: result
    polling budget in seconds (3.0, 0.1, 1.0)
  - HOST, PORT: listen address (0.0.0.0:8080)
  - BRIDGE_TOKEN: optional shared token required in X-Bridge-Token
  - LOG_LEVEL: logging level name (INFO)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv


DEFAULT_METAEDITOR_PATHS: Tuple[str, ...] = (
    "C:\\Program Files (x86)\\MetaTrader 4\\metaeditor.exe",
    "C:\\Program Files\\MetaTrader 4\\metaeditor.exe",
)


def _default_data_path() -> Path:
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "MetaQuotes" / "Terminal"
    return Path.home() / "AppData" / "Roaming" / "MetaQuotes" / "Terminal"


def env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def env_positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env_float(env, name, default)
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value:g}")
    return value


@dataclass
class PollPolicy:
    """Bounded exponential backoff used while waiting for a result file."""

    timeout: float = 3.0
    initial_delay: float = 0.1
    max_delay: float = 1.0
    backoff: float = 2.0


@dataclass
class BridgeConfig:
    data_path: Path = field(default_factory=_default_data_path)
    terminal_dir: Optional[Path] = None
    metaeditor_paths: Tuple[Path, ...] = tuple(Path(p) for p in DEFAULT_METAEDITOR_PATHS)
    compile_timeout: float = 30.0
    poll: PollPolicy = field(default_factory=PollPolicy)
    host: str = "0.0.0.0"
    port: int = 8080
    token: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """Build a config from `env` (defaults to os.environ after load_dotenv)."""
        if env is None:
            load_dotenv()
            env = os.environ

        data_path = Path(env["MT4_DATA_PATH"]) if env.get("MT4_DATA_PATH") else _default_data_path()
        terminal_dir = Path(env["MT4_TERMINAL_DIR"]) if env.get("MT4_TERMINAL_DIR") else None

        editors = [env.get("MT4_METAEDITOR_PATH"), env.get("MT4_INSTALL_PATH")]
        metaeditor_paths = tuple(Path(p) for p in editors if p) or tuple(Path(p) for p in DEFAULT_METAEDITOR_PATHS)

        poll = PollPolicy(
            timeout=env_positive_float(env, "BRIDGE_RESULT_TIMEOUT", 3.0),
            initial_delay=env_positive_float(env, "BRIDGE_POLL_INITIAL", 0.1),
            max_delay=env_positive_float(env, "BRIDGE_POLL_MAX", 1.0),
        )
        if poll.max_delay < poll.initial_delay:
            raise ValueError("BRIDGE_POLL_MAX must not be smaller than BRIDGE_POLL_INITIAL")

        return cls(
            data_path=data_path,
            terminal_dir=terminal_dir,
            metaeditor_paths=metaeditor_paths,
            compile_timeout=env_positive_float(env, "MT4_COMPILE_TIMEOUT", 30.0),
            poll=poll,
            host=env.get("HOST", "0.0.0.0") or "0.0.0.0",
            port=env_int(env, "PORT", 8080),
            token=env.get("BRIDGE_TOKEN", ""),
            log_level=env.get("LOG_LEVEL", "INFO") or "INFO",
        )


__all__ = ["BridgeConfig", "PollPolicy", "env_float", "env_int", "env_positive_float", "DEFAULT_METAEDITOR_PATHS"]
