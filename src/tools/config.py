"""Configuration for the MCP tool front (client side of the HTTP bridge)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from src.bridge.config import env_float, env_int


@dataclass
class ToolConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    reports_path: Path = Path("/tmp/mt4_reports")
    timeout: float = 10.0
    upload_timeout: float = 30.0
    compile_timeout: float = 45.0
    ea_root: Path = Path("ea-strategies")
    token: str = ""
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ToolConfig":
        if env is None:
            load_dotenv()
            env = os.environ
        return cls(
            host=env.get("MT4_HOST") or "127.0.0.1",
            port=env_int(env, "MT4_PORT", 8080),
            reports_path=Path(env.get("MT4_REPORTS_PATH") or "/tmp/mt4_reports"),
            timeout=env_float(env, "MT4_HTTP_TIMEOUT", 10.0),
            ea_root=Path(env.get("MT4_EA_ROOT") or "ea-strategies"),
            token=env.get("BRIDGE_TOKEN", ""),
            log_level=env.get("LOG_LEVEL", "INFO") or "INFO",
        )


__all__ = ["ToolConfig"]
