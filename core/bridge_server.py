"""
FastAPI HTTP Bridge for the MT4 terminal
========================================

This server runs on the machine hosting MetaTrader 4 and relays HTTP
requests to the terminal through files in its data directory:
- GET  /api/health, /api/account, /api/market/{symbol}, /api/positions,
       /api/history?days=N, /api/experts
- POST /api/order, /api/close, /api/backtest
- GET  /api/backtest/results[?detailed=true], /api/backtest/status
- POST /api/ea/upload, /api/ea/compile
- GET  /api/ea/list, /api/ea/metaeditor

Authentication:
- Optional shared token: when BRIDGE_TOKEN is set every endpoint except
  /api/health requires a matching X-Bridge-Token header.

Usage:
    env MT4_DATA_PATH=... python -m uvicorn core.bridge_server:app --host 0.0.0.0 --port 8080
"""
from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.bridge.config import BridgeConfig
from src.bridge.mt4_bridge import MT4Bridge
from src.bridge.terminal import BridgeError

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": message, "timestamp": _timestamp()}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "Invalid request: " + "; ".join(parts)


def create_app(config: Optional[BridgeConfig] = None, bridge: Optional[MT4Bridge] = None) -> FastAPI:
    """Build the bridge app around an explicit config (env when omitted)."""
    config = config or BridgeConfig.from_env()
    bridge = bridge or MT4Bridge(config)

    app = FastAPI(
        title="MT4 HTTP Bridge",
        description="File-polling bridge between HTTP clients and MetaTrader 4",
        version="1.0.0",
    )
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.config = config
    app.state.bridge = bridge

    def _require_token(x_bridge_token: Optional[str] = Header(default=None)) -> None:
        if not config.token:
            return
        if not x_bridge_token:
            raise HTTPException(status_code=401, detail="missing_token")
        if not hmac.compare_digest(x_bridge_token, config.token):
            logger.error("Invalid bridge token presented")
            raise HTTPException(status_code=403, detail="invalid_token")

    guarded = [Depends(_require_token)]

    # ========================================================================
    # Exception handlers
    # ========================================================================

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(exc.status_code, str(exc), mt4_path=str(config.data_path))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    # ========================================================================
    # Status and snapshots
    # ========================================================================

    @app.get("/api/health")
    def health():
        """Health check endpoint - no authentication required."""
        return bridge.health()

    @app.get("/api/account", dependencies=guarded)
    def account():
        return bridge.account_info()

    @app.get("/api/market/{symbol}", dependencies=guarded)
    def market(symbol: str):
        return bridge.market_data(symbol)

    @app.get("/api/positions", dependencies=guarded)
    def positions():
        return bridge.positions()

    @app.get("/api/history", dependencies=guarded)
    def history(days: int = Query(default=7)):
        return bridge.history(days)

    @app.get("/api/experts", dependencies=guarded)
    def experts():
        return bridge.experts()

    # ========================================================================
    # Commands
    # ========================================================================

    @app.post("/api/order", dependencies=guarded)
    def order(payload: Dict[str, Any] = Body(default={})):
        """Write an order command and wait briefly for the EA's result."""
        return bridge.place_order(payload)

    @app.post("/api/close", dependencies=guarded)
    def close(payload: Dict[str, Any] = Body(default={})):
        return bridge.close_position(payload)

    @app.post("/api/backtest", dependencies=guarded)
    def backtest(payload: Dict[str, Any] = Body(default={})):
        return bridge.run_backtest(payload)

    @app.get("/api/backtest/results", dependencies=guarded)
    def backtest_results(detailed: bool = Query(default=False)):
        return bridge.backtest_results(detailed)

    @app.get("/api/backtest/status", dependencies=guarded)
    def backtest_status():
        return bridge.backtest_status()

    # ========================================================================
    # Expert Advisors
    # ========================================================================

    @app.post("/api/ea/upload", dependencies=guarded)
    def ea_upload(payload: Dict[str, Any] = Body(default={})):
        return bridge.upload_ea(payload.get("ea_name"), payload.get("ea_content"))

    @app.post("/api/ea/compile", dependencies=guarded)
    def ea_compile(payload: Dict[str, Any] = Body(default={})):
        return bridge.compile_ea(payload.get("ea_name"))

    @app.get("/api/ea/list", dependencies=guarded)
    def ea_list():
        return bridge.list_eas()

    @app.get("/api/ea/metaeditor", dependencies=guarded)
    def ea_metaeditor():
        return bridge.metaeditor_status()

    # ========================================================================
    # Startup
    # ========================================================================

    @app.on_event("startup")
    async def startup_event():
        logger.info("=" * 60)
        logger.info("MT4 HTTP Bridge Starting")
        logger.info("=" * 60)
        logger.info(f"MT4 data path: {config.data_path}")
        logger.info(f"Terminal directory: {config.terminal_dir or 'auto-discover'}")
        logger.info(f"Token configured: {bool(config.token)}")
        logger.info("Make sure MT4 is running with the bridge EA attached to a chart")
        logger.info("=" * 60)

    return app


app = create_app()
