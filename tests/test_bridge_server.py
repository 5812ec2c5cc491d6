"""HTTP-level tests for the FastAPI bridge app against a simulated terminal."""
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from core.bridge_server import create_app
from src.bridge.config import BridgeConfig, PollPolicy
from src.bridge.mt4_bridge import MT4Bridge
from src.bridge.simulator import TerminalSimulator


def _client(tmp_path: Path, token: str = "", answer: bool = True):
    sim = TerminalSimulator.create(tmp_path)
    config = BridgeConfig(
        data_path=tmp_path,
        token=token,
        poll=PollPolicy(timeout=0.2, initial_delay=0.01, max_delay=0.05),
        metaeditor_paths=(tmp_path / "missing" / "metaeditor.exe",),
    )
    sleep = (lambda s: sim.process_once()) if answer else (lambda s: None)
    bridge = MT4Bridge(config, sleep=sleep)
    return TestClient(create_app(config, bridge)), sim


def test_health_and_account(tmp_path: Path):
    client, sim = _client(tmp_path)
    sim.write_account({"login": 1000001, "balance": "10000.00"})

    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert "ea_compilation" in health["features"]
    assert health["terminal_dir"].endswith(sim.terminal_dir.name)

    r = client.get("/api/account")
    assert r.status_code == 200
    assert r.json() == {"login": "1000001", "balance": "10000.00"}


def test_missing_snapshot_is_404_with_error_shape(tmp_path: Path):
    client, _ = _client(tmp_path)
    r = client.get("/api/positions")
    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert "positions.txt" in body["error"]
    assert "timestamp" in body


def test_order_roundtrip(tmp_path: Path):
    client, _ = _client(tmp_path)
    r = client.post("/api/order", json={"symbol": "EURUSD", "operation": "BUY", "lots": 0.1})
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["symbol"] == "EURUSD"
    assert result["lots"] == "0.10"


def test_order_pending_ack(tmp_path: Path):
    client, _ = _client(tmp_path, answer=False)
    r = client.post("/api/close", json={"ticket": 55})
    assert r.status_code == 200
    assert r.json() == {"success": True, "pending": True, "message": "Close command sent to MT4"}


def test_validation_errors_are_400(tmp_path: Path):
    client, _ = _client(tmp_path)
    r = client.post("/api/order", json={"symbol": "EURUSD", "operation": "BUY"})
    assert r.status_code == 400
    assert "lots" in r.json()["error"]

    r = client.post("/api/ea/upload", json={"ea_name": "MACross"})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing ea_name or ea_content"

    r = client.get("/api/history", params={"days": 0})
    assert r.status_code == 400


def test_unparseable_requests_use_error_shape(tmp_path: Path):
    client, _ = _client(tmp_path)

    r = client.get("/api/history", params={"days": "abc"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert "days" in body["error"]
    assert "timestamp" in body

    r = client.post("/api/order", json=[1, 2])
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert "body" in r.json()["error"]


def test_symbol_with_hash_reaches_market_file(tmp_path: Path):
    client, sim = _client(tmp_path)
    sim.write_market_data("#US30", {"bid": "39000.5"})
    r = client.get("/api/market/%23US30")
    assert r.status_code == 200
    assert r.json() == {"bid": "39000.5"}


def test_backtest_and_status(tmp_path: Path):
    client, sim = _client(tmp_path)
    r = client.post("/api/backtest", json={
        "expert": "MACross",
        "symbol": "EURUSD",
        "timeframe": "H1",
        "from_date": "2024-01-01",
        "to_date": "2024-02-01",
    })
    assert r.status_code == 200
    assert r.json()["message"] == "Backtest command sent to MT4"

    assert client.get("/api/backtest/status").status_code == 404
    sim.process_once()
    assert client.get("/api/backtest/status").json()["expert"] == "MACross"


def test_ea_upload_list_and_compile_errors(tmp_path: Path):
    client, _ = _client(tmp_path)
    r = client.post("/api/ea/upload", json={"ea_name": "MACross", "ea_content": "// code"})
    assert r.status_code == 200
    assert r.json()["file_size"] == len("// code")

    assert client.get("/api/ea/list").json()["count"] == 1

    r = client.post("/api/ea/compile", json={"ea_name": "Unknown"})
    assert r.status_code == 404

    r = client.post("/api/ea/compile", json={"ea_name": "MACross"})
    assert r.status_code == 404
    assert "MetaEditor not found" in r.json()["error"]

    assert client.get("/api/ea/metaeditor").status_code == 404


@pytest.mark.parametrize("headers, status", [({}, 401), ({"X-Bridge-Token": "wrong"}, 403)])
def test_token_required(tmp_path: Path, headers, status):
    client, sim = _client(tmp_path, token="s3cret")
    sim.write_account({"balance": "1"})

    assert client.get("/api/health").status_code == 200
    r = client.get("/api/account", headers=headers)
    assert r.status_code == status
    assert r.json()["success"] is False

    r = client.get("/api/account", headers={"X-Bridge-Token": "s3cret"})
    assert r.status_code == 200
