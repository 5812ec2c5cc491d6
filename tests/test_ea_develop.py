import importlib.util
from pathlib import Path

from src.tools.bridge_client import BridgeClientError
from src.tools.config import ToolConfig
from src.tools.handlers import ToolDispatcher
from src.tools.workspace import EAWorkspace


SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "ea_develop.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("ea_develop", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class StubClient:
    def __init__(self, upload) -> None:
        self.upload = upload
        self.calls = []

    def call(self, endpoint, data=None, *, timeout=None):
        self.calls.append(endpoint)
        if endpoint == "/api/ea/upload":
            if isinstance(self.upload, Exception):
                raise self.upload
            return self.upload
        return {"success": True, "compiled": True, "errors": 0, "warnings": 0, "log": ""}


def _setup(tmp_path: Path, upload):
    ws = EAWorkspace(tmp_path / "ea")
    ws.ensure()
    source = ws.save_source("MACross", "// code")
    client = StubClient(upload)
    dispatcher = ToolDispatcher(ToolConfig(ea_root=ws.root), client=client, workspace=ws)
    return dispatcher, client, source


def test_sync_compiles_after_upload(tmp_path: Path, capsys):
    ea_develop = _load_script()
    dispatcher, client, source = _setup(tmp_path, {"success": True, "file_path": "x", "file_size": 7})

    assert ea_develop.sync_and_compile(dispatcher, source, "MACross", True) == 0
    assert client.calls == ["/api/ea/upload", "/api/ea/compile"]
    assert "synced to MT4" in capsys.readouterr().out


def test_sync_skips_compile_when_upload_fails(tmp_path: Path, capsys):
    ea_develop = _load_script()
    dispatcher, client, source = _setup(tmp_path, BridgeClientError("Failed to connect to MT4"))

    assert ea_develop.sync_and_compile(dispatcher, source, "MACross", True) == 1
    assert client.calls == ["/api/ea/upload"]
    out = capsys.readouterr().out
    assert "Manual deployment" in out
    assert "Skipping compilation" in out


def test_rejected_upload_without_compile_flag_fails(tmp_path: Path):
    ea_develop = _load_script()
    dispatcher, client, source = _setup(tmp_path, {"success": False, "error": "disk full"})

    assert ea_develop.sync_and_compile(dispatcher, source, "MACross", False) == 1
    assert client.calls == ["/api/ea/upload"]
