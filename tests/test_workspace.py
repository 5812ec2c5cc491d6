import os
from pathlib import Path

import pytest

from src.tools.workspace import FOLDERS, EAWorkspace


def test_ensure_creates_layout(tmp_path: Path):
    ws = EAWorkspace(tmp_path / "ea")
    ws.ensure()
    assert sorted(p.name for p in (tmp_path / "ea").iterdir()) == sorted(FOLDERS)


def test_new_from_template(tmp_path: Path):
    ws = EAWorkspace(tmp_path)
    ws.ensure()
    (tmp_path / "templates" / "SimpleMA_Template.mq4").write_text("// template", encoding="utf-8")

    path = ws.new_from_template("MyStrategy", "SimpleMA_Template")
    assert path == tmp_path / "active" / "MyStrategy.mq4"
    assert path.read_text(encoding="utf-8") == "// template"
    assert ws.list_eas()[0]["name"] == "MyStrategy"

    with pytest.raises(FileExistsError):
        ws.new_from_template("MyStrategy", "SimpleMA_Template.mq4")
    with pytest.raises(FileNotFoundError):
        ws.new_from_template("Other", "Missing.mq4")


def test_logs_recent_and_clean(tmp_path: Path):
    ws = EAWorkspace(tmp_path)
    old = ws.write_log("OldEA", "old")
    new = ws.write_log("NewEA", "new")
    now = 1_700_000_000.0
    os.utime(old, (now - 10 * 86400, now - 10 * 86400))
    os.utime(new, (now - 3600, now - 3600))

    assert ws.read_log("NewEA") == "new"
    assert ws.read_log("Missing") is None
    assert ws.recent_logs(1) == [new]

    removed = ws.clean_logs(7, now=now)
    assert removed == [old]
    assert not old.exists() and new.exists()


def test_save_source_keeps_line_endings(tmp_path: Path):
    ws = EAWorkspace(tmp_path)
    content = "// one\r\n// two\n"
    path = ws.save_source("Crlf", content)
    assert path.read_bytes() == content.encode("utf-8")


def test_invalid_names_and_folders(tmp_path: Path):
    ws = EAWorkspace(tmp_path)
    with pytest.raises(ValueError):
        ws.save_source("../outside", "x")
    with pytest.raises(ValueError):
        ws.list_eas("logs")
