"""Tests for terminal discovery and atomic exchange-file writes."""
from pathlib import Path

import pytest

from src.bridge.terminal import (
    FileMissingError,
    TerminalFiles,
    TerminalNotFoundError,
    atomic_write_text,
    file_signature,
)

ID_A = "A" * 32
ID_B = "B" * 32


def _make_terminal(data_path: Path, terminal_id: str) -> Path:
    term = data_path / terminal_id
    (term / "MQL4" / "Files").mkdir(parents=True)
    (term / "MQL4" / "Experts").mkdir(parents=True)
    return term


def test_discovery_picks_first_lexical_terminal(tmp_path: Path):
    _make_terminal(tmp_path, ID_B)
    _make_terminal(tmp_path, ID_A)
    (tmp_path / "Common").mkdir()
    (tmp_path / ("C" * 32)).mkdir()  # no MQL4 folder

    files = TerminalFiles(tmp_path)
    assert [p.name for p in files.candidates()] == [ID_A, ID_B]
    assert files.resolve().name == ID_A
    assert files.files_dir() == tmp_path / ID_A / "MQL4" / "Files"


def test_explicit_terminal_dir_wins(tmp_path: Path):
    _make_terminal(tmp_path, ID_A)
    chosen = _make_terminal(tmp_path, ID_B)
    assert TerminalFiles(tmp_path, terminal_dir=chosen).resolve() == chosen


def test_terminal_not_found(tmp_path: Path):
    with pytest.raises(TerminalNotFoundError):
        TerminalFiles(tmp_path / "missing").resolve()
    with pytest.raises(TerminalNotFoundError):
        TerminalFiles(tmp_path).resolve()
    with pytest.raises(TerminalNotFoundError):
        TerminalFiles(tmp_path, terminal_dir=tmp_path / ID_A).resolve()


def test_read_write_roundtrip_and_missing(tmp_path: Path):
    _make_terminal(tmp_path, ID_A)
    files = TerminalFiles(tmp_path)

    files.write_file("account_info.txt", "balance=100\n\n")
    assert files.read_file("account_info.txt") == "balance=100"
    assert files.signature("account_info.txt") is not None

    with pytest.raises(FileMissingError):
        files.read_file("positions.txt")
    assert files.signature("positions.txt") is None


def test_path_for_rejects_traversal(tmp_path: Path):
    _make_terminal(tmp_path, ID_A)
    files = TerminalFiles(tmp_path)
    assert files.path_for("mt4_reports/backtest_status.json").name == "backtest_status.json"
    for bad in ("../secret.txt", "a\\b.txt", ""):
        with pytest.raises(ValueError):
            files.path_for(bad)


def test_atomic_write_leaves_no_temp_files(tmp_path: Path):
    target = tmp_path / "sub" / "order_commands.txt"
    atomic_write_text(target, '{"action":"PLACE_ORDER"}')
    atomic_write_text(target, '{"action":"CLOSE_POSITION"}')

    assert target.read_text(encoding="utf-8") == '{"action":"CLOSE_POSITION"}'
    assert [p.name for p in target.parent.iterdir()] == ["order_commands.txt"]
    sig = file_signature(target)
    assert sig is not None and sig[1] == len('{"action":"CLOSE_POSITION"}')


def test_list_ea_files(tmp_path: Path):
    term = _make_terminal(tmp_path, ID_A)
    experts = term / "MQL4" / "Experts"
    (experts / "MACross.mq4").write_text("// source", encoding="utf-8")
    (experts / "MACross.ex4").write_bytes(b"\x00\x01")
    (experts / "notes.txt").write_text("ignored", encoding="utf-8")

    files = TerminalFiles(tmp_path).list_ea_files()
    assert [(f["name"], f["type"]) for f in files] == [("MACross.ex4", "compiled"), ("MACross.mq4", "source")]
    assert files[1]["size"] == len("// source")
