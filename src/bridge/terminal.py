"""
Filesystem view into an MT4 terminal data directory.

MT4 keeps one data folder per installation under
`%APPDATA%/MetaQuotes/Terminal/<32-char id>/`. The bridge EA reads and
writes its exchange files under `MQL4/Files`, and expert sources live in
`MQL4/Experts`.

`TerminalFiles` resolves a single terminal instance (explicitly
configured, or the first lexical 32-char folder containing `MQL4`) and
performs all reads and writes against it. Writes are atomic: a temp file
in the same folder is renamed into place so the EA never reads a partial
command.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

TERMINAL_ID_LENGTH = 32


class BridgeError(RuntimeError):
    """Failure of a bridge operation, carrying the HTTP status to report."""

    status_code = 500


class TerminalNotFoundError(BridgeError):
    status_code = 404


class FileMissingError(BridgeError):
    status_code = 404


def _check_name(name: str) -> str:
    if not name or "/" in name or "\\" in name or ".." in name:
        raise ValueError(f"Invalid file name: {name!r}")
    return name


def atomic_write_text(path: Path, text: str) -> Path:
    """Write `text` to `path` through a temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(mode="w", encoding="utf-8", delete=False, dir=str(path.parent), prefix=path.name + ".", suffix=".tmp") as tf:
            tf.write(text)
            tf.flush()
            os.fsync(tf.fileno())
            tmp_path = Path(tf.name)
        os.replace(str(tmp_path), str(path))
    except Exception:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise
    return path


def file_signature(path: Path) -> Optional[Tuple[int, int]]:
    """Return (mtime_ns, size) for `path`, or None if it does not exist."""
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_mtime_ns, st.st_size)


class TerminalFiles:
    """Resolve and access one MT4 terminal instance directory."""

    def __init__(self, data_path: Path, terminal_dir: Optional[Path] = None) -> None:
        self.data_path = Path(data_path)
        self.terminal_dir = Path(terminal_dir) if terminal_dir is not None else None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------
    def candidates(self) -> List[Path]:
        """Terminal folders under the data path that contain MQL4, sorted."""
        if not self.data_path.is_dir():
            raise TerminalNotFoundError(f"MT4 data path not found: {self.data_path}")
        return sorted(
            p for p in self.data_path.iterdir()
            if p.is_dir() and len(p.name) == TERMINAL_ID_LENGTH and (p / "MQL4").is_dir()
        )

    def resolve(self) -> Path:
        if self.terminal_dir is not None:
            if not (self.terminal_dir / "MQL4").is_dir():
                raise TerminalNotFoundError(f"Configured terminal directory has no MQL4 folder: {self.terminal_dir}")
            return self.terminal_dir

        found = self.candidates()
        if not found:
            raise TerminalNotFoundError(f"No MT4 terminal folder found in {self.data_path}")
        if len(found) > 1:
            logger.warning(
                f"{len(found)} terminal folders found, using {found[0].name}; "
                "set MT4_TERMINAL_DIR to choose explicitly"
            )
        return found[0]

    def mql4_dir(self) -> Path:
        return self.resolve() / "MQL4"

    def files_dir(self) -> Path:
        return self.mql4_dir() / "Files"

    def experts_dir(self) -> Path:
        path = self.mql4_dir() / "Experts"
        if not path.is_dir():
            raise TerminalNotFoundError(f"No MT4 Experts directory found in {path.parent}")
        return path

    def include_dir(self) -> Path:
        return self.mql4_dir() / "Include"

    # ------------------------------------------------------------------
    # Exchange files
    # ------------------------------------------------------------------
    def path_for(self, name: str) -> Path:
        parts = name.split("/")
        for part in parts:
            _check_name(part)
        return self.files_dir().joinpath(*parts)

    def read_file(self, name: str) -> str:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            raise FileMissingError(f"File {name} not found in terminal folder {path.parent}")
        except OSError as e:
            raise BridgeError(f"Failed to read MT4 file {name}: {e}")

    def write_file(self, name: str, content: str) -> Path:
        path = self.path_for(name)
        try:
            atomic_write_text(path, content)
        except OSError as e:
            raise BridgeError(f"Failed to write MT4 file {name}: {e}")
        logger.debug(f"Wrote {path} ({len(content)} bytes)")
        return path

    def signature(self, name: str) -> Optional[Tuple[int, int]]:
        return file_signature(self.path_for(name))

    # ------------------------------------------------------------------
    # Experts
    # ------------------------------------------------------------------
    def list_ea_files(self) -> List[Dict[str, Any]]:
        experts = self.experts_dir()
        files: List[Dict[str, Any]] = []
        for p in sorted(experts.iterdir()):
            suffix = p.suffix.lower()
            if not p.is_file() or suffix not in (".mq4", ".ex4"):
                continue
            st = p.stat()
            files.append({
                "name": p.name,
                "path": str(p),
                "size": st.st_size,
                "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
                "type": "source" if suffix == ".mq4" else "compiled",
            })
        return files


__all__ = [
    "BridgeError",
    "TerminalNotFoundError",
    "FileMissingError",
    "TerminalFiles",
    "atomic_write_text",
    "file_signature",
    "TERMINAL_ID_LENGTH",
]
