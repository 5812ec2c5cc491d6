"""
MetaEditor command-line compilation of MQL4 expert sources.

MetaEditor is invoked as

    metaeditor.exe /compile:<source.mq4> /log:<log file> /inc:<MQL4/Include>

It writes its log as UTF-16 with a BOM on most installations; counts of
errors and warnings are parsed from that log. A compile that outlives the
timeout is killed together with everything it started: the compiler runs
in its own process group (session on POSIX) and the whole group is killed
before the launcher is reaped.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence
import logging
import os
import signal
import subprocess

from .command_codec import parse_compile_log
from .terminal import BridgeError

logger = logging.getLogger(__name__)


class CompilerNotFoundError(BridgeError):
    status_code = 404


class CompileTimeoutError(BridgeError):
    status_code = 504


@dataclass
class CompileResult:
    success: bool
    compiled: bool
    exit_code: Optional[int]
    errors: int
    warnings: int
    log: str
    stdout: str
    stderr: str
    ex4_path: Optional[str]
    log_file: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def find_metaeditor(paths: Iterable[Path]) -> Path:
    searched = []
    for p in paths:
        p = Path(p)
        searched.append(str(p))
        if p.is_file():
            return p
    raise CompilerNotFoundError(
        "MetaEditor not found. Set MT4_METAEDITOR_PATH (searched: " + ", ".join(searched) + ")"
    )


def read_log_text(path: Path) -> str:
    """Read a MetaEditor log, honouring a UTF-16 BOM."""
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        return "Compilation log not available"
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16", errors="replace")
    return raw.decode("utf-8-sig", errors="replace")


def compile_command(metaeditor: Path, source: Path, log_file: Path, include_dir: Path) -> Sequence[str]:
    return [
        str(metaeditor),
        f"/compile:{source}",
        f"/log:{log_file}",
        f"/inc:{include_dir}",
    ]


def _spawn(cmd: Sequence[str]) -> subprocess.Popen:
    if os.name == "nt":
        return subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            creationflags=subprocess.CREATE_NEW_PROCESS_GROUP,
        )
    return subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, start_new_session=True)


def _kill_process_tree(proc: subprocess.Popen) -> None:
    """Kill `proc` and every process it started; the caller reaps `proc`."""
    if os.name == "nt":
        subprocess.run(["taskkill", "/F", "/T", "/PID", str(proc.pid)], capture_output=True)
    else:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    proc.kill()


def compile_ea(
    source: Path,
    *,
    metaeditor_paths: Iterable[Path],
    include_dir: Path,
    timeout: float = 30.0,
) -> CompileResult:
    """Compile `source` with MetaEditor and return the parsed outcome.

    Raises CompilerNotFoundError when no MetaEditor is available,
    CompileTimeoutError when the compiler outlives `timeout`, and
    BridgeError when the process cannot be started.
    """
    source = Path(source)
    metaeditor = find_metaeditor(metaeditor_paths)
    log_file = source.with_name(f"{source.stem}_compile.log")
    cmd = compile_command(metaeditor, source, log_file, include_dir)

    logger.info(f"Starting compilation of {source.name} with {metaeditor}")
    try:
        proc = _spawn(cmd)
    except OSError as e:
        raise BridgeError(f"Failed to start MetaEditor: {e}")

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_tree(proc)
        proc.communicate()
        logger.error(f"Compilation of {source.name} killed after {timeout:g}s")
        raise CompileTimeoutError(f"Compilation timeout after {timeout:g} seconds")

    log_text = read_log_text(log_file)
    errors, warnings = parse_compile_log(log_text)
    ex4 = source.with_suffix(".ex4")
    compiled = ex4.exists()

    logger.info(
        f"Compiled {source.name}: exit={proc.returncode} errors={errors} "
        f"warnings={warnings} ex4={'yes' if compiled else 'no'}"
    )
    return CompileResult(
        success=errors == 0,
        compiled=compiled,
        exit_code=proc.returncode,
        errors=errors,
        warnings=warnings,
        log=log_text,
        stdout=stdout or "",
        stderr=stderr or "",
        ex4_path=str(ex4) if compiled else None,
        log_file=str(log_file),
    )


__all__ = [
    "CompileResult",
    "CompilerNotFoundError",
    "CompileTimeoutError",
    "compile_ea",
    "compile_command",
    "find_metaeditor",
    "read_log_text",
]
