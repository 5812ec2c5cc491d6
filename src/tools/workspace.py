"""
Local working directory for Expert Advisor development.

Layout (default root `./ea-strategies`):
  - active/     sources being developed and synced to MT4
  - templates/  starting points for new EAs
  - compiled/   sources that compiled cleanly
  - logs/       one `<name>.log` per EA with the last compile outcome

Every sync writes the local source copy and every compile writes the log,
whatever happens on the remote side.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
import time

from src.bridge.command_codec import validate_ea_name

FOLDERS = ("active", "templates", "compiled", "logs")
EA_FOLDERS = ("active", "templates", "compiled")


class EAWorkspace:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def folder(self, name: str) -> Path:
        if name not in FOLDERS:
            raise ValueError(f"Unknown folder {name!r}; expected one of {', '.join(FOLDERS)}")
        return self.root / name

    def ensure(self) -> None:
        for name in FOLDERS:
            (self.root / name).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------
    def source_path(self, ea_name: str, folder: str = "active") -> Path:
        return self.folder(folder) / f"{validate_ea_name(ea_name)}.mq4"

    def save_source(self, ea_name: str, content: str, folder: str = "active") -> Path:
        path = self.source_path(ea_name, folder)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))
        return path

    def list_eas(self, folder: str = "active") -> List[Dict[str, Any]]:
        if folder not in EA_FOLDERS:
            raise ValueError(f"Unknown EA folder {folder!r}; expected one of {', '.join(EA_FOLDERS)}")
        base = self.folder(folder)
        if not base.is_dir():
            return []
        items: List[Dict[str, Any]] = []
        for p in sorted(base.glob("*.mq4")):
            st = p.stat()
            items.append({
                "name": p.stem,
                "file": p.name,
                "path": str(p),
                "size": st.st_size,
                "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
            })
        return items

    def new_from_template(self, ea_name: str, template: str) -> Path:
        tpl = self.folder("templates") / (template if template.endswith(".mq4") else f"{template}.mq4")
        if not tpl.is_file():
            raise FileNotFoundError(f"Template {tpl.name} not found in {tpl.parent}")
        target = self.source_path(ea_name)
        if target.exists():
            raise FileExistsError(f"EA {target.name} already exists in {target.parent}")
        return self.save_source(ea_name, tpl.read_text(encoding="utf-8"))

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------
    def log_path(self, ea_name: str) -> Path:
        return self.folder("logs") / f"{validate_ea_name(ea_name)}.log"

    def write_log(self, ea_name: str, text: str) -> Path:
        path = self.log_path(ea_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def read_log(self, ea_name: str) -> Optional[str]:
        path = self.log_path(ea_name)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def recent_logs(self, limit: int = 3) -> List[Path]:
        logs = self.folder("logs")
        if not logs.is_dir():
            return []
        return sorted(logs.glob("*.log"), key=lambda p: p.stat().st_mtime, reverse=True)[:limit]

    def clean_logs(self, max_age_days: float = 7.0, now: Optional[float] = None) -> List[Path]:
        """Delete logs older than `max_age_days`; return what was removed."""
        logs = self.folder("logs")
        if not logs.is_dir():
            return []
        cutoff = (now if now is not None else time.time()) - max_age_days * 86400
        removed = []
        for p in logs.glob("*.log"):
            if p.stat().st_mtime < cutoff:
                p.unlink()
                removed.append(p)
        return removed


__all__ = ["EAWorkspace", "FOLDERS", "EA_FOLDERS"]
