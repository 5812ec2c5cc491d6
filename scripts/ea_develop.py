"""
EA development helper for the local working directory.

Usage:
  python scripts/ea_develop.py list
  python scripts/ea_develop.py new MyStrategy SimpleMA_Template.mq4
  python scripts/ea_develop.py sync MyStrategy
  python scripts/ea_develop.py log [MyStrategy]
  python scripts/ea_develop.py clean --days 7

`sync` uploads through the HTTP bridge (MT4_HOST / MT4_PORT); when the
bridge is unreachable it prints manual deployment steps instead.
"""
from pathlib import Path
import sys
import argparse

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from src.tools.config import ToolConfig
from src.tools.handlers import ToolDispatcher
from src.tools.workspace import EA_FOLDERS, EAWorkspace
from src.utils.logging_utils import configure_logging


def cmd_list(ws: EAWorkspace, args: argparse.Namespace) -> int:
    print("=== EA Development Status ===")
    for folder in EA_FOLDERS:
        print(f"\n{folder}:")
        for item in ws.list_eas(folder):
            print(f"  {item['file']} ({item['size']} bytes, {item['modified']})")
    print("\nRecent logs:")
    for log in ws.recent_logs(5):
        print(f"  {log.name}")
    return 0


def cmd_new(ws: EAWorkspace, args: argparse.Namespace) -> int:
    path = ws.new_from_template(args.name, args.template)
    print(f"Created new EA: {path.name} from template {args.template}")
    print(f"Edit the file at: {path}")
    return 0


def sync_and_compile(dispatcher: ToolDispatcher, source: Path, name: str, compile_after: bool) -> int:
    """Upload `source`; compile only when the upload went through."""
    text = dispatcher.call("sync_ea_from_file", {"file_path": str(source), "ea_name": name})
    print(text)
    synced = text.startswith(f"EA '{name}' synced to MT4.")
    if compile_after:
        if not synced:
            print("Skipping compilation: the EA was not uploaded.")
            return 1
        print(dispatcher.call("compile_ea", {"ea_name": name}))
    return 0 if synced else 1


def cmd_sync(ws: EAWorkspace, args: argparse.Namespace) -> int:
    source = ws.source_path(args.name)
    if not source.is_file():
        print(f"EA {source.name} not found in {source.parent}")
        return 1
    dispatcher = ToolDispatcher(args.config, workspace=ws)
    return sync_and_compile(dispatcher, source, source.stem, args.compile)


def cmd_log(ws: EAWorkspace, args: argparse.Namespace) -> int:
    if args.name:
        text = ws.read_log(args.name)
        if text is None:
            print(f"Log file {args.name}.log not found!")
            return 1
        print(text)
        return 0
    for log in ws.recent_logs(3):
        print(f"=== {log.name} ===")
        print("\n".join(log.read_text(encoding="utf-8").splitlines()[-10:]))
        print()
    return 0


def cmd_clean(ws: EAWorkspace, args: argparse.Namespace) -> int:
    removed = ws.clean_logs(args.days)
    print(f"Removed {len(removed)} log file(s) older than {args.days:g} days.")
    return 0


def main() -> int:
    config = ToolConfig.from_env()
    parser = argparse.ArgumentParser(description="EA development helper")
    parser.add_argument("--root", type=str, default=str(config.ea_root), help="EA working directory")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="Show all EAs and their status")

    p_new = sub.add_parser("new", help="Create a new EA from a template")
    p_new.add_argument("name")
    p_new.add_argument("template", nargs="?", default="SimpleMA_Template.mq4")

    p_sync = sub.add_parser("sync", help="Upload an active EA through the bridge")
    p_sync.add_argument("name")
    p_sync.add_argument("--compile", action="store_true", help="Compile after a successful upload")

    p_log = sub.add_parser("log", help="Show a compile log (or the most recent ones)")
    p_log.add_argument("name", nargs="?")

    p_clean = sub.add_parser("clean", help="Delete old compile logs")
    p_clean.add_argument("--days", type=float, default=7.0)

    args = parser.parse_args()
    args.config = config
    configure_logging(config.log_level)

    ws = EAWorkspace(Path(args.root))
    ws.ensure()
    commands = {"list": cmd_list, "new": cmd_new, "sync": cmd_sync, "log": cmd_log, "clean": cmd_clean}
    return commands[args.command](ws, args)


if __name__ == "__main__":
    sys.exit(main())
