# PortWatch - CLI: list, watch, config, export
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from portwatch import __version__
from portwatch.config import (
    load_config,
    save_config,
    set_config_key,
    validate_config,
)
from portwatch.models import Snapshot


def _print_snapshot(snapshot: Snapshot, as_json: bool) -> None:
    if as_json:
        print(json.dumps(snapshot.to_list(), indent=2))
    else:
        print(str(snapshot))


# --- Async commands ---

async def cmd_list(config: dict[str, Any], as_json: bool) -> None:
    from portwatch.collector.ports import ListeningPortCollector
    from portwatch.poller import Poller
    poller = Poller(config, ListeningPortCollector(config))
    snapshot = await poller.check()
    _print_snapshot(snapshot, as_json)


async def cmd_watch(config: dict[str, Any], as_json: bool) -> None:
    from portwatch.collector.ports import ListeningPortCollector
    from portwatch.poller import Poller
    from portwatch.reporter.activity import ActivityLogger
    activity = ActivityLogger(config)
    await activity.start()
    poller = Poller(config, ListeningPortCollector(config), activity)

    def show(snapshot: Snapshot) -> None:
        _print_snapshot(snapshot, as_json)
        if not as_json:
            print("---", flush=True)

    poller.subscribe(show)
    try:
        await poller.run()
    finally:
        await activity.stop()


async def cmd_export_activity(config: dict[str, Any], path: str | None) -> None:
    from portwatch.reporter.activity import read_activity
    log_dir = Path(config.get("agent", {}).get("log_dir", "/var/log/portwatch"))
    act = config.get("activity", {})
    p = Path(path or act.get("file") or str(log_dir / "activity.jsonl"))
    if not p.exists():
        print("[]", file=sys.stderr)
        return
    print(json.dumps(read_activity(p), indent=2))


# --- Config commands ---

def cmd_config_show(config_path: str | None) -> None:
    """Print merged config as YAML."""
    import yaml
    config = load_config(config_path)
    print(yaml.safe_dump(config, default_flow_style=False, allow_unicode=True, sort_keys=False))


def cmd_config_validate(config_path: str | None) -> None:
    """Validate config file and print errors."""
    config = load_config(config_path)
    errs = validate_config(config)
    if not errs:
        print("Config is valid.")
        return
    for e in errs:
        print(f"Error: {e}", file=sys.stderr)
    sys.exit(1)


def cmd_config_set(config_path: str | None, key: str, value: str, output_path: str | None) -> None:
    """Set a config key (dot notation) and save."""
    path = config_path or os.environ.get("PORTWATCH_CONFIG")
    if not path or not Path(path).exists():
        print("Error: No config file found. Pass --config PATH or set PORTWATCH_CONFIG.", file=sys.stderr)
        sys.exit(1)
    path = Path(path)
    config = load_config(path)
    try:
        set_config_key(config, key, value)
    except (ValueError, IndexError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    out = Path(output_path or path)
    save_config(out, config)
    print(f"Set {key} = {value!r}; saved to {out}")


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(prog="portwatch", description="PortWatch - listening port snapshots and change detection")
    ap.add_argument("--config", "-c", help="Config file path")
    ap.add_argument("--version", action="version", version=f"portwatch {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="Collect listening ports once and print them")
    p_list.add_argument("--json", action="store_true", help="Print as JSON")

    p_watch = sub.add_parser("watch", help="Poll continuously and print ports whenever they change")
    p_watch.add_argument("--json", action="store_true", help="Print as JSON")

    p_config = sub.add_parser("config", help="Show, validate, or set config")
    p_config_sub = p_config.add_subparsers(dest="config_cmd", required=True)
    p_config_sub.add_parser("show", help="Show merged config (YAML)")
    p_config_sub.add_parser("validate", help="Validate config file")
    p_config_set = p_config_sub.add_parser("set", help="Set a key (e.g. poller.interval_sec=10)")
    p_config_set.add_argument("key", help="Dot-separated key")
    p_config_set.add_argument("value", help="Value (string; true/false and numbers auto-parsed)")
    p_config_set.add_argument("--output", "-o", help="Write to this path instead of --config")

    p_eact = sub.add_parser("export-activity", help="Export activity log as JSON")
    p_eact.add_argument("--path", "-p", help="Activity file path")

    args = ap.parse_args(argv)
    config_path = getattr(args, "config", None)
    config = load_config(config_path)

    if args.command == "list":
        asyncio.run(cmd_list(config, args.json))
    elif args.command == "watch":
        try:
            asyncio.run(cmd_watch(config, args.json))
        except KeyboardInterrupt:
            pass
    elif args.command == "config":
        if args.config_cmd == "show":
            cmd_config_show(config_path)
        elif args.config_cmd == "validate":
            cmd_config_validate(config_path)
        elif args.config_cmd == "set":
            cmd_config_set(config_path, args.key, args.value, getattr(args, "output", None))
    elif args.command == "export-activity":
        asyncio.run(cmd_export_activity(config, getattr(args, "path", None)))


if __name__ == "__main__":
    main()
