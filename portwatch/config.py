# PortWatch - Configuration loader
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from portwatch.models import Protocol


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    path = path or os.environ.get("PORTWATCH_CONFIG")
    if path:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return _deep_merge(_default_config(), data)
    # Try project root config (development)
    base = Path(__file__).resolve().parent.parent
    dev_config = base / "config" / "default.yaml"
    if dev_config.exists():
        with open(dev_config) as f:
            data = yaml.safe_load(f) or {}
        return _deep_merge(_default_config(), data)
    return _default_config()


def _default_config() -> dict[str, Any]:
    return {
        "agent": {
            "name": "portwatch",
            "data_dir": "/var/lib/portwatch",
            "log_dir": "/var/log/portwatch",
        },
        "poller": {
            "interval_sec": 5,
            "timeout_sec": 10,
            "queue_size": 16,
        },
        "collector": {
            "protocols": ["tcp", "udp"],
            "include_loopback": False,
        },
        "activity": {
            "enabled": True,
            "file": "/var/log/portwatch/activity.jsonl",
        },
    }


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def get_default_config() -> dict[str, Any]:
    """Return the default configuration dict (no file merge)."""
    return _default_config()


def save_config(path: str | Path, data: dict[str, Any]) -> None:
    """Write config dict to YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)


def set_config_key(data: dict[str, Any], key: str, value: Any) -> None:
    """Set a nested key using dot notation (e.g. 'poller.interval_sec' or 'collector.protocols.0')."""
    parts = key.split(".")
    cur: Any = data
    for i, p in enumerate(parts[:-1]):
        nxt = parts[i + 1]
        if isinstance(cur, list):
            if not p.isdigit():
                raise ValueError(f"Cannot set {key}: '{p}' is not a list index")
            cur = cur[int(p)]
            continue
        if not isinstance(cur, dict):
            raise ValueError(f"Cannot set {key}: '{p}' is not a dict")
        if nxt.isdigit():
            if not isinstance(cur.get(p), list):
                cur[p] = list(cur[p]) if cur.get(p) else []
        elif p not in cur:
            cur[p] = {}
        cur = cur[p]
    last = parts[-1]
    if isinstance(value, str) and value.lower() in ("true", "false"):
        value = value.lower() == "true"
    elif isinstance(value, str) and value.isdigit():
        value = int(value)
    elif isinstance(value, str) and value.replace(".", "", 1).isdigit():
        value = float(value)
    if last.isdigit():
        if not isinstance(cur, list):
            raise ValueError(f"Cannot set {key}: parent is not a list")
        idx = int(last)
        while len(cur) <= idx:
            cur.append(None)
        cur[idx] = value
    else:
        if not isinstance(cur, dict):
            raise ValueError(f"Cannot set {key}: parent is not a dict")
        cur[last] = value


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate config; return list of error messages (empty if valid)."""
    errs: list[str] = []
    if not config.get("agent"):
        errs.append("Missing 'agent' section")
    else:
        if not config["agent"].get("data_dir"):
            errs.append("agent.data_dir is required")
        if not config["agent"].get("log_dir"):
            errs.append("agent.log_dir is required")
    poller = config.get("poller", {})
    for k in ("interval_sec", "timeout_sec"):
        v = poller.get(k)
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v <= 0:
            errs.append(f"poller.{k} must be a positive number")
    qs = poller.get("queue_size", 16)
    if isinstance(qs, bool) or not isinstance(qs, int) or qs < 1:
        errs.append("poller.queue_size must be a positive integer")
    protocols = config.get("collector", {}).get("protocols", [])
    if not isinstance(protocols, list):
        errs.append("collector.protocols must be a list")
    else:
        known = {p.value for p in Protocol}
        for p in protocols:
            if str(p).lower() not in known:
                errs.append(f"collector.protocols: unknown protocol '{p}'")
    return errs
