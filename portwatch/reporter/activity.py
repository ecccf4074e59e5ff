# PortWatch - Activity logger (collector runs and port changes, JSONL)
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = __import__("logging").getLogger("portwatch.activity")


def _utc_now() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ActivityLogger:
    """Append-only JSONL record of every poll and every detected change."""

    def __init__(self, config: dict[str, Any]) -> None:
        """config: full app config (uses activity + agent sections)."""
        self.config = config
        act = config.get("activity", {})
        log_dir = Path(config.get("agent", {}).get("log_dir", "/var/log/portwatch"))
        self._path = Path(act.get("file") or str(log_dir / "activity.jsonl"))
        self._file: Any = None
        self._lock: asyncio.Lock | None = None
        self._enabled = act.get("enabled", True)

    @property
    def path(self) -> Path:
        return self._path

    async def start(self) -> None:
        if not self._enabled:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "a")

    async def stop(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    async def _write(self, record: dict[str, Any]) -> None:
        if not self._enabled or not self._file:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            line = json.dumps({"ts": _utc_now(), **record}) + "\n"
            self._file.write(line)
            self._file.flush()

    async def log_collector_run(
        self,
        collector: str,
        started_at: str,
        duration_sec: float,
        summary: str,
        error: str | None = None,
    ) -> None:
        await self._write({
            "type": "collector_run",
            "collector": collector,
            "started_at": started_at,
            "duration_sec": round(duration_sec, 3),
            "summary": summary,
            "error": error,
        })

    async def log_port_change(self, event: dict[str, Any]) -> None:
        raw = event.get("raw", {})
        await self._write({
            "type": "port_change",
            "event_id": event.get("event_id", ""),
            "severity": event.get("severity", "P4"),
            "summary": event.get("summary", ""),
            "added": raw.get("added", []),
            "removed": raw.get("removed", []),
            "rebound": raw.get("rebound", []),
        })


def read_activity(path: str | Path) -> list[dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return []
    lines = []
    with open(p) as f:
        for line in f:
            line = line.strip()
            if line:
                lines.append(json.loads(line))
    return lines
