# PortWatch - Listening port change detector
from __future__ import annotations

from typing import Any

from portwatch.models import Snapshot

logger = __import__("logging").getLogger("portwatch.detector.ports")


def unchanged(previous: Snapshot, current: Snapshot) -> bool:
    """True if both snapshots hold the same sockets in the same order.

    The process name is ignored: resolution is flaky run to run, while a new
    socket identity on the same port means the port really was re-bound.
    """
    if len(previous) != len(current):
        return False
    for a, b in zip(previous, current):
        if (
            a.protocol != b.protocol
            or a.port != b.port
            or a.socket_identity != b.socket_identity
        ):
            return False
    return True


def diff_snapshots(previous: Snapshot, current: Snapshot) -> dict[str, list[dict[str, Any]]]:
    before = {p.key: p for p in previous}
    after = {p.key: p for p in current}
    added = [after[k].to_dict() for k in after if k not in before]
    removed = [before[k].to_dict() for k in before if k not in after]
    rebound = [
        {
            **after[k].to_dict(),
            "old_socket_identity": before[k].socket_identity,
            "old_process": before[k].process,
        }
        for k in after
        if k in before and before[k].socket_identity != after[k].socket_identity
    ]
    return {"added": added, "removed": removed, "rebound": rebound}


def _label(entry: dict[str, Any]) -> str:
    return f"{entry['proto']}/{entry['port']}"


class PortChangeDetector:
    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        self._last: Snapshot | None = None

    @property
    def last(self) -> Snapshot | None:
        return self._last

    def check(self, current: Snapshot) -> dict[str, Any] | None:
        previous = self._last
        if previous is None:
            self._last = current
            return None
        if unchanged(previous, current):
            return None
        self._last = current
        diff = diff_snapshots(previous, current)
        parts = []
        for kind in ("added", "removed", "rebound"):
            if diff[kind]:
                parts.append(f"{kind} {', '.join(_label(e) for e in diff[kind][:10])}")
        summary = "Listening ports changed: " + ("; ".join(parts) or "socket order changed")
        logger.debug("%s", summary)
        return {
            "event_id": f"ports-changed-{hash(current.ports) % 2**32}",
            "source": "detector.ports",
            "event_type": "listening_ports_changed",
            "severity": "P3" if diff["added"] or diff["rebound"] else "P4",
            "summary": summary,
            "raw": {**diff, "current_ports": current.to_list()},
            "asset_ids": ["host"],
            "confidence": 1.0,
        }
