# PortWatch - Presenter: human-diffable text for a Snapshot
from __future__ import annotations

import json
from typing import Iterable

from portwatch.models import Observation


def quote(s: str) -> str:
    return json.dumps(s)


def render_line(p: Observation) -> str:
    return f"{p.protocol.value:<3} {p.port:>5} {p.socket_identity:<17} {quote(p.process)}"


def render(snapshot: Iterable[Observation]) -> str:
    """One fixed-width line per port. For logs only, not a parseable format."""
    return "\n".join(render_line(p) for p in snapshot)
