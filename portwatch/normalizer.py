# PortWatch - Normalizer: raw observation batch -> canonical Snapshot
from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable

from portwatch.models import Observation, Snapshot


def _cmp(a: object, b: object) -> int:
    if a < b:  # type: ignore[operator]
        return -1
    if a > b:  # type: ignore[operator]
        return 1
    return 0


def compare_observations(a: Observation, b: Observation) -> int:
    """Total order: port, then protocol name, then socket identity, then process.

    Empty identity / process strings sort before any non-empty value.
    """
    c = _cmp(a.port, b.port)
    if c:
        return c
    c = _cmp(a.protocol.value, b.protocol.value)
    if c:
        return c
    c = _cmp(a.socket_identity, b.socket_identity)
    if c:
        return c
    return _cmp(a.process, b.process)


def less_than(a: Observation, b: Observation) -> bool:
    return compare_observations(a, b) < 0


sort_key = cmp_to_key(compare_observations)


def normalize(batch: Iterable[Observation]) -> Snapshot:
    """Sort a batch and keep the first Observation per (protocol, port)."""
    ordered = sorted(batch, key=sort_key)
    out: list[Observation] = []
    last = None
    for obs in ordered:
        if obs.key == last:
            continue
        out.append(obs)
        last = obs.key
    return Snapshot(tuple(out))

