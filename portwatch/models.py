# PortWatch - Data models (Protocol, Observation, Snapshot)
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

MAX_PORT = 65535

# --- Enums ---


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"


def protocol_from_str(s: str) -> Protocol:
    try:
        return Protocol(str(s).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown protocol: {s!r}") from None


# --- Core entities ---


@dataclass(frozen=True)
class Observation:
    """One listening endpoint as seen in one enumeration pass."""

    protocol: Protocol
    port: int
    process: str = ""
    socket_identity: str = ""  # opaque, e.g. "socket:[165614651]" on Linux

    def __post_init__(self) -> None:
        if not isinstance(self.protocol, Protocol):
            object.__setattr__(self, "protocol", protocol_from_str(self.protocol))
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Port must be an int, got {self.port!r}")
        if not 0 <= self.port <= MAX_PORT:
            raise ValueError(f"Port out of range: {self.port}")
        if self.process is None:
            object.__setattr__(self, "process", "")
        if self.socket_identity is None:
            object.__setattr__(self, "socket_identity", "")

    @property
    def key(self) -> tuple[Protocol, int]:
        return (self.protocol, self.port)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proto": self.protocol.value,
            "port": self.port,
            "process": self.process,
            "socket_identity": self.socket_identity,
        }


def observation_from_dict(d: dict[str, Any]) -> Observation:
    return Observation(
        protocol=protocol_from_str(d.get("proto", d.get("protocol", ""))),
        port=int(d["port"]),
        process=d.get("process") or "",
        socket_identity=d.get("socket_identity") or "",
    )


@dataclass(frozen=True)
class Snapshot:
    """Canonical (sorted, deduplicated) listening ports at one point in time.

    Build one with portwatch.normalizer.normalize; the constructor does not
    sort or dedup on its own.
    """

    ports: tuple[Observation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.ports, tuple):
            object.__setattr__(self, "ports", tuple(self.ports))

    def __len__(self) -> int:
        return len(self.ports)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self.ports)

    def __getitem__(self, i: int) -> Observation:
        return self.ports[i]

    def __str__(self) -> str:
        from portwatch.presenter import render

        return render(self)

    def to_list(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self.ports]


EMPTY_SNAPSHOT = Snapshot()
