# PortWatch - Listening port collector (psutil)
from __future__ import annotations

import asyncio
import ipaddress
import os
import socket
from typing import Any

import psutil

from portwatch.models import Observation, Protocol

logger = __import__("logging").getLogger("portwatch.collector.ports")


def _is_loopback(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip.split("%", 1)[0]).is_loopback
    except ValueError:
        return False


def _protocol_of(conn: Any) -> Protocol | None:
    if conn.type == socket.SOCK_STREAM:
        return Protocol.TCP
    if conn.type == socket.SOCK_DGRAM:
        return Protocol.UDP
    return None


def _is_listening(conn: Any, proto: Protocol) -> bool:
    if not conn.laddr:
        return False
    if proto is Protocol.TCP:
        return conn.status == psutil.CONN_LISTEN
    # UDP has no LISTEN state; a bound, unconnected socket is listening.
    return not conn.raddr


def _socket_identity(conn: Any) -> str:
    """Kernel socket name ("socket:[inode]" on Linux), else "pid:<pid>/fd:<fd>".

    Workers of a pre-fork server share one listening socket, so only the
    inode stays the same when they are recycled.
    """
    pid = getattr(conn, "pid", None)
    fd = getattr(conn, "fd", -1)
    if not pid or fd is None or fd < 0:
        return ""
    try:
        target = os.readlink(f"/proc/{pid}/fd/{fd}")
    except OSError:
        target = ""
    if target.startswith("socket:"):
        return target
    return f"pid:{pid}/fd:{fd}"


def _process_name(pid: int | None, cache: dict[int, str]) -> str:
    if not pid:
        return ""
    if pid not in cache:
        try:
            cache[pid] = psutil.Process(pid).name()
        except psutil.Error as e:
            logger.debug("Could not resolve process %s: %s", pid, e)
            cache[pid] = ""
    return cache[pid]


class ListeningPortCollector:
    """Enumerate listening TCP/UDP sockets into an unordered Observation batch."""

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        coll = config.get("collector", {})
        self._protocols = {Protocol(str(p).lower()) for p in coll.get("protocols", ["tcp", "udp"])}
        self._include_loopback = bool(coll.get("include_loopback", False))

    async def collect(self) -> list[Observation]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._collect_sync)

    def _collect_sync(self) -> list[Observation]:
        try:
            conns = psutil.net_connections(kind="inet")
        except psutil.AccessDenied as e:
            logger.warning("Could not list sockets (access denied): %s", e)
            return []
        names: dict[int, str] = {}
        out: list[Observation] = []
        for c in conns:
            proto = _protocol_of(c)
            if proto is None or proto not in self._protocols:
                continue
            if not _is_listening(c, proto):
                continue
            ip = c.laddr.ip if hasattr(c.laddr, "ip") else c.laddr[0]
            port = c.laddr.port if hasattr(c.laddr, "port") else c.laddr[1]
            if not self._include_loopback and _is_loopback(ip):
                continue
            out.append(
                Observation(
                    protocol=proto,
                    port=int(port),
                    process=_process_name(c.pid, names),
                    socket_identity=_socket_identity(c),
                )
            )
        return out
