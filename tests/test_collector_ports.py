# PortWatch - Collector tests (psutil faked)
import asyncio
import socket
from collections import namedtuple

import psutil
import pytest

from portwatch.collector import ports as collector_mod
from portwatch.collector.ports import ListeningPortCollector
from portwatch.detector.ports import unchanged
from portwatch.models import Observation, Protocol
from portwatch.normalizer import normalize

addr = namedtuple("addr", ["ip", "port"])
sconn = namedtuple("sconn", ["fd", "family", "type", "laddr", "raddr", "status", "pid"])

CONNS = [
    sconn(3, socket.AF_INET, socket.SOCK_STREAM, addr("0.0.0.0", 22), (), psutil.CONN_LISTEN, 100),
    sconn(4, socket.AF_INET6, socket.SOCK_STREAM, addr("::", 22), (), psutil.CONN_LISTEN, 100),
    sconn(5, socket.AF_INET, socket.SOCK_STREAM, addr("10.0.0.5", 22), addr("10.0.0.9", 51000), psutil.CONN_ESTABLISHED, 100),
    sconn(6, socket.AF_INET, socket.SOCK_STREAM, addr("127.0.0.1", 5432), (), psutil.CONN_LISTEN, 200),
    sconn(7, socket.AF_INET, socket.SOCK_DGRAM, addr("0.0.0.0", 53), (), psutil.CONN_NONE, 300),
    sconn(8, socket.AF_INET, socket.SOCK_DGRAM, addr("10.0.0.5", 40000), addr("8.8.8.8", 53), psutil.CONN_NONE, 300),
    sconn(-1, socket.AF_INET, socket.SOCK_STREAM, addr("0.0.0.0", 80), (), psutil.CONN_LISTEN, None),
]

NAMES = {100: "sshd", 200: "postgres", 300: "dnsmasq"}


class FakeProcess:
    def __init__(self, pid):
        if pid not in NAMES:
            raise psutil.NoSuchProcess(pid)
        self.pid = pid

    def name(self):
        return NAMES[self.pid]


def _no_fd_links(path):
    raise OSError(path)


@pytest.fixture
def fake_psutil(monkeypatch):
    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": list(CONNS))
    monkeypatch.setattr(collector_mod.psutil, "Process", FakeProcess)
    monkeypatch.setattr(collector_mod.os, "readlink", _no_fd_links)


def _collect(config):
    return asyncio.run(ListeningPortCollector(config).collect())


def test_collects_listening_sockets_only(fake_psutil):
    got = _collect({})
    assert sorted(got, key=lambda o: (o.port, o.socket_identity)) == [
        Observation(Protocol.TCP, 22, "sshd", "pid:100/fd:3"),
        Observation(Protocol.TCP, 22, "sshd", "pid:100/fd:4"),
        Observation(Protocol.UDP, 53, "dnsmasq", "pid:300/fd:7"),
        Observation(Protocol.TCP, 80, "", ""),
    ]


def test_include_loopback(fake_psutil):
    got = _collect({"collector": {"include_loopback": True}})
    assert Observation(Protocol.TCP, 5432, "postgres", "pid:200/fd:6") in got


def test_protocol_filter(fake_psutil):
    got = _collect({"collector": {"protocols": ["udp"]}})
    assert [o.port for o in got] == [53]


def test_unresolvable_process_left_empty(monkeypatch):
    conns = [sconn(3, socket.AF_INET, socket.SOCK_STREAM, addr("0.0.0.0", 9000), (), psutil.CONN_LISTEN, 999)]
    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": conns)
    monkeypatch.setattr(collector_mod.psutil, "Process", FakeProcess)
    monkeypatch.setattr(collector_mod.os, "readlink", _no_fd_links)
    assert _collect({}) == [Observation(Protocol.TCP, 9000, "", "pid:999/fd:3")]


def test_access_denied_yields_empty_batch(monkeypatch):
    def denied(kind="inet"):
        raise psutil.AccessDenied()

    monkeypatch.setattr(collector_mod.psutil, "net_connections", denied)
    assert _collect({}) == []


class NginxProcess:
    def __init__(self, pid):
        self.pid = pid

    def name(self):
        return "nginx"


def _prefork(worker_pids):
    # nginx master 900 plus workers, all holding the same listening socket on fd 6
    return [
        sconn(6, socket.AF_INET, socket.SOCK_STREAM, addr("0.0.0.0", 80), (), psutil.CONN_LISTEN, pid)
        for pid in [900] + worker_pids
    ]


def test_prefork_worker_churn_keeps_socket_identity(monkeypatch):
    links = {f"/proc/{pid}/fd/6": "socket:[41235]" for pid in (900, 1000, 1001, 1002)}

    def readlink(path):
        if path not in links:
            raise FileNotFoundError(path)
        return links[path]

    monkeypatch.setattr(collector_mod.os, "readlink", readlink)
    monkeypatch.setattr(collector_mod.psutil, "Process", NginxProcess)

    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": _prefork([1000, 1001]))
    before = normalize(_collect({}))
    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": _prefork([1001, 1002]))
    after = normalize(_collect({}))

    assert [o.socket_identity for o in before] == ["socket:[41235]"]
    assert unchanged(before, after)


def test_rebound_socket_gets_new_identity(monkeypatch):
    inode = {"value": "socket:[100]"}
    monkeypatch.setattr(collector_mod.os, "readlink", lambda path: inode["value"])
    monkeypatch.setattr(collector_mod.psutil, "Process", FakeProcess)
    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": CONNS[:1])
    before = normalize(_collect({}))
    inode["value"] = "socket:[200]"
    after = normalize(_collect({}))
    assert not unchanged(before, after)


def test_non_socket_fd_link_falls_back_to_pid_fd(monkeypatch):
    monkeypatch.setattr(collector_mod.os, "readlink", lambda path: "/dev/null")
    monkeypatch.setattr(collector_mod.psutil, "Process", FakeProcess)
    monkeypatch.setattr(collector_mod.psutil, "net_connections", lambda kind="inet": CONNS[:1])
    assert _collect({})[0].socket_identity == "pid:100/fd:3"
