# PortWatch - Poller: collect, normalize, compare, emit on change
from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Protocol as TypingProtocol, Union

from portwatch.detector.ports import PortChangeDetector
from portwatch.models import EMPTY_SNAPSHOT, Observation, Snapshot
from portwatch.normalizer import normalize

logger = __import__("logging").getLogger("portwatch.poller")

Subscriber = Callable[[Snapshot], Union[None, Awaitable[None]]]


class Collector(TypingProtocol):
    async def collect(self) -> list[Observation]: ...


class Poller:
    """Drives one poll at a time and keeps the current Snapshot.

    A poll that fails or is cancelled leaves the previous Snapshot current.
    """

    def __init__(self, config: dict[str, Any], collector: Collector, activity: Any = None) -> None:
        self.config = config
        poller_cfg = config.get("poller", {})
        self._interval = float(poller_cfg.get("interval_sec", 5))
        self._timeout = float(poller_cfg.get("timeout_sec", 10))
        queue_size = int(poller_cfg.get("queue_size", 16))
        self._collector = collector
        self._activity = activity
        self._detector = PortChangeDetector(config)
        self._current: Snapshot = EMPTY_SNAPSHOT
        self._lock: asyncio.Lock | None = None
        self._running = False
        self._subscribers: list[Subscriber] = []
        self.updates: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=max(1, queue_size))
        self.last_event: dict[str, Any] | None = None

    @property
    def current(self) -> Snapshot:
        return self._current

    def subscribe(self, fn: Subscriber) -> None:
        self._subscribers.append(fn)

    def shutdown(self) -> None:
        self._running = False

    async def check(self) -> Snapshot:
        """Collect and normalize once without touching poller state."""
        batch = await asyncio.wait_for(self._collector.collect(), timeout=self._timeout)
        return normalize(batch)

    async def poll_once(self) -> tuple[Snapshot, bool]:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            t0 = time.perf_counter()
            started = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
            try:
                batch = await asyncio.wait_for(self._collector.collect(), timeout=self._timeout)
            except Exception as e:
                if self._activity:
                    await self._activity.log_collector_run(
                        "ports", started, time.perf_counter() - t0, "", str(e) or type(e).__name__
                    )
                raise
            snapshot = normalize(batch)
            first = self._detector.last is None
            event = self._detector.check(snapshot)
            self._current = snapshot
            duration = time.perf_counter() - t0
            if self._activity:
                await self._activity.log_collector_run(
                    "ports", started, duration, f"raw={len(batch)} ports={len(snapshot)}", None
                )
            if event:
                self.last_event = event
                logger.info("%s", event["summary"])
                if self._activity:
                    await self._activity.log_port_change(event)
            return snapshot, first or event is not None

    async def _emit(self, snapshot: Snapshot) -> None:
        # Bounded: drop the oldest snapshot when full
        if self.updates.full():
            self.updates.get_nowait()
        self.updates.put_nowait(snapshot)
        for fn in self._subscribers:
            try:
                res = fn(snapshot)
                if inspect.isawaitable(res):
                    await res
            except Exception as e:
                logger.exception("Port subscriber error: %s", e)

    async def run(self) -> None:
        self._running = True
        logger.info("Port poller starting (interval %.1fs)", self._interval)
        while self._running:
            try:
                snapshot, changed = await self.poll_once()
                if changed:
                    await self._emit(snapshot)
            except Exception as e:
                logger.exception("Port poll error: %s", e)
            if self._running:
                await asyncio.sleep(self._interval)
        logger.info("Port poller stopped")
