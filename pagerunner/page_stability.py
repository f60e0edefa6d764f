"""Network quiet-window tracking used by soft waits."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, List, Set, Tuple

from playwright.async_api import Page, Request

log = logging.getLogger(__name__)

POLL_INTERVAL_MS = 50


class NetworkTracker:
    """Counts in-flight requests of one page from its request events."""

    def __init__(self, page: Page) -> None:
        self.page = page
        self._inflight: Set[Request] = set()
        self._last_activity = time.monotonic()
        self._listeners: List[Tuple[str, Callable[..., Any]]] = []
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._register("request", self._on_request)
        self._register("requestfinished", self._on_done)
        self._register("requestfailed", self._on_done)

    def stop(self) -> None:
        if not self._started:
            return
        for event, handler in self._listeners:
            try:
                self.page.off(event, handler)
            except Exception as exc:
                log.debug("Failed to detach %s listener: %s", event, exc)
        self._listeners.clear()
        self._inflight.clear()
        self._started = False

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def idle_ms(self) -> float:
        if self._inflight:
            return 0.0
        return (time.monotonic() - self._last_activity) * 1000

    def _register(self, event: str, handler: Callable[..., Any]) -> None:
        self.page.on(event, handler)
        self._listeners.append((event, handler))

    def _on_request(self, request: Request) -> None:
        self._inflight.add(request)
        self._last_activity = time.monotonic()

    def _on_done(self, request: Request) -> None:
        self._inflight.discard(request)
        self._last_activity = time.monotonic()


async def wait_for_network_quiet(tracker: NetworkTracker, *, idle_ms: int, timeout_ms: int) -> bool:
    """Wait until no request has been in flight for ``idle_ms``.

    Returns ``False`` instead of raising when ``timeout_ms`` elapses first.
    """

    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        if tracker.idle_ms() >= idle_ms:
            return True
        if time.monotonic() >= deadline:
            log.warning(
                "Network did not stay idle for %d ms within %d ms (%d requests in flight)",
                idle_ms,
                timeout_ms,
                tracker.inflight,
            )
            return False
        await asyncio.sleep(POLL_INTERVAL_MS / 1000)
