"""Lifecycle event bus used by the runner and the page watchdog."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

log = logging.getLogger(__name__)

ACTION_START = "action:start"
ACTION_END = "action:end"
ACTION_ERROR = "action:error"
URL_CHANGE = "url:change"

EVENT_NAMES = (ACTION_START, ACTION_END, ACTION_ERROR, URL_CHANGE)

Handler = Callable[[Dict[str, Any]], Any]


class EventBus:
    """Synchronous publish/subscribe channel for lifecycle messages.

    Handlers run inside :meth:`emit`, so a start event is always delivered
    before the end or error event of the same action. A failing handler is
    logged and skipped; it never interrupts the pipeline.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        if event != "*" and event not in EVENT_NAMES:
            raise ValueError(f"Unknown event '{event}'")
        self._handlers.setdefault(event, []).append(handler)
        return lambda: self.off(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def listeners(self, event: str) -> Tuple[Handler, ...]:
        return tuple(self._handlers.get(event, ()))

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        deliveries = [(handler, payload) for handler in self.listeners(event)]
        deliveries.extend((handler, {"event": event, **payload}) for handler in self.listeners("*"))
        for handler, message in deliveries:
            try:
                handler(message)
            except Exception as exc:
                log.warning("Listener for %s raised: %s", event, exc)
