"""Structured JSONL logging of lifecycle events."""

from __future__ import annotations

import base64
import json
import time
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .events import EVENT_NAMES, EventBus


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return {"bytes": len(value), "base64": base64.b64encode(value[:64]).decode("ascii")}
    if hasattr(value, "payload") and callable(value.payload):
        return value.payload()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class StructuredLogger:
    """Writes JSONL events for each lifecycle message of one instance."""

    def __init__(self, instance_id: str, events_path: Path) -> None:
        self.instance_id = instance_id
        self.events_path = events_path
        self._step = 0
        self._events_file = events_path.open("a", encoding="utf-8")
        self._unsubscribe: List[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> None:
        for name in EVENT_NAMES:
            self._unsubscribe.append(bus.on(name, self._make_handler(name)))

    def _make_handler(self, name: str) -> Callable[[Dict[str, Any]], None]:
        def _handler(payload: Dict[str, Any]) -> None:
            if payload.get("session_id") != self.instance_id:
                return
            self.log_event(name, payload)

        return _handler

    def log_event(self, event: str, payload: Dict[str, Any], *, metadata: Optional[Dict[str, Any]] = None) -> int:
        self._step += 1
        record = {
            "ts": time.time(),
            "instance_id": self.instance_id,
            "step": self._step,
            "event": event,
            "payload": _jsonable(payload),
            "metadata": metadata or {},
        }
        self._events_file.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self._events_file.flush()
        return self._step

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if not self._events_file.closed:
            self._events_file.close()


def prepare_events_path(base_dir: Path) -> Path:
    base_dir.mkdir(parents=True, exist_ok=True)
    return base_dir / "events.jsonl"
