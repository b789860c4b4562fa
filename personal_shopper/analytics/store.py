from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any

# Oldest events are evicted once the log is full
MAX_EVENTS = 10_000

_events: deque[dict[str, Any]] = deque(maxlen=MAX_EVENTS)
_lock = threading.Lock()


def record_event(event_type: str, data: dict[str, Any]) -> None:
    with _lock:
        _events.append({
            "type": event_type,
            "timestamp": time.time(),
            **data,
        })


def get_events(event_type: str | None = None) -> list[dict[str, Any]]:
    """Snapshot of the log, optionally only events of one type."""
    with _lock:
        events = list(_events)
    if event_type is None:
        return events
    return [e for e in events if e["type"] == event_type]


def clear_events() -> None:
    with _lock:
        _events.clear()
