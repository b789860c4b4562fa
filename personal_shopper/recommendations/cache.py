from __future__ import annotations

import hashlib
import json
import threading
import time
from typing import Any

from .config import DEFAULT_ENGINE_CONFIG


def _make_key(request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


class ResponseCache:
    """TTL cache of recommendation responses, owned by one engine.

    Entries are tagged with the repository revision they were computed
    from; a lookup only hits an entry of the same revision, and storing a
    newer revision evicts every older entry.
    """

    def __init__(self, ttl: float = DEFAULT_ENGINE_CONFIG.cache_ttl_seconds) -> None:
        self.ttl = ttl
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, request_dict: dict, revision: int) -> Any | None:
        key = _make_key(request_dict)
        with self._lock:
            entry = self._entries.get(key)
            if entry and entry["revision"] == revision and time.time() - entry["created_at"] < self.ttl:
                self._hits += 1
                return entry["value"]
            if entry:
                del self._entries[key]
            self._misses += 1
        return None

    def set(self, request_dict: dict, value: Any, revision: int) -> None:
        key = _make_key(request_dict)
        with self._lock:
            stale = [k for k, entry in self._entries.items() if entry["revision"] < revision]
            for k in stale:
                del self._entries[k]
            self._entries[key] = {
                "value": value,
                "user_id": request_dict.get("user_id"),
                "revision": revision,
                "created_at": time.time(),
            }

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached response for *user_id*. Returns how many were dropped."""
        with self._lock:
            stale = [k for k, entry in self._entries.items() if entry["user_id"] == user_id]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
