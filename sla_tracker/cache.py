from __future__ import annotations

import hashlib
import json
import threading
from typing import Any

from cachetools import TTLCache


def _sha256_16(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def make_cache_key(namespace: str, *, scope: list[str] | None = None, params: dict[str, Any] | None = None) -> str:
    ns = str(namespace or "").strip().upper()
    scope = scope or []
    params = params or {}
    try:
        blob = json.dumps(params, sort_keys=True, separators=(",", ":"))
    except Exception:
        blob = str(params)
    digest = _sha256_16(blob)
    parts = [ns] + [_sha256_16(str(s)) for s in scope if str(s or "").strip()] + [digest]
    return ":".join(parts)


class InMemoryTTLCache:
    def __init__(self, *, ttl_seconds: int = 30, max_items: int = 1000):
        ttl = max(1, min(3600, int(ttl_seconds)))
        max_items = max(10, int(max_items))
        self._cache = TTLCache(maxsize=max_items, ttl=ttl)
        self._lock = threading.RLock()

    def get(self, key: str) -> Any:
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value
