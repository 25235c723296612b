from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Hashable, Optional, Tuple

from .metrics import cache_hits


class TTLCache:
    """In-process result cache for one provider domain."""

    def __init__(self, domain: str):
        self.domain = domain
        self._entries: Dict[Hashable, Tuple[datetime, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        cached = self._entries.get(key)
        if not cached:
            return None
        expires_at, value = cached
        if datetime.now(timezone.utc) >= expires_at:
            del self._entries[key]
            return None
        cache_hits.labels(self.domain).inc()
        return value

    def put(self, key: Hashable, value: Any, ttl_seconds: int) -> None:
        # ttl <= 0 disables caching
        if ttl_seconds <= 0:
            return
        self._entries[key] = (datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds), value)

    def clear(self) -> None:
        self._entries.clear()
