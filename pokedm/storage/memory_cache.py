"""
In-process fast path for canon lookups.

Pure memory, no persistence: it starts empty and can be cleared at any time.
One instance is constructed per process and injected where needed.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pokedm.config import settings
from pokedm.utils.clock import Clock, epoch_ms, utc_now
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

# session_id -> kind -> key -> (value, expiry in epoch ms)
_Store = Dict[str, Dict[str, Dict[str, Tuple[Any, int]]]]


class InMemoryCanonCache:
    """TTL cache keyed by session, kind and lookup key"""

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        clock: Optional[Clock] = None,
        max_size: Optional[int] = None,
    ):
        """
        Args:
            default_ttl: Seconds an entry may stay in memory
            clock: Time source (defaults to the system clock)
            max_size: Maximum number of entries across all sessions
        """
        self.default_ttl = default_ttl or settings.memory_cache_ttl_seconds
        self.max_size = max_size or settings.memory_cache_max_entries
        self.clock = clock or utc_now
        self._store: _Store = {}
        self.hits = 0
        self.misses = 0

    def _now_ms(self) -> int:
        return epoch_ms(self.clock())

    def __len__(self) -> int:
        return sum(len(bucket) for kinds in self._store.values() for bucket in kinds.values())

    def get(self, session_id: str, kind: str, key: str) -> Optional[Dict[str, Any]]:
        bucket = self._store.get(session_id, {}).get(kind, {})
        if key not in bucket:
            self.misses += 1
            return None

        value, expiry = bucket[key]
        if self._now_ms() >= expiry:
            self._drop(session_id, kind, key)
            self.misses += 1
            logger.debug(f"Memory cache expired for {kind}/{key}")
            return None

        self.hits += 1
        return copy.deepcopy(value)

    def set(
        self,
        session_id: str,
        kind: str,
        key: str,
        value: Dict[str, Any],
        expires_at_ms: Optional[int] = None,
    ) -> None:
        """Store ``value``; the entry never outlives ``expires_at_ms`` when given"""
        expiry = self._now_ms() + self.default_ttl * 1000
        if expires_at_ms is not None:
            expiry = min(expiry, expires_at_ms)

        bucket = self._store.get(session_id, {}).get(kind, {})
        if key not in bucket and len(self) >= self.max_size:
            self._trim()

        kinds = self._store.setdefault(session_id, {})
        kinds.setdefault(kind, {})[key] = (copy.deepcopy(value), expiry)

    def discard(self, session_id: str, kind: str, keys: Iterable[str]) -> None:
        """Forget ``keys`` of one kind, e.g. after storage evicted them"""
        for key in keys:
            self._drop(session_id, kind, key)

    def invalidate(self, session_id: str, kind: Optional[str] = None) -> None:
        if kind is None:
            self._store.pop(session_id, None)
        else:
            kinds = self._store.get(session_id, {})
            kinds.pop(kind, None)
            if not kinds:
                self._store.pop(session_id, None)
        logger.debug(f"Invalidated memory cache for {session_id} ({kind or 'all kinds'})")

    def clear(self) -> None:
        self._store.clear()
        self.hits = 0
        self.misses = 0
        logger.info("Memory cache cleared")

    def stats(self) -> Dict[str, Any]:
        total_requests = self.hits + self.misses
        return {
            "sessions": len(self._store),
            "entries": len(self),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / total_requests * 100) if total_requests else 0,
            "total_requests": total_requests,
        }

    def _drop(self, session_id: str, kind: str, key: str) -> None:
        kinds = self._store.get(session_id)
        if not kinds or kind not in kinds:
            return
        kinds[kind].pop(key, None)
        if not kinds[kind]:
            del kinds[kind]
        if not kinds:
            del self._store[session_id]

    def _trim(self) -> None:
        # Drop the quarter of entries closest to expiry, at least one
        entries: List[Tuple[int, str, str, str]] = [
            (expiry, session_id, kind, key)
            for session_id, kinds in self._store.items()
            for kind, bucket in kinds.items()
            for key, (_, expiry) in bucket.items()
        ]
        entries.sort()
        for _, session_id, kind, key in entries[: max(1, len(entries) // 4)]:
            self._drop(session_id, kind, key)
        logger.debug(f"Trimmed memory cache to {len(self)} entries")
