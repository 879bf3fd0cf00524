"""
Canon reference-data cache.

Entries live in ``dex.canon_cache[kind][key]`` with their own ``_cached_at``
timestamp (epoch milliseconds). An entry is live while
``now - _cached_at <= ttl_hours``; each kind holds at most
``max_entries_per_kind`` entries, evicting the oldest timestamp first.

``CanonCache`` fronts the storage adapter with the in-process memory cache.
The memory layer is only ever a copy: it is populated from storage, never
outlives the persisted entry's expiry and forgets keys storage evicts.
With a fetcher attached, ``lookup`` fills a miss from the reference service
and persists the result.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pokedm.schemas.session import CANON_CACHE_KINDS
from pokedm.storage.memory_cache import InMemoryCanonCache
from pokedm.utils.clock import Clock, utc_now
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

CACHED_AT_KEY = "_cached_at"
MS_PER_HOUR = 60 * 60 * 1000

Document = Dict[str, Any]


@dataclass
class CachedCanon:
    data: Dict[str, Any]
    cached_at_ms: int
    expires_at_ms: int
    # Keys of the same kind dropped to make room for this entry
    evicted: List[str] = field(default_factory=list)


def _check_kind(kind: str) -> None:
    if kind not in CANON_CACHE_KINDS:
        raise ValueError(f"Unknown canon cache kind {kind!r}; expected one of {CANON_CACHE_KINDS}")


def ttl_ms(document: Document) -> int:
    return document["dex"]["cache_policy"]["ttl_hours"] * MS_PER_HOUR


def read_cache_entry(document: Document, kind: str, key: str, now_ms: int) -> Optional[CachedCanon]:
    """Live entry for ``kind``/``key``, or None for a miss (absent or expired)"""
    _check_kind(kind)
    entry = document["dex"]["canon_cache"][kind].get(key)
    if not isinstance(entry, dict) or not isinstance(entry.get(CACHED_AT_KEY), int):
        return None
    cached_at = entry[CACHED_AT_KEY]
    if now_ms - cached_at > ttl_ms(document):
        return None
    data = {k: copy.deepcopy(v) for k, v in entry.items() if k != CACHED_AT_KEY}
    return CachedCanon(data=data, cached_at_ms=cached_at, expires_at_ms=cached_at + ttl_ms(document))


def write_cache_entry(
    document: Document, kind: str, key: str, data: Dict[str, Any], now_ms: int
) -> Tuple[Document, CachedCanon]:
    """
    Return a copy of ``document`` holding the new entry, after evicting the
    oldest entries of ``kind`` so the bound holds
    """
    _check_kind(kind)
    updated = copy.deepcopy(document)
    bucket: Dict[str, Any] = updated["dex"]["canon_cache"][kind]
    limit = updated["dex"]["cache_policy"]["max_entries_per_kind"]

    evicted: List[str] = []
    if key not in bucket:
        while len(bucket) >= limit:
            oldest = min(bucket, key=lambda k: _timestamp(bucket[k]))
            logger.debug(f"Evicting canon cache entry {kind}/{oldest}")
            del bucket[oldest]
            evicted.append(oldest)

    payload = {k: v for k, v in copy.deepcopy(data).items() if k != CACHED_AT_KEY}
    bucket[key] = {**payload, CACHED_AT_KEY: now_ms}
    return updated, CachedCanon(
        data=payload,
        cached_at_ms=now_ms,
        expires_at_ms=now_ms + ttl_ms(updated),
        evicted=evicted,
    )


def clear_cache_entries(document: Document, kind: Optional[str] = None) -> Document:
    updated = copy.deepcopy(document)
    kinds = [kind] if kind else list(CANON_CACHE_KINDS)
    for name in kinds:
        _check_kind(name)
        updated["dex"]["canon_cache"][name] = {}
    return updated


def _timestamp(entry: Any) -> int:
    # Entries without a timestamp sort as oldest
    if isinstance(entry, dict) and isinstance(entry.get(CACHED_AT_KEY), int):
        return entry[CACHED_AT_KEY]
    return -1


class CanonCache:
    """
    Read-mostly canon lookup service.

    A miss is ``None``. Storage failures propagate as ``StorageError`` and
    are never reported as a miss.
    """

    def __init__(
        self,
        storage,
        memory: Optional[InMemoryCanonCache] = None,
        clock: Optional[Clock] = None,
        fetcher=None,
    ):
        """
        Args:
            storage: Storage adapter holding the persisted entries
            memory: In-process fast path
            clock: Time source (defaults to the system clock)
            fetcher: Object with ``async fetch(kind, key)`` used by ``lookup``
        """
        self.storage = storage
        self.clock = clock or utc_now
        self.memory = memory if memory is not None else InMemoryCanonCache(clock=self.clock)
        self.fetcher = fetcher

    async def get(self, session_id: str, kind: str, key: str) -> Optional[Dict[str, Any]]:
        _check_kind(kind)
        hit = self.memory.get(session_id, kind, key)
        if hit is not None:
            return hit

        cached = await self.storage.get_cached_canon(session_id, kind, key)
        if cached is None:
            return None
        self.memory.set(session_id, kind, key, cached.data, expires_at_ms=cached.expires_at_ms)
        return copy.deepcopy(cached.data)

    async def set(self, session_id: str, kind: str, key: str, data: Dict[str, Any]) -> CachedCanon:
        _check_kind(kind)
        cached = await self.storage.set_cached_canon(session_id, kind, key, data)
        if cached.evicted:
            self.memory.discard(session_id, kind, cached.evicted)
        self.memory.set(session_id, kind, key, cached.data, expires_at_ms=cached.expires_at_ms)
        return cached

    async def lookup(self, session_id: str, kind: str, key: str) -> Optional[Dict[str, Any]]:
        """
        Cached entry, or a freshly fetched one written through to storage.

        Without a fetcher this is ``get``. A record the reference service does
        not know is a miss and is not cached.

        Raises:
            CanonFetchError: The reference service failed
            StorageError: Reading or persisting the entry failed
        """
        data = await self.get(session_id, kind, key)
        if data is not None or self.fetcher is None:
            return data

        fetched = await self.fetcher.fetch(kind, key)
        if fetched is None:
            return None
        cached = await self.set(session_id, kind, key, fetched)
        return copy.deepcopy(cached.data)

    async def invalidate(self, session_id: str, kind: Optional[str] = None) -> None:
        await self.storage.invalidate_cache(session_id, kind)
        self.memory.invalidate(session_id, kind)

    def forget_session(self, session_id: str) -> None:
        """Drop the memory copy of a session that no longer exists"""
        self.memory.invalidate(session_id)

    async def lookup_many(
        self, session_id: str, kind: str, keys: Iterable[str]
    ) -> Dict[str, Dict[str, Any]]:
        """Live entries among ``keys``; misses are left out"""
        _check_kind(kind)
        found: Dict[str, Dict[str, Any]] = {}
        pending: List[str] = []
        for key in keys:
            hit = self.memory.get(session_id, kind, key)
            if hit is not None:
                found[key] = hit
            elif key not in pending:
                pending.append(key)
        if not pending:
            return found

        stored = await self.storage.get_cached_canon_many(session_id, kind, pending)
        for key, cached in stored.items():
            self.memory.set(session_id, kind, key, cached.data, expires_at_ms=cached.expires_at_ms)
            found[key] = copy.deepcopy(cached.data)
        return found
