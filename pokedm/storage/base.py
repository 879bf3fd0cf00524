"""
Storage adapter interface and registry.

Adapters implement four blocking primitives (``_read_raw``, ``_write_raw``,
``_list_raw``, ``_delete_raw``). This base class runs them off the event loop
and adds the behavior every adapter shares:

- documents are upgraded and validated on load, validated before every write
- failures are raised as ``StorageError`` with session id and operation
- optimistic concurrency through opaque revision strings
- canon cache read/write/invalidate on top of load/save
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from pokedm.config import settings
from pokedm.engine.locks import SessionLockManager
from pokedm.engine.migration import needs_upgrade, upgrade_document
from pokedm.errors import StaleWriteError, StorageError
from pokedm.schemas.validation import SessionValidationError, validate_session
from pokedm.storage.canon_cache import (
    CachedCanon,
    clear_cache_entries,
    read_cache_entry,
    write_cache_entry,
)
from pokedm.utils.clock import Clock, epoch_ms, utc_now
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]
RawDocument = Tuple[Document, str]


class StorageAdapter(ABC):
    """Uniform async persistence for session documents"""

    name = "base"

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or utc_now
        self.cache_locks = SessionLockManager()

    # ==================== Primitives ====================

    @abstractmethod
    def _read_raw(self, session_id: str) -> Optional[RawDocument]:
        """Stored JSON and its revision, or None"""

    @abstractmethod
    def _write_raw(
        self, session_id: str, document: Document, expected_revision: Optional[str]
    ) -> str:
        """Atomically store a validated document and return the new revision"""

    @abstractmethod
    def _list_raw(self, campaign_id: Optional[str]) -> List[str]:
        """Session ids, optionally filtered by campaign"""

    @abstractmethod
    def _delete_raw(self, session_id: str) -> bool:
        """Remove a document; False when it did not exist"""

    async def _run(self, operation: str, session_id: Optional[str], func: Callable, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"{self.name} storage {operation} failed for {session_id}: {e}")
            raise StorageError(
                str(e), code=f"{operation.upper()}_FAILED", session_id=session_id, operation=operation
            ) from e

    # ==================== Documents ====================

    async def load_with_revision(self, session_id: str) -> Tuple[Optional[Document], Optional[str]]:
        raw = await self._run("load", session_id, self._read_raw, session_id)
        if raw is None:
            return None, None
        document, revision = raw
        try:
            if needs_upgrade(document):
                document = upgrade_document(document, clock=self.clock)
            return validate_session(document), revision
        except SessionValidationError as e:
            logger.error(f"Stored session {session_id} is invalid: {e}")
            raise StorageError(
                f"Stored document is invalid: {e}",
                code="INVALID_DOCUMENT",
                session_id=session_id,
                operation="load",
            ) from e

    async def load(self, session_id: str) -> Optional[Document]:
        document, _ = await self.load_with_revision(session_id)
        return document

    async def save(
        self, session_id: str, document: Document, expected_revision: Optional[str] = None
    ) -> str:
        """
        Validate and persist ``document``

        Args:
            session_id: Must equal ``document.session.session_id``
            document: Full session document
            expected_revision: When given, the write fails with
                ``StaleWriteError`` unless the stored revision still matches

        Returns:
            The new revision

        Raises:
            SessionValidationError: the document is invalid (nothing is written)
            StaleWriteError: revision mismatch
            StorageError: the write failed
        """
        validated = validate_session(document)
        stored_id = validated["session"]["session_id"]
        if stored_id != session_id:
            raise StorageError(
                f"Document belongs to session {stored_id}",
                code="ID_MISMATCH",
                session_id=session_id,
                operation="save",
            )
        revision = await self._run(
            "save", session_id, self._write_raw, session_id, validated, expected_revision
        )
        logger.debug(f"Saved session {session_id} (revision {revision})")
        return revision

    async def list(self, campaign_id: Optional[str] = None) -> List[str]:
        return await self._run("list", None, self._list_raw, campaign_id)

    async def delete(self, session_id: str) -> bool:
        deleted = await self._run("delete", session_id, self._delete_raw, session_id)
        if deleted:
            logger.info(f"Deleted session {session_id}")
        return deleted

    async def revision(self, session_id: str) -> Optional[str]:
        _, revision = await self.load_with_revision(session_id)
        return revision

    # ==================== Canon cache ====================

    async def get_cached_canon(self, session_id: str, kind: str, key: str) -> Optional[CachedCanon]:
        """Live cache entry or None; a missing session is also a miss"""
        document = await self.load(session_id)
        if document is None:
            return None
        return read_cache_entry(document, kind, key, epoch_ms(self.clock()))

    async def get_cached_canon_many(
        self, session_id: str, kind: str, keys: List[str]
    ) -> Dict[str, CachedCanon]:
        """Live entries among ``keys`` from a single read of the session"""
        document = await self.load(session_id)
        if document is None:
            return {}
        now_ms = epoch_ms(self.clock())
        found: Dict[str, CachedCanon] = {}
        for key in keys:
            cached = read_cache_entry(document, kind, key, now_ms)
            if cached is not None:
                found[key] = cached
        return found

    async def set_cached_canon(
        self, session_id: str, kind: str, key: str, data: Dict[str, Any]
    ) -> CachedCanon:
        async with self.cache_locks.hold((session_id, kind)):
            return await self._update_with_retry(
                session_id,
                lambda doc: write_cache_entry(doc, kind, key, data, epoch_ms(self.clock())),
            )

    async def invalidate_cache(self, session_id: str, kind: Optional[str] = None) -> None:
        async with self.cache_locks.hold((session_id, kind)):
            await self._update_with_retry(
                session_id, lambda doc: (clear_cache_entries(doc, kind), None)
            )

    async def _update_with_retry(self, session_id: str, change: Callable) -> Any:
        # One retry against a fresh read when another writer got in first
        for attempt in (1, 2):
            document, revision = await self.load_with_revision(session_id)
            if document is None:
                raise StorageError(
                    "Session not found", code="NOT_FOUND", session_id=session_id, operation="cache"
                )
            updated, result = change(document)
            try:
                await self.save(session_id, updated, expected_revision=revision)
                return result
            except StaleWriteError:
                if attempt == 2:
                    raise
                logger.info(f"Stale cache write for {session_id}; retrying once")


# ==================== Registry ====================

_ADAPTERS: Dict[str, Callable[..., StorageAdapter]] = {}


def register_adapter(name: str, factory: Callable[..., StorageAdapter]) -> None:
    _ADAPTERS[name] = factory


def available_adapters() -> List[str]:
    return sorted(_ADAPTERS)


def create_adapter(name: Optional[str] = None, **kwargs) -> StorageAdapter:
    """Build the adapter registered as ``name`` (defaults to STORAGE_PROVIDER)"""
    name = name or settings.storage_provider
    if name not in _ADAPTERS:
        raise StorageError(
            f"Unknown storage provider {name!r}; available: {available_adapters()}",
            code="UNKNOWN_PROVIDER",
        )
    logger.info(f"Using {name} storage adapter")
    return _ADAPTERS[name](**kwargs)
