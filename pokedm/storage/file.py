"""
File-backed storage: one pretty-printed JSON document per session.

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so readers see either the old or the new document.
"""

import hashlib
import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

from pokedm.config import settings
from pokedm.errors import StaleWriteError, StorageError
from pokedm.storage.base import Document, RawDocument, StorageAdapter, register_adapter
from pokedm.utils.clock import Clock
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _revision(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()[:16]


class FileStorageAdapter(StorageAdapter):
    """
    Stores sessions under ``sessions_dir`` as ``{session_id}.json``.

    Revisions are content hashes; compare-and-replace is serialized within
    this process.
    """

    name = "file"

    def __init__(self, sessions_dir: Optional[str] = None, clock: Optional[Clock] = None):
        super().__init__(clock=clock)
        self.sessions_dir = Path(sessions_dir or settings.sessions_dir)
        self._write_lock = threading.Lock()
        logger.info(f"File storage at {self.sessions_dir}")

    def path_for(self, session_id: str) -> Path:
        if not SESSION_ID_PATTERN.match(session_id):
            raise StorageError(
                "Session id contains unsupported characters",
                code="INVALID_ID",
                session_id=session_id,
            )
        return self.sessions_dir / f"{session_id}.json"

    def _ensure_dir(self) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def _read_raw(self, session_id: str) -> Optional[RawDocument]:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        raw = path.read_bytes()
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Corrupt session file: {e}",
                code="CORRUPT_DOCUMENT",
                session_id=session_id,
                operation="load",
            ) from e
        return document, _revision(raw)

    def _current_revision(self, path: Path) -> Optional[str]:
        return _revision(path.read_bytes()) if path.exists() else None

    def _write_raw(
        self, session_id: str, document: Document, expected_revision: Optional[str]
    ) -> str:
        path = self.path_for(session_id)
        payload = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")
        self._ensure_dir()

        with self._write_lock:
            if expected_revision is not None:
                actual = self._current_revision(path)
                if actual != expected_revision:
                    raise StaleWriteError(session_id, expected_revision, actual)

            fd, tmp_name = tempfile.mkstemp(
                dir=self.sessions_dir, prefix=f".{session_id}.", suffix=".json.tmp"
            )
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        return _revision(payload)

    def _list_raw(self, campaign_id: Optional[str]) -> List[str]:
        if not self.sessions_dir.exists():
            return []
        session_ids: List[str] = []
        for path in sorted(self.sessions_dir.glob("*.json")):
            if campaign_id is not None:
                try:
                    data = json.loads(path.read_bytes())
                except json.JSONDecodeError:
                    logger.warning(f"Skipping unreadable session file {path.name}")
                    continue
                session = data.get("session") if isinstance(data, dict) else None
                if not isinstance(session, dict) or session.get("campaign_id") != campaign_id:
                    continue
            session_ids.append(path.stem)
        return session_ids

    def _delete_raw(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        with self._write_lock:
            if not path.exists():
                return False
            path.unlink()
        return True


register_adapter("file", FileStorageAdapter)
