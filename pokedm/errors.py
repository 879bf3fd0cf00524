"""
Exception types shared across the engine.

Validation failures are raised as ``SessionValidationError`` from
``pokedm.schemas.validation``; everything that crosses a service boundary
(generation calls, storage, a whole turn) is raised from here.
"""

from typing import Any, Dict, Literal, Optional

TurnErrorKind = Literal["validation", "external", "storage", "transient"]


class PokeDMError(Exception):
    """Base class for engine errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GenerationError(PokeDMError):
    """A call to the text-generation service failed"""

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        retry_after: Optional[float] = None,
        model: Optional[str] = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.retry_after = retry_after
        self.model = model


class StorageError(PokeDMError):
    """Read, write or connection failure in a storage adapter"""

    def __init__(
        self,
        message: str,
        code: str = "STORAGE_ERROR",
        session_id: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.session_id = session_id
        self.operation = operation

    def __str__(self) -> str:
        context = ", ".join(
            f"{key}={value}"
            for key, value in (
                ("session_id", self.session_id),
                ("operation", self.operation),
            )
            if value
        )
        return f"[{self.code}] {self.message}" + (f" ({context})" if context else "")


class StaleWriteError(StorageError):
    """The stored revision changed between load and save"""

    def __init__(
        self,
        session_id: str,
        expected_revision: Optional[str],
        actual_revision: Optional[str],
    ):
        super().__init__(
            f"Revision mismatch: expected {expected_revision}, found {actual_revision}",
            code="STALE_WRITE",
            session_id=session_id,
            operation="save",
        )
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class TurnError(PokeDMError):
    """A turn was aborted; no state was persisted"""

    def __init__(
        self,
        kind: TurnErrorKind,
        message: str,
        retry_hint: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.retry_hint = retry_hint
        self.session_id = session_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retry_hint": self.retry_hint,
            "session_id": self.session_id,
        }


class CanonFetchError(PokeDMError):
    """The reference-data service could not be reached or answered badly"""

    def __init__(self, message: str, kind: Optional[str] = None, key: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.key = key
