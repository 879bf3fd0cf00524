"""
State merge engine.

Agents never write the session document; they propose partial documents that
are deep-merged here and re-validated before anything is persisted.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from pokedm.schemas.session import EVENT_LOG_LIMIT
from pokedm.schemas.validation import FieldError, SessionValidationError, validate_session
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]


def deep_merge(current: Mapping[str, Any], update: Mapping[str, Any]) -> Document:
    """
    Merge ``update`` into ``current`` and return a new document.

    Keyed structures merge recursively; arrays, scalars and type mismatches
    are replaced wholesale by the update value. Neither input is modified.
    Untouched subtrees of ``current`` are shared with the result.
    """
    merged: Document = dict(current)
    for key, value in update.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = deep_merge(existing, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def append_events(
    existing: List[Dict[str, Any]],
    new_entries: List[Dict[str, Any]],
    limit: int = EVENT_LOG_LIMIT,
) -> List[Dict[str, Any]]:
    """Full replacement event log with the oldest entries evicted past ``limit``"""
    combined = list(existing) + list(new_entries)
    return combined[-limit:] if len(combined) > limit else combined


@dataclass
class MergeResult:
    document: Document
    applied: bool
    errors: List[FieldError] = field(default_factory=list)


class StateMergeEngine:
    """Deep merge plus validation gate"""

    def __init__(self, validator: Optional[Callable[[Document], Document]] = None):
        self.validator = validator or validate_session

    def merge(self, current: Document, update: Mapping[str, Any]) -> Document:
        """
        Merge and validate

        Raises:
            SessionValidationError: the merged document is invalid
        """
        if not isinstance(update, Mapping):
            raise SessionValidationError(
                [FieldError(path="", message="update must be an object", code="type")]
            )
        return self.validator(deep_merge(current, update))

    def apply(
        self, current: Document, update: Optional[Mapping[str, Any]], source: str = "agent"
    ) -> MergeResult:
        """
        Merge, falling back to ``current`` when the result does not validate.

        A rejected update is logged and otherwise ignored so the turn can
        still return its narration.
        """
        if not update:
            return MergeResult(document=current, applied=False)
        try:
            return MergeResult(document=self.merge(current, update), applied=True)
        except SessionValidationError as e:
            logger.warning(
                f"Rejected {source} update ({len(e.errors)} errors): "
                + "; ".join(str(error) for error in e.errors[:3])
            )
            return MergeResult(document=current, applied=False, errors=e.errors)
