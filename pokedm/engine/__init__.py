"""
Core engine components for the PokeDM engine
"""

from .encounter import EncounterSynthesizer, should_start_encounter
from .merge import StateMergeEngine, deep_merge
from .progression import ProgressionEngine, ProgressionEvent
from .session_factory import is_session_empty, new_session_document, seed_starter_session

__all__ = [
    "StateMergeEngine",
    "deep_merge",
    "EncounterSynthesizer",
    "should_start_encounter",
    "ProgressionEngine",
    "ProgressionEvent",
    "new_session_document",
    "is_session_empty",
    "seed_starter_session",
]
