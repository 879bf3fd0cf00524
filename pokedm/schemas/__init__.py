"""
Session document schema, references and validation for the PokeDM engine
"""

from .agent import (
    AgentResult,
    BattleOutcome,
    DesignOutput,
    IntentClassification,
    LoreOutput,
    NarrationOutput,
    RulesOutput,
    StateOutput,
)
from .custom_pokemon import CustomPokemon
from .references import (
    CanonRef,
    CustomRef,
    EntityRef,
    FormRef,
    SpeciesRef,
    format_ref,
    parse_ref,
)
from .session import (
    CANON_CACHE_KINDS,
    EVENT_LOG_LIMIT,
    SCHEMA_VERSION,
    ChoiceOption,
    SessionDocument,
)
from .validation import (
    FieldError,
    SessionValidationError,
    collect_session_errors,
    parse_session,
    validate_json_schema,
    validate_session,
)

__all__ = [
    # Session document
    "SessionDocument",
    "ChoiceOption",
    "SCHEMA_VERSION",
    "EVENT_LOG_LIMIT",
    "CANON_CACHE_KINDS",
    # References
    "CanonRef",
    "CustomRef",
    "EntityRef",
    "SpeciesRef",
    "FormRef",
    "parse_ref",
    "format_ref",
    "CustomPokemon",
    # Agent outputs
    "AgentResult",
    "BattleOutcome",
    "IntentClassification",
    "NarrationOutput",
    "RulesOutput",
    "StateOutput",
    "LoreOutput",
    "DesignOutput",
    # Validation
    "FieldError",
    "SessionValidationError",
    "parse_session",
    "validate_session",
    "collect_session_errors",
    "validate_json_schema",
]
