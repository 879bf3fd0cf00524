"""
Schema validation utilities
"""

from typing import Any, Dict, Iterable, List, Optional

from jsonschema import Draft202012Validator
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .references import CUSTOM_SPECIES_PREFIX
from .session import SCHEMA_VERSION, SessionDocument


class FieldError(BaseModel):
    """One constraint violation, addressed by a dotted path"""

    path: str = Field(..., description="Dotted path, e.g. session.battle_state.round")
    message: str = Field(..., description="Human readable constraint description")
    code: str = Field(default="invalid", description="Machine readable error type")

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.message}"


class SessionValidationError(ValueError):
    """Raised when a document fails schema or cross-reference checks"""

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        preview = "; ".join(str(error) for error in errors[:5])
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        super().__init__(f"Invalid session document: {preview}{more}")


def _format_loc(loc: Iterable[Any]) -> str:
    parts: List[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts)


def _from_pydantic(exc: PydanticValidationError) -> List[FieldError]:
    return [
        FieldError(path=_format_loc(error["loc"]), message=error["msg"], code=error["type"])
        for error in exc.errors()
    ]


def check_references(doc: SessionDocument) -> List[FieldError]:
    """
    Cross-field invariants that a per-field schema cannot express.

    Location ids are only checked when non-empty; the skeleton document
    uses "" for "no location yet".
    """
    errors: List[FieldError] = []
    session = doc.session

    # Characters
    character_ids = [c.character_id for c in doc.characters]
    if len(set(character_ids)) != len(character_ids):
        errors.append(
            FieldError(path="characters", message="character_id values must be unique", code="duplicate_id")
        )
    if sorted(set(session.character_ids)) != sorted(set(character_ids)) or len(
        set(session.character_ids)
    ) != len(session.character_ids):
        errors.append(
            FieldError(
                path="session.character_ids",
                message=f"must equal the set of character ids {sorted(set(character_ids))}",
                code="reference",
            )
        )

    # Campaign
    if session.campaign_id != doc.campaign.campaign_id:
        errors.append(
            FieldError(
                path="session.campaign_id",
                message=f"must equal campaign.campaign_id ({doc.campaign.campaign_id!r})",
                code="reference",
            )
        )

    # Locations
    location_ids = {loc.location_id for loc in doc.campaign.locations}

    def check_location(path: str, location_id: Optional[str]) -> None:
        if location_id and location_id not in location_ids:
            errors.append(
                FieldError(
                    path=path,
                    message=f"unknown location_id {location_id!r}",
                    code="reference",
                )
            )

    check_location("session.scene.location_id", session.scene.location_id)
    for i, npc in enumerate(doc.campaign.recurring_npcs):
        check_location(f"campaign.recurring_npcs[{i}].home_location_id", npc.home_location_id)
    for i, found in enumerate(doc.continuity.discovered_pokemon):
        check_location(
            f"continuity.discovered_pokemon[{i}].first_seen_location_id",
            found.first_seen_location_id,
        )

    # Battle
    party_ids = {p.instance_id for c in doc.characters for p in c.pokemon_party}
    slot_ids = {s.encounter_slot_id for e in session.encounters for s in e.wild_slots}
    for i, entry in enumerate(session.battle_state.turn_order):
        if entry.ref not in party_ids and entry.ref not in slot_ids:
            errors.append(
                FieldError(
                    path=f"session.battle_state.turn_order[{i}].ref",
                    message=f"{entry.ref!r} is neither a party instance nor a wild slot",
                    code="reference",
                )
            )
    encounter_ids = {e.encounter_id for e in session.encounters}
    if session.battle_state.encounter_id and session.battle_state.encounter_id not in encounter_ids:
        errors.append(
            FieldError(
                path="session.battle_state.encounter_id",
                message=f"unknown encounter {session.battle_state.encounter_id!r}",
                code="reference",
            )
        )

    # Choices
    choices = session.player_choices
    option_ids = {option.option_id for option in choices.options_presented}
    if choices.safe_default and choices.safe_default not in option_ids:
        errors.append(
            FieldError(
                path="session.player_choices.safe_default",
                message=f"{choices.safe_default!r} is not a presented option",
                code="reference",
            )
        )

    # Custom dex
    canon_keys = set()
    for kind, entries in doc.dex.canon_cache.model_dump().items():
        canon_keys.update(entries.keys())
    for key, entry in doc.custom_dex.pokemon.items():
        path = f"custom_dex.pokemon.{key}"
        if not key.startswith(CUSTOM_SPECIES_PREFIX):
            errors.append(
                FieldError(path=path, message=f"key must start with {CUSTOM_SPECIES_PREFIX!r}", code="namespace")
            )
        if key != entry.custom_species_id:
            errors.append(
                FieldError(path=path, message="key must equal custom_species_id", code="reference")
            )
        if key in canon_keys:
            errors.append(
                FieldError(path=path, message="custom id aliases a canon cache entry", code="alias")
            )

    # Versioning
    if doc.state_versioning.current_version != SCHEMA_VERSION:
        errors.append(
            FieldError(
                path="state_versioning.current_version",
                message=f"expected active schema version {SCHEMA_VERSION}",
                code="version",
            )
        )
    if doc.schema_version is not None and doc.schema_version != SCHEMA_VERSION:
        errors.append(
            FieldError(
                path="schema_version",
                message=f"expected active schema version {SCHEMA_VERSION}",
                code="version",
            )
        )

    return errors


def parse_session(document: Dict[str, Any]) -> SessionDocument:
    """
    Validate a session document and return the parsed model

    Raises:
        SessionValidationError: with every field-path violation found
    """
    try:
        parsed = SessionDocument.model_validate(document)
    except PydanticValidationError as e:
        raise SessionValidationError(_from_pydantic(e)) from e

    errors = check_references(parsed)
    if errors:
        raise SessionValidationError(errors)
    return parsed


def validate_session(document: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a session document and return its normalized JSON form"""
    return dump_session(parse_session(document))


def dump_session(model: SessionDocument) -> Dict[str, Any]:
    return model.model_dump(mode="json", exclude_unset=True)


def collect_session_errors(document: Dict[str, Any]) -> List[FieldError]:
    """Non-raising variant returning the violations (empty when valid)"""
    try:
        parse_session(document)
    except SessionValidationError as e:
        return e.errors
    return []


def validate_json_schema(data: Any, schema: Dict[str, Any]) -> bool:
    """Validate data against a JSON schema"""
    errors = sorted(Draft202012Validator(schema).iter_errors(data), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        location = _format_loc(first.path) or "<root>"
        raise ValueError(f"JSON schema validation failed at {location}: {first.message}")
    return True
