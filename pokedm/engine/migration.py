"""
Session document migrations.

Two paths lead to the active schema version:

- ``migrate_legacy_session`` converts the pre-1.0 "example" format
  (``trainers``, ``world_state``, ``known_species_flags``, ``next_actions``)
- ``upgrade_document`` walks the version chain for documents written by an
  older release of this schema

Both record provenance in ``state_versioning``.
"""

import copy
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from pokedm.engine.session_factory import new_character, new_session_document
from pokedm.schemas.references import CUSTOM_SPECIES_PREFIX
from pokedm.schemas.session import SCHEMA_VERSION
from pokedm.utils.clock import Clock, now_iso
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

Document = Dict[str, Any]

LEGACY_KEYS = ("trainers", "world_state", "known_species_flags", "next_actions")

StepFn = Callable[[Document], Document]


def _slug(value: str) -> str:
    return re.sub(r"\s+", "_", value.strip().lower())


def _title(value: str) -> str:
    return value.replace("_", " ").title()


def is_legacy_format(document: Document) -> bool:
    if any(key in document for key in LEGACY_KEYS):
        return True
    campaign = document.get("campaign")
    if isinstance(campaign, dict) and "region" not in campaign:
        return True
    session = document.get("session")
    return isinstance(session, dict) and "scene" not in session


# ==================== Legacy format ====================


def _location_type(name: str) -> str:
    lowered = name.lower()
    if "harbor" in lowered or "town" in lowered:
        return "town"
    if "crossing" in lowered or "arch" in lowered:
        return "landmark"
    return "route"


def _migrate_campaign(legacy_campaign: Optional[Dict], world_state: Dict, base: Document) -> Document:
    campaign = copy.deepcopy(base["campaign"])
    if not legacy_campaign:
        return campaign

    theme = legacy_campaign.get("theme") or ""
    theme_tags = theme if isinstance(theme, list) else [theme] if theme else []
    theme_text = ", ".join(theme_tags)
    campaign["campaign_id"] = legacy_campaign.get("campaign_id", "")
    campaign["region"] = {
        "name": legacy_campaign.get("name") or legacy_campaign.get("campaign_id", ""),
        "theme": theme_text,
        "description": f"{legacy_campaign.get('region_type', 'region')} with themes: {theme_text}",
        "environment_tags": theme_tags,
        "climate": legacy_campaign.get("weather") or "temperate",
    }

    locations = world_state.get("locations") or {}
    for name, data in locations.items():
        location_id = _slug(name)
        campaign["locations"].append(
            {
                "location_id": location_id,
                "name": name,
                "type": _location_type(name),
                "description": f"{name} - {data.get('status', 'active')}",
                "known": True,
            }
        )
        for npc_name in data.get("npc_presence") or []:
            campaign["recurring_npcs"].append(
                {
                    "npc_id": _slug(npc_name),
                    "name": npc_name,
                    "role": "researcher",
                    "disposition": "friendly",
                    "home_location_id": location_id,
                }
            )

    for effect, value in (world_state.get("global_effects") or {}).items():
        campaign["world_facts"].append(
            {
                "fact_id": _slug(effect),
                "title": _title(effect),
                "description": value if isinstance(value, str) else str(value),
                "tags": ["global_effect"],
                "revealed": True,
            }
        )
    return campaign


def _migrate_pokemon(pokemon: Dict[str, Any], location_id: str, session_id: str) -> Dict[str, Any]:
    species = (pokemon.get("species") or "unknown").lower()
    variant = pokemon.get("variant")
    level = max(1, min(100, pokemon.get("level") or 1))
    base_stat = 10 + level * 2

    if variant:
        species_ref = {
            "kind": "custom",
            "ref": f"custom:{CUSTOM_SPECIES_PREFIX}{species}_{_slug(variant)}",
        }
        form_ref = {"kind": "regional_variant", "region": variant, "base_canon_ref": f"canon:{species}"}
    else:
        species_ref = {"kind": "canon", "ref": f"canon:{species}"}
        form_ref = {"kind": "none"}
    if pokemon.get("form_stage"):
        form_ref["lore"] = f"Form stage: {pokemon['form_stage']}"

    status = pokemon.get("status")
    experience = pokemon.get("experience")
    migrated = {
        "instance_id": pokemon.get("pokemon_id") or f"pkmn_{species}",
        "species_ref": species_ref,
        "form_ref": form_ref,
        "typing": pokemon.get("typing") or ["Normal"],
        "level": level,
        "ability": {
            "kind": "canon",
            "name": "Unknown Ability",
            "description": "Ability description not available",
        },
        "moves": [],
        "stats": {
            "hp": pokemon.get("hp") or {"current": 20, "max": 20},
            "attack": base_stat,
            "defense": base_stat,
            "special_attack": base_stat,
            "special_defense": base_stat,
            "speed": base_stat,
        },
        "status_conditions": [status] if status and status != "healthy" else [],
        "friendship": 70,
        "known_info": {
            "met_at": {"location_id": location_id, "session_id": session_id},
            "lore_learned": [],
            "seen_moves": [],
        },
    }
    if pokemon.get("nickname"):
        migrated["nickname"] = pokemon["nickname"]
    if experience:
        migrated["notes"] = f"XP: {experience.get('current_xp')}/{experience.get('xp_to_next')}"
    return migrated


def _migrate_trainer(trainer: Dict[str, Any], index: int, location_id: str, session_id: str) -> Dict[str, Any]:
    character_id = trainer.get("trainer_id") or trainer.get("character_id") or f"trainer_{index + 1}"
    character = new_character(character_id)
    character["trainer"].update(
        {
            "name": trainer.get("name", ""),
            "age_group": "teen",
            "background": trainer.get("class") or "Trainer",
        }
    )
    character["pokemon_party"] = [
        _migrate_pokemon(p, location_id, session_id) for p in trainer.get("party") or []
    ]
    character["progression"]["milestones"] = [
        {
            "milestone_id": f"{character_id}_milestone_{i}",
            "title": _title(milestone),
            "description": milestone,
            "completed": True,
        }
        for i, milestone in enumerate(trainer.get("milestones") or [])
    ]
    return character


def migrate_legacy_session(legacy: Document, clock: Optional[Clock] = None) -> Document:
    """Convert a legacy example-format document to the active schema"""
    legacy_session = legacy.get("session") or {}
    world_state = legacy.get("world_state") or {}
    session_id = legacy_session.get("session_id") or None
    document = new_session_document(session_id=session_id, clock=clock)
    session_id = document["session"]["session_id"]

    campaign = _migrate_campaign(legacy.get("campaign"), world_state, document)
    location_ids = [loc["location_id"] for loc in campaign["locations"]]
    hint = legacy_session.get("starting_location") or legacy_session.get("last_checkpoint") or ""
    scene_location = next(
        (loc for loc in campaign["locations"] if hint and hint in loc["name"]),
        campaign["locations"][0] if campaign["locations"] else None,
    )
    location_id = scene_location["location_id"] if scene_location else ""

    characters = [
        _migrate_trainer(trainer, i, location_id, session_id)
        for i, trainer in enumerate(legacy.get("trainers") or [])
    ]

    objectives = [
        {"objective_id": flag, "description": _title(flag), "status": "completed"}
        for flag, value in (legacy_session.get("narrative_flags") or {}).items()
        if value is True
    ]
    next_actions = legacy.get("next_actions") or {}
    if next_actions.get("session_2_entry"):
        objectives.append(
            {
                "objective_id": "session_entry",
                "description": next_actions["session_2_entry"],
                "status": "active",
            }
        )

    document["campaign"] = campaign
    document["characters"] = characters
    document["session"].update(
        {
            "campaign_id": campaign["campaign_id"],
            "character_ids": [c["character_id"] for c in characters],
            "episode_title": legacy_session.get("title") or legacy_session.get("session_id") or "",
            "scene": {
                "location_id": location_id,
                "description": scene_location["description"] if scene_location else "Unknown location",
                "mood": "calm",
            },
            "current_objectives": objectives,
        }
    )

    discovered: List[Dict[str, Any]] = []
    for flag, value in (legacy.get("known_species_flags") or {}).items():
        match = re.match(r"(\w+?)_variant", flag)
        if value is True and match:
            species = match.group(1).lower()
            discovered.append(
                {
                    "species_ref": {"kind": "custom", "ref": f"custom:{CUSTOM_SPECIES_PREFIX}{species}"},
                    "form_ref": {"kind": "regional_variant", "region": campaign["campaign_id"] or "unknown"},
                    "first_seen_location_id": location_id if location_id in location_ids else "",
                    "first_seen_session_id": session_id,
                    "notes": f"Migrated from flag {flag}",
                }
            )
    document["continuity"]["discovered_pokemon"] = discovered
    if legacy_session.get("summary"):
        document["continuity"]["timeline"].append(
            {
                "session_id": session_id,
                "episode_title": document["session"]["episode_title"],
                "summary": legacy_session["summary"],
                "canonized": True,
                "date": now_iso(clock),
                "tags": ["migrated"],
            }
        )

    legacy_version = legacy.get("state_version") or "1.0.0"
    document["state_versioning"].update(
        {
            "previous_versions": [legacy_version] if legacy_version != SCHEMA_VERSION else [],
            "migration_notes": "Migrated from example session format",
        }
    )
    logger.info(
        f"Migrated legacy session {session_id}: {len(characters)} characters, "
        f"{len(campaign['locations'])} locations"
    )
    return document


# ==================== Version chain ====================


def _upgrade_1_0_0(document: Document) -> Document:
    """1.0.0 lacked the explain/auto-scale flags and cache notes"""
    session = document.setdefault("session", {})
    session.setdefault("controls", {}).setdefault("explain_requested", False)
    flags = session.setdefault("fail_soft_flags", {})
    flags.setdefault("auto_scaled_last_encounter", False)
    flags.setdefault("difficulty_adjusted", False)
    document.setdefault("custom_dex", {}).setdefault(
        "ruleset_flags", {"allow_new_species": False}
    )
    return document


# version -> (next version, step)
MIGRATIONS: Dict[str, Tuple[str, StepFn]] = {
    "1.0.0": ("1.1.0", _upgrade_1_0_0),
}


def document_version(document: Document) -> str:
    versioning = document.get("state_versioning") or {}
    return versioning.get("current_version") or document.get("schema_version") or SCHEMA_VERSION


def needs_upgrade(document: Document) -> bool:
    return is_legacy_format(document) or document_version(document) != SCHEMA_VERSION


def upgrade_document(document: Document, clock: Optional[Clock] = None) -> Document:
    """
    Bring any known document shape to the active schema version.

    Returns a new document; the input is not modified. Unknown versions are
    returned unchanged so validation can report them.
    """
    if is_legacy_format(document):
        return migrate_legacy_session(document, clock=clock)

    upgraded = copy.deepcopy(document)
    version = document_version(upgraded)
    steps: List[str] = []
    while version != SCHEMA_VERSION and version in MIGRATIONS:
        next_version, step = MIGRATIONS[version]
        upgraded = step(upgraded)
        steps.append(version)
        version = next_version

    if not steps:
        return upgraded

    versioning = upgraded.setdefault("state_versioning", {})
    versioning["previous_versions"] = list(versioning.get("previous_versions", [])) + steps
    versioning["current_version"] = version
    versioning["migration_notes"] = f"Upgraded {' -> '.join(steps + [version])}"
    versioning["last_migrated_at"] = now_iso(clock)
    if "schema_version" in upgraded:
        upgraded["schema_version"] = version
    logger.info(f"Upgraded session document from {steps[0]} to {version}")
    return upgraded

