"""
Session document creation, the emptiness predicate and the starter seed.
"""

import copy
import uuid
from typing import Any, Dict, Iterable, Optional

from pokedm.config import settings
from pokedm.schemas.session import CANON_CACHE_KINDS, SCHEMA_VERSION, empty_campaign
from pokedm.utils.clock import Clock, now_iso

Document = Dict[str, Any]


def new_session_id() -> str:
    return str(uuid.uuid4())


def new_character(character_id: str) -> Dict[str, Any]:
    return {
        "character_id": character_id,
        "trainer": {
            "name": "",
            "age_group": "child",
            "background": "",
            "personality_traits": [],
            "bonds": [],
        },
        "inventory": {
            "items": [],
            "pokeballs": {"poke_ball": 5, "great_ball": 0, "ultra_ball": 0},
            "key_items": [],
        },
        "pokemon_party": [],
        "achievements": [],
        "progression": {"badges": 0, "milestones": []},
    }


def new_session_document(
    session_id: Optional[str] = None,
    campaign_id: str = "",
    character_ids: Iterable[str] = (),
    clock: Optional[Clock] = None,
) -> Document:
    """
    Build the all-empty skeleton for a new session

    Args:
        session_id: Identifier to use; a UUID4 is minted when omitted
        campaign_id: Campaign this session belongs to ("" for none yet)
        character_ids: One blank character is created per id
        clock: Time source for the versioning timestamp

    Returns:
        A document that passes ``validate_session``
    """
    session_id = session_id or new_session_id()
    character_ids = list(character_ids)
    return {
        "schema_version": SCHEMA_VERSION,
        "dex": {
            "canon_cache": {kind: {} for kind in CANON_CACHE_KINDS},
            "cache_policy": {
                "source": "pokeapi",
                "gen_range": "1-9",
                "ttl_hours": settings.default_cache_ttl_hours,
                "max_entries_per_kind": settings.default_max_entries_per_kind,
                "notes": "Canon reference-only cache; never treated as player-owned state.",
            },
        },
        "custom_dex": {
            "pokemon": {},
            "ruleset_flags": {"allow_new_species": False},
            "notes": "Custom Pokémon stored alongside canon, never overwriting canon entries.",
        },
        "campaign": empty_campaign(campaign_id),
        "characters": [new_character(cid) for cid in character_ids],
        "session": {
            "session_id": session_id,
            "campaign_id": campaign_id,
            "character_ids": character_ids,
            "episode_title": "",
            "scene": {"location_id": "", "description": "", "mood": "calm"},
            "current_objectives": [],
            "encounters": [],
            "battle_state": {
                "active": False,
                "round": 0,
                "turn_order": [],
                "field_effects": [],
            },
            "fail_soft_flags": {
                "recent_failures": 0,
                "recent_successes": 0,
                "difficulty_adjusted": False,
                "party_confidence": "medium",
                "auto_scaled_last_encounter": False,
            },
            "player_choices": {"options_presented": []},
            "controls": {
                "pause_requested": False,
                "skip_requested": False,
                "explain_requested": False,
            },
            "event_log": [],
        },
        "continuity": {
            "timeline": [],
            "discovered_pokemon": [],
            "unresolved_hooks": [],
            "recaps": [],
        },
        "state_versioning": {
            "current_version": SCHEMA_VERSION,
            "previous_versions": [],
            "migration_notes": "Initial session creation",
            "last_migrated_at": now_iso(clock),
        },
    }


def is_session_empty(document: Document) -> bool:
    """
    True when nothing has been played or set up yet: no named trainer,
    no party Pokémon, no scene description, no objectives and no events.
    """
    for character in document.get("characters", []):
        if character.get("trainer", {}).get("name", "").strip():
            return False
        if character.get("pokemon_party"):
            return False
    session = document.get("session", {})
    if session.get("scene", {}).get("description", "").strip():
        return False
    if session.get("current_objectives"):
        return False
    if session.get("event_log"):
        return False
    return True


# ==================== Starter seed ====================

STARTER_CAMPAIGN = {
    "region": {
        "name": "Verdant Coast",
        "theme": "coastal discovery",
        "description": "Sunlit harbors, windy cliff routes and quiet forests full of curious Pokémon.",
        "environment_tags": ["coastal", "forest", "cliffs"],
        "climate": "temperate",
    },
    "locations": [
        {
            "location_id": "loc_seabreeze_town",
            "name": "Seabreeze Town",
            "type": "town",
            "description": "A small harbor town where every trainer's journey begins.",
            "known": True,
        },
        {
            "location_id": "loc_route_1",
            "name": "Route 1",
            "type": "route",
            "description": "A grassy path along the cliffs, home to Pidgey and Mareep.",
            "known": True,
        },
    ],
    "factions": [],
    "recurring_npcs": [
        {
            "npc_id": "npc_prof_willow",
            "name": "Professor Willow",
            "role": "researcher",
            "disposition": "friendly",
            "notes": "Studies how Pokémon adapt to coastal weather.",
            "home_location_id": "loc_seabreeze_town",
        }
    ],
    "world_facts": [
        {
            "fact_id": "fact_lighthouse",
            "title": "The Old Lighthouse",
            "description": "Locals say the lighthouse lamp flickers whenever Electric-types gather.",
            "tags": ["mystery", "electric"],
            "revealed": False,
        }
    ],
}

STARTER_POKEMON = {
    "species_ref": {"kind": "canon", "ref": "canon:pikachu"},
    "form_ref": {"kind": "none"},
    "typing": ["Electric"],
    "level": 5,
    "ability": {
        "kind": "canon",
        "name": "static",
        "description": "Contact with the Pokemon may cause paralysis.",
    },
    "moves": [
        {
            "kind": "canon",
            "name": "thunder-shock",
            "type": "Electric",
            "category": "special",
            "pp": 30,
            "accuracy": 100,
            "power": 40,
            "simple_effect": "A jolt of electricity is hurled at the target.",
        },
        {
            "kind": "canon",
            "name": "growl",
            "type": "Normal",
            "category": "status",
            "pp": 40,
            "accuracy": 100,
            "power": None,
            "simple_effect": "The user growls in an endearing way, making the foe less wary.",
        },
    ],
    "stats": {
        "hp": {"current": 20, "max": 20},
        "attack": 11,
        "defense": 9,
        "special_attack": 10,
        "special_defense": 10,
        "speed": 14,
    },
    "status_conditions": [],
    "friendship": 70,
}

STARTER_CHOICES = [
    {
        "option_id": "visit_lab",
        "label": "Visit Professor Willow",
        "description": "Head to the lab to receive your Pokédex and first advice.",
        "risk_level": "low",
    },
    {
        "option_id": "explore_town",
        "label": "Explore Seabreeze Town",
        "description": "Wander the harbor and meet the locals.",
        "risk_level": "low",
    },
    {
        "option_id": "head_to_route_1",
        "label": "Set out on Route 1",
        "description": "Walk the cliff path where wild Pokémon roam.",
        "risk_level": "medium",
    },
]

STARTER_NARRATION = (
    "Salt air drifts over Seabreeze Town as your Pikachu hops onto your shoulder. "
    "Professor Willow has asked to see you, and Route 1 stretches north along the cliffs. "
    "Your adventure begins now."
)


def seed_starter_session(
    document: Document,
    trainer_name: str = "Alex",
    clock: Optional[Clock] = None,
) -> Document:
    """
    Return a fully populated starter version of ``document``.

    The session id is preserved; a campaign id and a character id are minted
    when the document has none.
    """
    seeded = copy.deepcopy(document)
    session = seeded["session"]
    session_id = session["session_id"]
    campaign_id = seeded["campaign"].get("campaign_id") or f"campaign_{uuid.uuid4().hex[:8]}"
    character_id = (session["character_ids"] or [f"char_{uuid.uuid4().hex[:8]}"])[0]
    timestamp = now_iso(clock)

    seeded["campaign"] = {"campaign_id": campaign_id, **copy.deepcopy(STARTER_CAMPAIGN)}

    character = new_character(character_id)
    character["trainer"].update(
        {
            "name": trainer_name,
            "background": "A young trainer from Seabreeze Town, eager to explore the coast.",
            "personality_traits": ["curious", "kind"],
        }
    )
    character["inventory"]["items"] = [
        {"kind": "canon", "ref": "canon:potion", "quantity": 2}
    ]
    pokemon = copy.deepcopy(STARTER_POKEMON)
    pokemon.update(
        {
            "instance_id": f"pkmn_{uuid.uuid4().hex[:8]}",
            "nickname": "Sparky",
            "known_info": {
                "met_at": {"location_id": "loc_seabreeze_town", "session_id": session_id},
                "lore_learned": [],
                "seen_moves": ["thunder-shock"],
            },
        }
    )
    character["pokemon_party"] = [pokemon]
    other_characters = [
        c for c in seeded["characters"] if c["character_id"] != character_id
    ]
    seeded["characters"] = [character] + other_characters

    session.update(
        {
            "campaign_id": campaign_id,
            "character_ids": [c["character_id"] for c in seeded["characters"]],
            "episode_title": "A Spark on the Coast",
            "scene": {
                "location_id": "loc_seabreeze_town",
                "description": "The harbor square of Seabreeze Town on a bright morning.",
                "mood": "adventurous",
            },
            "current_objectives": [
                {
                    "objective_id": "obj_meet_professor",
                    "description": "Meet Professor Willow at her lab.",
                    "status": "active",
                },
                {
                    "objective_id": "obj_reach_route_1",
                    "description": "Travel north onto Route 1.",
                    "status": "active",
                },
            ],
            "player_choices": {
                "options_presented": copy.deepcopy(STARTER_CHOICES),
                "safe_default": STARTER_CHOICES[0]["option_id"],
            },
            "event_log": list(session["event_log"])
            + [
                {
                    "t": timestamp,
                    "kind": "scene",
                    "summary": f"{trainer_name} begins their journey in Seabreeze Town",
                    "details": "Starter session seeded",
                }
            ],
        }
    )
    seeded["continuity"]["discovered_pokemon"] = [
        {
            "species_ref": copy.deepcopy(pokemon["species_ref"]),
            "form_ref": {"kind": "none"},
            "first_seen_location_id": "loc_seabreeze_town",
            "first_seen_session_id": session_id,
        }
    ]
    seeded["continuity"]["unresolved_hooks"] = [
        {
            "hook_id": "hook_lighthouse",
            "description": "Why does the old lighthouse flicker?",
            "urgency": "low",
            "introduced_in_session_id": session_id,
            "linked_location_id": "loc_seabreeze_town",
            "status": "open",
        }
    ]
    return seeded
