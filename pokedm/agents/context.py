"""
Compact session context handed to agents

The full document is large and mostly irrelevant to any single turn; agents
see a trimmed view with the fields they are allowed to reason about.
"""

import json
from typing import Any, Dict, List

RECENT_EVENT_COUNT = 8


def _party_summary(character: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "instance_id": pokemon["instance_id"],
            "species": pokemon["species_ref"]["ref"],
            "nickname": pokemon.get("nickname"),
            "level": pokemon["level"],
            "typing": pokemon["typing"],
            "hp": pokemon["stats"]["hp"],
            "moves": [move["name"] for move in pokemon["moves"]],
            "status_conditions": pokemon["status_conditions"],
        }
        for pokemon in character["pokemon_party"]
    ]


def build_context(document: Dict[str, Any]) -> Dict[str, Any]:
    session = document["session"]
    campaign = document["campaign"]
    battle = session["battle_state"]
    return {
        "campaign": {
            "campaign_id": campaign["campaign_id"],
            "region": {key: campaign["region"][key] for key in ("name", "theme", "climate")},
            "locations": [
                {"location_id": loc["location_id"], "name": loc["name"]}
                for loc in campaign["locations"]
            ],
        },
        "characters": [
            {
                "character_id": character["character_id"],
                "trainer": character["trainer"]["name"],
                "badges": character["progression"]["badges"],
                "party": _party_summary(character),
            }
            for character in document["characters"]
        ],
        "session": {
            "episode_title": session["episode_title"],
            "scene": session["scene"],
            "current_objectives": session["current_objectives"],
            "battle_state": {
                "active": battle["active"],
                "round": battle["round"],
                "turn_order": battle["turn_order"],
                "last_action_summary": battle.get("last_action_summary"),
            },
            "fail_soft_flags": session["fail_soft_flags"],
            "player_choices": session["player_choices"],
            "recent_events": session["event_log"][-RECENT_EVENT_COUNT:],
        },
        "custom_pokemon": sorted(document["custom_dex"]["pokemon"]),
    }


def render_context(document: Dict[str, Any]) -> str:
    return json.dumps(build_context(document), ensure_ascii=False, indent=1)
