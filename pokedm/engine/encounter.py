"""
Encounter synthesizer.

Builds a complete, internally consistent encounter (opponent slot,
participants, turn order, choices, event-log entries and narration) from the
current session. Output is plain data; persisting it is the caller's job.
"""

import random
import re
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pokedm.engine.encounter_profiles import DEFAULT_PROFILES, EncounterProfile, EncounterProfiles
from pokedm.engine.merge import append_events
from pokedm.utils.clock import Clock, epoch_ms, isoformat, utc_now

EncounterType = Literal["wild", "trainer"]

ENCOUNTER_TRIGGER_KEYWORDS = (
    "battle",
    "encounter",
    "fight",
    "wild",
    "trainer",
    "duel",
    "challenge",
    "combat",
)
PROGRESSION_KEYWORDS = (
    "continue",
    "explore",
    "proceed",
    "advance",
    "go",
    "travel",
    "route",
    "path",
    "next",
)
TRAINER_KEYWORDS = ("trainer", "rival", "npc")

TRAINER_LEVEL_OFFSET = 1
DEFAULT_LEAD_LEVEL = 5
MIN_OPPONENT_LEVEL = 2
MAX_OPPONENT_LEVEL = 100
HARD_LEVEL_THRESHOLD = 15
EASY_FAILURE_THRESHOLD = 2

RISK_ORDER = {"low": 0, "medium": 1, "high": 2}

# Trigger words match as word prefixes ("battles", "fighting"); progression
# words must be whole words so "go" does not fire on "good".
_TRIGGER_RE = re.compile(r"\b(?:" + "|".join(ENCOUNTER_TRIGGER_KEYWORDS) + r")")
_PROGRESSION_RE = re.compile(r"\b(?:" + "|".join(PROGRESSION_KEYWORDS) + r")\b")
_TRAINER_RE = re.compile(r"\b(?:" + "|".join(TRAINER_KEYWORDS) + r")")


# ==================== Trigger policy ====================


def party_instance_ids(document: Dict[str, Any]) -> List[str]:
    return [
        pokemon["instance_id"]
        for character in document.get("characters", [])
        for pokemon in character.get("pokemon_party", [])
        if pokemon.get("instance_id")
    ]


def has_party_pokemon(document: Dict[str, Any]) -> bool:
    return any(character.get("pokemon_party") for character in document.get("characters", []))


def detect_encounter_type(text: str) -> EncounterType:
    return "trainer" if _TRAINER_RE.search(text.lower()) else "wild"


def has_encounter_history(document: Dict[str, Any]) -> bool:
    session = document.get("session", {})
    if session.get("encounters"):
        return True
    return any(
        entry.get("kind") in ("encounter", "battle") for entry in session.get("event_log", [])
    )


def should_start_encounter(
    document: Dict[str, Any], user_input: str = "", narration: str = ""
) -> bool:
    """
    Heuristic backstop deciding whether a turn should open a battle.

    Never while a battle is active or without party Pokémon. Explicit battle
    words always trigger; progression words only trigger before the
    session's first encounter.
    """
    session = document.get("session")
    if not session or session.get("battle_state", {}).get("active"):
        return False
    if not has_party_pokemon(document):
        return False

    text = f"{user_input} {narration}".lower()
    if _TRIGGER_RE.search(text):
        return True
    if has_encounter_history(document):
        return False
    return bool(_PROGRESSION_RE.search(text))


# ==================== Synthesis ====================


@dataclass
class EncounterPlan:
    encounter: Dict[str, Any]
    battle_state: Dict[str, Any]
    narration: str
    choices: List[Dict[str, Any]]
    safe_default: str
    event_log_entries: List[Dict[str, Any]]

    def to_update(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Partial document that installs this encounter into ``document``"""
        session = document["session"]
        flags = session["fail_soft_flags"]
        auto_scaled = (
            self.encounter["difficulty"] == "easy"
            and flags["recent_failures"] >= EASY_FAILURE_THRESHOLD
        )
        return {
            "session": {
                "encounters": list(session["encounters"]) + [self.encounter],
                "battle_state": self.battle_state,
                "player_choices": {
                    "options_presented": self.choices,
                    "safe_default": self.safe_default,
                },
                "fail_soft_flags": {
                    "difficulty_adjusted": flags["difficulty_adjusted"] or auto_scaled,
                    "auto_scaled_last_encounter": auto_scaled,
                },
                "event_log": append_events(session["event_log"], self.event_log_entries),
            }
        }


def safe_default_choice(choices: List[Dict[str, Any]]) -> str:
    """Lowest-risk option id; the first one wins ties"""
    return min(choices, key=lambda c: RISK_ORDER.get(c["risk_level"], len(RISK_ORDER)))[
        "option_id"
    ]


def opponent_level(lead_level: int, encounter_type: EncounterType) -> int:
    offset = TRAINER_LEVEL_OFFSET if encounter_type == "trainer" else 0
    return max(MIN_OPPONENT_LEVEL, min(MAX_OPPONENT_LEVEL, lead_level + offset))


def encounter_difficulty(document: Dict[str, Any], level: int) -> str:
    recent_failures = document["session"]["fail_soft_flags"].get("recent_failures", 0)
    if recent_failures >= EASY_FAILURE_THRESHOLD:
        return "easy"
    if level >= HARD_LEVEL_THRESHOLD:
        return "hard"
    return "normal"


def opponent_stats(level: int) -> Dict[str, Any]:
    hp = max(16, 12 + level * 2)
    return {
        "hp": {"current": hp, "max": hp},
        "attack": max(10, 7 + level),
        "defense": max(10, 6 + level),
        "special_attack": max(10, 7 + level),
        "special_defense": max(10, 6 + level),
        "speed": max(10, 8 + level),
    }


class EncounterSynthesizer:
    """
    Deterministic encounter construction.

    Given the same ``rng`` seed and clock, the same session always yields the
    same encounter.
    """

    def __init__(
        self,
        profiles: Optional[EncounterProfiles] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
    ):
        self.profiles = profiles or DEFAULT_PROFILES
        self.rng = rng or random.Random()
        self.clock = clock or utc_now

    def synthesize(
        self, document: Dict[str, Any], encounter_type: EncounterType = "wild"
    ) -> EncounterPlan:
        encounter_type = "trainer" if encounter_type == "trainer" else "wild"
        now = self.clock()
        encounter_id = self._encounter_id(epoch_ms(now))
        profile = self.rng.choice(self.profiles.for_type(encounter_type))

        level = opponent_level(self._lead_level(document), encounter_type)
        slot_id = f"{encounter_id}_slot_1"
        party_refs = party_instance_ids(document)
        trainer_name = profile.trainer_name or "A rival trainer"
        opponent_kind = "npc_pokemon" if encounter_type == "trainer" else "wild_pokemon"

        participants = [
            {
                "participant_id": f"{encounter_id}_party_{index}",
                "kind": "party_pokemon",
                "ref": ref,
                "notes": "Player party participant",
            }
            for index, ref in enumerate(party_refs, start=1)
        ]
        if encounter_type == "trainer":
            participants.append(
                {
                    "participant_id": f"{encounter_id}_npc_trainer",
                    "kind": "npc_trainer",
                    "ref": f"npc_{encounter_id}",
                    "notes": f"{trainer_name} issued a battle challenge",
                }
            )
        participants.append(
            {
                "participant_id": f"{encounter_id}_opponent_1",
                "kind": opponent_kind,
                "ref": slot_id,
                "notes": f"{profile.display_name} enters the battle",
            }
        )

        encounter = {
            "encounter_id": encounter_id,
            "type": encounter_type,
            "difficulty": encounter_difficulty(document, level),
            "status": "active",
            "participants": participants,
            "wild_slots": [self._opponent_slot(profile, slot_id, level)],
        }

        turn_order = [
            {"slot": index, "participant_kind": "party_pokemon", "ref": ref, "fainted": False}
            for index, ref in enumerate(party_refs, start=1)
        ]
        turn_order.append(
            {
                "slot": len(turn_order) + 1,
                "participant_kind": opponent_kind,
                "ref": slot_id,
                "fainted": False,
            }
        )

        if encounter_type == "trainer":
            summary = f"{trainer_name} challenges the party. Battle begins now."
            narration = (
                f'{trainer_name} steps into your path and points forward. '
                f'"{profile.display_name}, battle formation!" '
                "A trainer battle starts immediately (Round 1)."
            )
            opening = f"{trainer_name} initiated a trainer encounter"
        else:
            summary = f"A wild {profile.display_name} appears. Battle begins now."
            narration = (
                f"A wild {profile.display_name} bursts into view and locks onto your team. "
                "The encounter shifts straight into battle (Round 1)."
            )
            opening = f"Wild {profile.display_name} initiated an encounter"

        battle_state = {
            "active": True,
            "encounter_id": encounter_id,
            "round": 1,
            "turn_order": turn_order,
            "field_effects": [],
            "last_action_summary": summary,
        }

        choices = battle_choices(encounter_type, profile.display_name)
        timestamp = isoformat(now)
        events = [
            {
                "t": timestamp,
                "kind": "encounter",
                "summary": opening,
                "details": f"Encounter ID: {encounter_id}",
            },
            {
                "t": timestamp,
                "kind": "battle",
                "summary": f"Battle started against {profile.display_name}",
                "details": f"Round 1 started with {len(turn_order)} participants",
            },
        ]

        return EncounterPlan(
            encounter=encounter,
            battle_state=battle_state,
            narration=narration,
            choices=choices,
            safe_default=safe_default_choice(choices),
            event_log_entries=events,
        )

    def _encounter_id(self, timestamp_ms: int) -> str:
        nonce = "".join(self.rng.choices(string.ascii_lowercase + string.digits, k=5))
        return f"encounter_{timestamp_ms}_{nonce}"

    @staticmethod
    def _lead_level(document: Dict[str, Any]) -> int:
        for character in document.get("characters", []):
            if character.get("pokemon_party"):
                return character["pokemon_party"][0].get("level") or DEFAULT_LEAD_LEVEL
        return DEFAULT_LEAD_LEVEL

    @staticmethod
    def _opponent_slot(profile: EncounterProfile, slot_id: str, level: int) -> Dict[str, Any]:
        return {
            "encounter_slot_id": slot_id,
            "species_ref": {"kind": "canon", "ref": f"canon:{profile.species}"},
            "form_ref": {"kind": "none"},
            "level": level,
            "typing": list(profile.typing),
            "ability": {
                "kind": "canon",
                "name": profile.ability.name,
                "description": profile.ability.description,
            },
            "moves": [{"kind": "canon", **move.model_dump()} for move in profile.moves],
            "stats": opponent_stats(level),
            "status_conditions": [],
            "capture": {"attempts": 0, "result": "not_attempted"},
        }


def battle_choices(encounter_type: EncounterType, opponent_name: str) -> List[Dict[str, Any]]:
    if encounter_type == "trainer":
        return [
            {
                "option_id": "battle_opening",
                "label": "Open with a safe move",
                "description": f"Command your lead Pokemon to open with a reliable move against {opponent_name}.",
                "risk_level": "low",
            },
            {
                "option_id": "battle_defend",
                "label": "Defend and scout",
                "description": f"Take a defensive turn to read {opponent_name} before committing to a strategy.",
                "risk_level": "low",
            },
            {
                "option_id": "battle_switch",
                "label": "Switch for matchup",
                "description": "Switch to another party Pokemon to improve your type matchup early.",
                "risk_level": "medium",
            },
        ]
    return [
        {
            "option_id": "battle_opening",
            "label": "Open with a safe move",
            "description": f"Command your lead Pokemon to test {opponent_name} with a low-risk opening attack.",
            "risk_level": "low",
        },
        {
            "option_id": "battle_defend",
            "label": "Defend and observe",
            "description": f"Use a defensive action first to observe {opponent_name}'s behavior and move style.",
            "risk_level": "low",
        },
        {
            "option_id": "battle_capture_setup",
            "label": "Set up for capture",
            "description": f"Lower {opponent_name}'s HP carefully and prepare for a capture attempt later in the battle.",
            "risk_level": "medium",
        },
    ]
