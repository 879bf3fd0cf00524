"""
Progression engine: XP, level-ups, badges and milestones.

No XP ledger is stored; each event is evaluated on its own. A Pokémon gains
one level when a single event is worth at least ``XP_PER_LEVEL``.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from pokedm.engine.merge import StateMergeEngine, append_events
from pokedm.utils.clock import Clock, now_iso
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

BASE_XP_PER_BATTLE = 100
XP_PER_LEVEL = 1000
XP_MULTIPLIER_WIN = 1.5
XP_MULTIPLIER_LOSS = 0.5
XP_BONUS_FIRST_TIME = 200
XP_BONUS_TYPE_ADVANTAGE = 50
XP_PARTICIPANT_BONUS = 0.1
STAT_GROWTH_PER_LEVEL = 0.1
MAX_LEVEL = 100
MAX_BADGES = 8

WIN_OUTCOMES = ("win", "victory")
LOSS_OUTCOMES = ("loss", "defeat")

# details marker on event-log entries recording a battle victory
BATTLE_WIN_MARKER = "result=win"

Document = Dict[str, Any]


class ProgressionEvent(BaseModel):
    """A gameplay event that may grant progression"""

    type: Literal["battle", "encounter", "capture", "discovery"]
    outcome: Optional[str] = Field(None, description="win/victory/loss/defeat/fled")
    participants: List[str] = Field(default_factory=list)
    first_time: bool = False
    type_advantage_used: bool = False
    success: bool = False


def calculate_xp(event: ProgressionEvent) -> int:
    """
    XP for one event.

    Base XP is scaled by outcome, flat bonuses are added, then the total is
    scaled up 10% per participant beyond the first.
    """
    xp = float(BASE_XP_PER_BATTLE)
    if event.outcome in WIN_OUTCOMES:
        xp *= XP_MULTIPLIER_WIN
    elif event.outcome in LOSS_OUTCOMES:
        xp *= XP_MULTIPLIER_LOSS
    if event.first_time:
        xp += XP_BONUS_FIRST_TIME
    if event.type_advantage_used:
        xp += XP_BONUS_TYPE_ADVANTAGE
    additional = max(0, len(event.participants) - 1)
    return max(0, int(xp * (1 + additional * XP_PARTICIPANT_BONUS)))


def should_level_up(pokemon: Dict[str, Any], xp_gained: int) -> bool:
    return xp_gained >= XP_PER_LEVEL and pokemon.get("level", 1) < MAX_LEVEL


def apply_level_up(pokemon: Dict[str, Any], levels: int = 1) -> Dict[str, Any]:
    """Return a copy of ``pokemon`` raised by ``levels`` with stats scaled 10% per level"""
    updated = copy.deepcopy(pokemon)
    current = updated.get("level", 1)
    new_level = min(MAX_LEVEL, current + levels)
    multiplier = 1 + (new_level - current) * STAT_GROWTH_PER_LEVEL
    updated["level"] = new_level

    stats = updated.get("stats")
    if stats:
        stats["hp"] = {
            "current": int(stats["hp"]["current"] * multiplier),
            "max": int(stats["hp"]["max"] * multiplier),
        }
        for name in ("attack", "defense", "special_attack", "special_defense", "speed"):
            stats[name] = int(stats[name] * multiplier)
    return updated


# ==================== Badges & milestones ====================

BadgePredicate = Callable[[Document, Dict[str, Any], ProgressionEvent], bool]
MilestonePredicate = Callable[[Document], bool]


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    predicate: BadgePredicate


@dataclass(frozen=True)
class MilestoneRule:
    milestone_id: str
    title: str
    description: str
    predicate: MilestonePredicate


def _battle_wins(document: Document) -> int:
    return sum(
        1
        for entry in document["session"]["event_log"]
        if entry["kind"] == "battle" and entry.get("details") == BATTLE_WIN_MARKER
    )


BADGE_RULES = (
    BadgeRule(
        "first_battle",
        lambda doc, char, event: event.type == "battle" and event.outcome in WIN_OUTCOMES,
    ),
    BadgeRule(
        "first_capture",
        lambda doc, char, event: event.type == "capture" and event.success,
    ),
    BadgeRule("champion", lambda doc, char, event: _battle_wins(doc) >= 10),
    BadgeRule("collector", lambda doc, char, event: len(char["pokemon_party"]) >= 10),
)

MILESTONE_RULES = (
    MilestoneRule(
        "first_pokemon",
        "First Pokémon",
        "Caught your first Pokémon",
        lambda doc: sum(len(c["pokemon_party"]) for c in doc["characters"]) >= 1,
    ),
    MilestoneRule(
        "first_badge",
        "First Badge",
        "Earned your first badge",
        lambda doc: sum(c["progression"]["badges"] for c in doc["characters"]) >= 1,
    ),
    MilestoneRule(
        "party_of_six",
        "Full Party",
        "Have a full party of 6 Pokémon",
        lambda doc: max((len(c["pokemon_party"]) for c in doc["characters"]), default=0) >= 6,
    ),
)


@dataclass
class ProgressionResult:
    document: Document
    xp_gained: int = 0
    level_ups: List[str] = field(default_factory=list)
    badges: List[Dict[str, str]] = field(default_factory=list)
    milestones: List[str] = field(default_factory=list)


class ProgressionEngine:
    """Turns events into progression and applies it through the merge engine"""

    def __init__(
        self,
        merge_engine: Optional[StateMergeEngine] = None,
        badge_rules=BADGE_RULES,
        milestone_rules=MILESTONE_RULES,
        clock: Optional[Clock] = None,
    ):
        self.merge_engine = merge_engine or StateMergeEngine()
        self.badge_rules = badge_rules
        self.milestone_rules = milestone_rules
        self.clock = clock

    def apply(self, document: Document, event: ProgressionEvent) -> ProgressionResult:
        """
        Evaluate ``event`` against ``document`` and return the validated result

        Raises:
            SessionValidationError: the progressed document does not validate
        """
        result = ProgressionResult(document=document)
        characters = copy.deepcopy(document["characters"])
        session_id = document["session"]["session_id"]
        timestamp = now_iso(self.clock)
        events: List[Dict[str, Any]] = []

        if event.type in ("battle", "encounter"):
            result.xp_gained = calculate_xp(event)
            for character in characters:
                party = character["pokemon_party"]
                for index, pokemon in enumerate(party):
                    if should_level_up(pokemon, result.xp_gained):
                        party[index] = apply_level_up(pokemon)
                        result.level_ups.append(pokemon["instance_id"])

        if event.type == "battle" and event.outcome in WIN_OUTCOMES:
            events.append(
                {"t": timestamp, "kind": "battle", "summary": "Battle won", "details": BATTLE_WIN_MARKER}
            )

        # Predicates see the session as it will be after this event
        staged = dict(document)
        staged["characters"] = characters
        staged["session"] = dict(document["session"])
        staged["session"]["event_log"] = append_events(document["session"]["event_log"], events)

        for character in characters:
            earned = {a["achievement_id"] for a in character["achievements"]}
            for rule in self.badge_rules:
                if character["progression"]["badges"] >= MAX_BADGES:
                    break
                if rule.badge_id in earned or not rule.predicate(staged, character, event):
                    continue
                character["progression"]["badges"] += 1
                character["achievements"].append(
                    {
                        "achievement_id": rule.badge_id,
                        "title": f"Badge: {rule.badge_id}",
                        "description": f"Earned {rule.badge_id} badge",
                        "earned_in_session_id": session_id,
                    }
                )
                earned.add(rule.badge_id)
                result.badges.append(
                    {"character_id": character["character_id"], "badge_id": rule.badge_id}
                )
                events.append(
                    {
                        "t": timestamp,
                        "kind": "reward",
                        "summary": f"{character['trainer']['name'] or character['character_id']} earned the {rule.badge_id} badge",
                    }
                )

        for rule in self.milestone_rules:
            if not rule.predicate(staged):
                continue
            granted = False
            for character in characters:
                milestones = character["progression"]["milestones"]
                existing = next(
                    (m for m in milestones if m["milestone_id"] == rule.milestone_id), None
                )
                if existing is None:
                    milestones.append(
                        {
                            "milestone_id": rule.milestone_id,
                            "title": rule.title,
                            "description": rule.description,
                            "completed": True,
                        }
                    )
                    granted = True
                elif not existing["completed"]:
                    existing["completed"] = True
                    granted = True
            if granted:
                result.milestones.append(rule.milestone_id)

        update: Dict[str, Any] = {"characters": characters}
        if events:
            update["session"] = {
                "event_log": append_events(document["session"]["event_log"], events)
            }
        result.document = self.merge_engine.merge(document, update)

        if result.level_ups or result.badges or result.milestones:
            logger.info(
                f"Progression for {session_id}: xp={result.xp_gained}, "
                f"level_ups={len(result.level_ups)}, badges={[b['badge_id'] for b in result.badges]}, "
                f"milestones={result.milestones}"
            )
        return result
