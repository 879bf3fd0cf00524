"""
Session document schema (v1.1.0).

The session document is the root aggregate persisted once per play session.
Every object is closed-world (see ``StrictModel``): agents can only propose
keys declared here.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator

from .base import StrictModel
from .custom_pokemon import CustomPokemon, MoveCategory
from .references import FormRef, SpeciesRef

SCHEMA_VERSION = "1.1.0"
EVENT_LOG_LIMIT = 200

CANON_CACHE_KINDS = (
    "pokemon",
    "moves",
    "abilities",
    "types",
    "species",
    "evolution_chains",
    "items",
    "locations",
    "generations",
)

RefKind = Literal["canon", "custom"]
RiskLevel = Literal["low", "medium", "high"]
EventKind = Literal["scene", "choice", "encounter", "battle", "discovery", "reward", "recap"]


# ==================== Dex ====================


class CanonCacheStore(StrictModel):
    """Reference-only lookups, keyed by kind then id/name"""

    pokemon: Dict[str, Dict[str, Any]]
    moves: Dict[str, Dict[str, Any]]
    abilities: Dict[str, Dict[str, Any]]
    types: Dict[str, Dict[str, Any]]
    species: Dict[str, Dict[str, Any]]
    evolution_chains: Dict[str, Dict[str, Any]]
    items: Dict[str, Dict[str, Any]]
    locations: Dict[str, Dict[str, Any]]
    generations: Dict[str, Dict[str, Any]]


class CachePolicy(StrictModel):
    source: Literal["pokeapi"]
    gen_range: str = Field(..., pattern=r"^\d+-\d+$")
    ttl_hours: int = Field(..., gt=0)
    max_entries_per_kind: int = Field(..., gt=0)
    notes: Optional[str] = None


class Dex(StrictModel):
    canon_cache: CanonCacheStore
    cache_policy: CachePolicy


class RulesetFlags(StrictModel):
    allow_new_species: bool


class CustomDex(StrictModel):
    pokemon: Dict[str, CustomPokemon]
    ruleset_flags: RulesetFlags
    notes: Optional[str] = None


# ==================== Campaign ====================


class Region(StrictModel):
    name: str
    theme: str
    description: str
    environment_tags: List[str]
    climate: str


class Location(StrictModel):
    location_id: str
    name: str
    type: Literal["town", "route", "dungeon", "landmark"]
    description: str
    known: bool


class FactionMember(StrictModel):
    npc_id: str
    role: Literal["leader", "grunt", "researcher", "merchant", "ranger"]
    notes: Optional[str] = None


class Faction(StrictModel):
    faction_id: str
    name: str
    philosophy: str
    tone: Literal["misguided", "idealistic", "confused"]
    known_members: List[FactionMember]
    status: Literal["active", "dormant", "reformed"]


class RecurringNPC(StrictModel):
    npc_id: str
    name: str
    role: Literal["researcher", "merchant", "antagonist", "ranger", "guide"]
    disposition: Literal["friendly", "neutral", "tense"]
    notes: Optional[str] = None
    home_location_id: Optional[str] = None
    faction_id: Optional[str] = None


class WorldFact(StrictModel):
    fact_id: str
    title: str
    description: str
    tags: List[str]
    revealed: bool


class Campaign(StrictModel):
    campaign_id: str
    region: Region
    locations: List[Location]
    factions: List[Faction]
    recurring_npcs: List[RecurringNPC]
    world_facts: List[WorldFact]


def empty_campaign(campaign_id: str = "") -> Dict[str, Any]:
    return {
        "campaign_id": campaign_id,
        "region": {
            "name": "",
            "theme": "",
            "description": "",
            "environment_tags": [],
            "climate": "",
        },
        "locations": [],
        "factions": [],
        "recurring_npcs": [],
        "world_facts": [],
    }


# ==================== Characters ====================


class Bond(StrictModel):
    bond_id: str
    target: str
    description: str


class Trainer(StrictModel):
    name: str
    age_group: Literal["child", "teen", "adult"]
    background: str
    personality_traits: List[str]
    bonds: List[Bond]


class InventoryItem(StrictModel):
    kind: RefKind
    ref: str
    quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class Pokeballs(StrictModel):
    poke_ball: int = Field(..., ge=0)
    great_ball: int = Field(..., ge=0)
    ultra_ball: int = Field(..., ge=0)


class KeyItem(StrictModel):
    kind: RefKind
    ref: str
    notes: Optional[str] = None


class Inventory(StrictModel):
    items: List[InventoryItem]
    pokeballs: Pokeballs
    key_items: List[KeyItem]


class Ability(StrictModel):
    kind: RefKind
    name: str
    description: str


class Move(StrictModel):
    kind: RefKind
    name: str
    type: str
    category: MoveCategory
    pp: int = Field(..., ge=0)
    accuracy: Optional[int] = Field(..., ge=0, le=100)
    power: Optional[int] = Field(..., ge=0, le=200)
    notes: Optional[str] = None
    simple_effect: Optional[str] = None


class HitPoints(StrictModel):
    current: int = Field(..., ge=0)
    max: int = Field(..., ge=1)


class Stats(StrictModel):
    hp: HitPoints
    attack: int = Field(..., ge=0)
    defense: int = Field(..., ge=0)
    special_attack: int = Field(..., ge=0)
    special_defense: int = Field(..., ge=0)
    speed: int = Field(..., ge=0)


class MetAt(StrictModel):
    location_id: str
    session_id: str


class KnownInfo(StrictModel):
    met_at: MetAt
    lore_learned: List[str]
    seen_moves: List[str]
    notes: Optional[str] = None


class PartyPokemon(StrictModel):
    instance_id: str
    species_ref: SpeciesRef
    nickname: Optional[str] = None
    form_ref: FormRef
    typing: List[str] = Field(..., min_length=1, max_length=2)
    level: int = Field(..., ge=1, le=100)
    ability: Ability
    moves: List[Move]
    stats: Stats
    status_conditions: List[str]
    friendship: int = Field(..., ge=0, le=255)
    known_info: KnownInfo
    notes: Optional[str] = None


class Achievement(StrictModel):
    achievement_id: str
    title: str
    description: str
    earned_in_session_id: str


class Milestone(StrictModel):
    milestone_id: str
    title: str
    description: str
    completed: bool


class Progression(StrictModel):
    badges: int = Field(..., ge=0, le=8)
    milestones: List[Milestone]


class Character(StrictModel):
    character_id: str
    trainer: Trainer
    inventory: Inventory
    pokemon_party: List[PartyPokemon]
    achievements: List[Achievement]
    progression: Progression


# ==================== Session play-state ====================


class Scene(StrictModel):
    location_id: str
    description: str
    mood: Literal["calm", "tense", "adventurous"]


class Objective(StrictModel):
    objective_id: str
    description: str
    status: Literal["active", "completed", "failed_soft"]
    notes: Optional[str] = None


class Participant(StrictModel):
    participant_id: str
    kind: Literal[
        "party_pokemon", "npc_trainer", "npc_pokemon", "wild_pokemon", "environmental"
    ]
    ref: str
    notes: Optional[str] = None


class Capture(StrictModel):
    attempts: int = Field(..., ge=0)
    captured_by_character_id: Optional[str] = None
    result: Literal["not_attempted", "failed", "succeeded"]


class WildSlot(StrictModel):
    encounter_slot_id: str
    species_ref: SpeciesRef
    form_ref: FormRef
    level: int = Field(..., ge=1, le=100)
    typing: List[str] = Field(..., min_length=1, max_length=2)
    ability: Ability
    moves: List[Move]
    stats: Stats
    status_conditions: List[str]
    capture: Capture


class EncounterOutcome(StrictModel):
    summary: str
    fail_soft_applied: bool
    new_story_path: Optional[str] = None


class Encounter(StrictModel):
    encounter_id: str
    type: Literal["wild", "trainer", "environmental"]
    difficulty: Literal["easy", "normal", "hard"]
    status: Literal["active", "resolved", "bypassed"]
    participants: List[Participant]
    wild_slots: List[WildSlot]
    outcome: Optional[EncounterOutcome] = None


class TurnOrderEntry(StrictModel):
    slot: int = Field(..., ge=1)
    participant_kind: Literal["party_pokemon", "wild_pokemon", "npc_pokemon"]
    ref: str
    fainted: bool


class BattleState(StrictModel):
    active: bool
    encounter_id: Optional[str] = None
    round: int = Field(..., ge=0)
    turn_order: List[TurnOrderEntry]
    field_effects: List[str]
    last_action_summary: Optional[str] = None


class FailSoftFlags(StrictModel):
    recent_failures: int = Field(..., ge=0)
    recent_successes: int = Field(..., ge=0)
    difficulty_adjusted: bool
    party_confidence: Literal["low", "medium", "high"]
    auto_scaled_last_encounter: bool


class ChoiceOption(StrictModel):
    option_id: str
    label: str
    description: str
    risk_level: RiskLevel


class LastChoice(StrictModel):
    option_id: str
    timestamp: str


class PlayerChoices(StrictModel):
    options_presented: List[ChoiceOption]
    safe_default: Optional[str] = None
    last_choice: Optional[LastChoice] = None


class Controls(StrictModel):
    pause_requested: bool
    skip_requested: bool
    explain_requested: bool
    explain_depth: Optional[Literal["kid", "adult"]] = None


class EventLogEntry(StrictModel):
    t: str
    kind: EventKind
    summary: str
    details: Optional[str] = None


class SessionState(StrictModel):
    session_id: str
    campaign_id: str
    character_ids: List[str]
    episode_title: str
    scene: Scene
    current_objectives: List[Objective]
    encounters: List[Encounter]
    battle_state: BattleState
    fail_soft_flags: FailSoftFlags
    player_choices: PlayerChoices
    controls: Controls
    event_log: List[EventLogEntry] = Field(..., max_length=EVENT_LOG_LIMIT)


# ==================== Continuity ====================


class TimelineEntry(StrictModel):
    session_id: str
    episode_title: str
    summary: str
    canonized: bool
    date: str
    tags: List[str]


class DiscoveredPokemon(StrictModel):
    species_ref: SpeciesRef
    form_ref: FormRef
    first_seen_location_id: str
    first_seen_session_id: str
    notes: Optional[str] = None


class UnresolvedHook(StrictModel):
    hook_id: str
    description: str
    urgency: Literal["low", "med", "high"]
    introduced_in_session_id: str
    linked_faction_id: Optional[str] = None
    linked_location_id: Optional[str] = None
    status: Literal["open", "progressed", "resolved"]


class Recap(StrictModel):
    recap_id: str
    scope: Literal["campaign", "character"]
    target_id: str
    text: str
    updated_in_session_id: str


class Continuity(StrictModel):
    timeline: List[TimelineEntry]
    discovered_pokemon: List[DiscoveredPokemon]
    unresolved_hooks: List[UnresolvedHook]
    recaps: List[Recap]


class StateVersioning(StrictModel):
    current_version: str = Field(..., pattern=r"^\d+\.\d+\.\d+$")
    previous_versions: List[str]
    migration_notes: Optional[str] = None
    last_migrated_at: Optional[str] = None


# ==================== Root ====================


class SessionDocument(StrictModel):
    """Root persisted document for one play session"""

    schema_version: Optional[str] = None
    dex: Dex
    custom_dex: CustomDex
    campaign: Campaign
    characters: List[Character]
    session: SessionState
    continuity: Continuity
    state_versioning: StateVersioning

    @field_validator("campaign", mode="before")
    @classmethod
    def default_campaign(cls, value: Any) -> Any:
        # A null campaign is stored as the empty skeleton
        return empty_campaign() if value is None else value
