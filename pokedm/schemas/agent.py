"""
Structured outputs exchanged with the generation service, and the
result shape every dispatched agent returns to the orchestrator
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .session import ChoiceOption

Intent = Literal["narration", "roll", "state", "lore", "design"]
INTENTS = ("narration", "roll", "state", "lore", "design")
DEFAULT_INTENT: Intent = "narration"


class AgentOutput(BaseModel):
    """Base for model-facing outputs; ``null`` for an optional key means absent"""

    model_config = ConfigDict(extra="forbid")


class IntentClassification(AgentOutput):
    intent: Intent = Field(..., description="One of narration, roll, state, lore, design")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: Optional[str] = Field(None, description="Short justification")


class NarrationOutput(AgentOutput):
    narration: str = Field(..., description="Prose shown to the player")
    choices: List[ChoiceOption] = Field(
        default_factory=list, description="Up to three next-step options"
    )
    state_update: Optional[Dict[str, Any]] = Field(
        None, description="Partial session document to merge"
    )

    @field_validator("choices")
    @classmethod
    def limit_choices(cls, v: List[ChoiceOption]) -> List[ChoiceOption]:
        return v[:3]


class BattleOutcome(AgentOutput):
    """Result of a resolved battle reported by the rules agent"""

    result: Literal["win", "loss", "fled", "captured"] = Field(
        ..., description="How the active battle ended"
    )
    summary: str = Field(..., description="One sentence summary of the battle")
    first_time: bool = Field(False, description="First battle against this species")
    type_advantage_used: bool = Field(False)
    capture_succeeded: bool = Field(False)


class RulesOutput(AgentOutput):
    explanation: str = Field(..., description="Rules or dice explanation for the player")
    battle_outcome: Optional[BattleOutcome] = None
    state_update: Optional[Dict[str, Any]] = None


class StateOutput(AgentOutput):
    summary: str = Field(..., description="What changed, in one or two sentences")
    state_update: Dict[str, Any] = Field(
        default_factory=dict, description="Partial session document to merge"
    )


class LoreOutput(AgentOutput):
    answer: str = Field(..., description="Answer grounded in the session's world")


class DesignOutput(AgentOutput):
    explanation: str = Field(..., description="Design notes for the player")
    custom_pokemon: Optional[Dict[str, Any]] = Field(
        None, description="A complete custom Pokémon entry to register"
    )


class AgentResult(BaseModel):
    """What every dispatched agent hands back to the orchestrator"""

    intent: Intent
    narration: str
    choices: List[ChoiceOption] = Field(default_factory=list)
    state_update: Optional[Dict[str, Any]] = None
    battle_outcome: Optional[BattleOutcome] = None
    custom_pokemon: Optional[Dict[str, Any]] = None
