"""
Opponent profiles used by the encounter synthesizer.

The built-in set is small; a larger set can be supplied as a
JSON file (``ENCOUNTER_PROFILES_PATH``) with ``wild`` and ``trainer`` lists.
"""

import json
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from pokedm.schemas.custom_pokemon import MoveCategory
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)


class ProfileAbility(BaseModel):
    name: str
    description: str


class ProfileMove(BaseModel):
    name: str
    type: str
    category: MoveCategory
    pp: int = Field(..., ge=0)
    accuracy: Optional[int] = Field(..., ge=0, le=100)
    power: Optional[int] = Field(..., ge=0, le=200)
    simple_effect: str


class EncounterProfile(BaseModel):
    species: str = Field(..., description="Canon species name, e.g. 'pidgey'")
    display_name: str
    typing: List[str] = Field(..., min_length=1, max_length=2)
    ability: ProfileAbility
    moves: List[ProfileMove]
    trainer_name: Optional[str] = None


class EncounterProfiles(BaseModel):
    wild: List[EncounterProfile] = Field(..., min_length=1)
    trainer: List[EncounterProfile] = Field(..., min_length=1)

    def for_type(self, encounter_type: Literal["wild", "trainer"]) -> List[EncounterProfile]:
        return self.trainer if encounter_type == "trainer" else self.wild


DEFAULT_PROFILES = EncounterProfiles(
    wild=[
        EncounterProfile(
            species="pidgey",
            display_name="Pidgey",
            typing=["Normal", "Flying"],
            ability=ProfileAbility(
                name="keen-eye",
                description="The Pokemon's keen eyes prevent its accuracy from being lowered.",
            ),
            moves=[
                ProfileMove(
                    name="tackle",
                    type="Normal",
                    category="physical",
                    pp=35,
                    accuracy=95,
                    power=40,
                    simple_effect="A physical attack in which the user charges and slams into the target.",
                ),
                ProfileMove(
                    name="sand-attack",
                    type="Ground",
                    category="status",
                    pp=15,
                    accuracy=100,
                    power=None,
                    simple_effect="Throws sand in the target face to lower accuracy.",
                ),
            ],
        ),
        EncounterProfile(
            species="mareep",
            display_name="Mareep",
            typing=["Electric"],
            ability=ProfileAbility(
                name="static",
                description="Contact with the Pokemon may cause paralysis.",
            ),
            moves=[
                ProfileMove(
                    name="thunder-shock",
                    type="Electric",
                    category="special",
                    pp=30,
                    accuracy=100,
                    power=40,
                    simple_effect="A jolt of electricity is hurled at the target.",
                ),
                ProfileMove(
                    name="growl",
                    type="Normal",
                    category="status",
                    pp=40,
                    accuracy=100,
                    power=None,
                    simple_effect="The user growls in an endearing way, making the foe less wary.",
                ),
            ],
        ),
    ],
    trainer=[
        EncounterProfile(
            species="eevee",
            display_name="Eevee",
            typing=["Normal"],
            trainer_name="Scout Mira",
            ability=ProfileAbility(
                name="run-away",
                description="Enables a sure getaway from wild Pokemon.",
            ),
            moves=[
                ProfileMove(
                    name="quick-attack",
                    type="Normal",
                    category="physical",
                    pp=30,
                    accuracy=100,
                    power=40,
                    simple_effect="An almost invisibly fast attack that is certain to strike first.",
                ),
                ProfileMove(
                    name="tail-whip",
                    type="Normal",
                    category="status",
                    pp=30,
                    accuracy=100,
                    power=None,
                    simple_effect="The user wags its tail cutely, making opposing Pokemon less wary.",
                ),
            ],
        ),
        EncounterProfile(
            species="growlithe",
            display_name="Growlithe",
            typing=["Fire"],
            trainer_name="Cadet Rowan",
            ability=ProfileAbility(
                name="intimidate",
                description="Lowers opposing Pokemon's Attack stat.",
            ),
            moves=[
                ProfileMove(
                    name="ember",
                    type="Fire",
                    category="special",
                    pp=25,
                    accuracy=100,
                    power=40,
                    simple_effect="The target is attacked with small flames.",
                ),
                ProfileMove(
                    name="leer",
                    type="Normal",
                    category="status",
                    pp=30,
                    accuracy=100,
                    power=None,
                    simple_effect="Frightens opposing Pokemon with a scary face to lower Defense.",
                ),
            ],
        ),
    ],
)


def load_profiles(path: Optional[str] = None) -> EncounterProfiles:
    """Load profiles from a JSON file, or return the built-in set"""
    if not path:
        return DEFAULT_PROFILES
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    profiles = EncounterProfiles.model_validate(data)
    logger.info(
        f"Loaded encounter profiles from {path}: "
        f"{len(profiles.wild)} wild, {len(profiles.trainer)} trainer"
    )
    return profiles
