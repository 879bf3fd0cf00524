"""
Custom Pokémon entries stored in ``custom_dex.pokemon``
"""

from typing import List, Literal, Optional

from pydantic import Field

from .base import StrictModel
from .references import CUSTOM_SPECIES_PREFIX, SpeciesRef

MoveCategory = Literal["physical", "special", "status"]
CustomClassification = Literal[
    "regional_variant",
    "regional_evolution",
    "split_evolution",
    "convergent_species",
    "new_species",
]

# Classifications that must point back at a canon species
DERIVED_CLASSIFICATIONS = frozenset(
    {"regional_variant", "regional_evolution", "split_evolution"}
)


class Resemblance(StrictModel):
    base_canon_ref: str
    note: Optional[str] = None


class CustomAbility(StrictModel):
    name: str
    description: str


class SignatureMove(StrictModel):
    name: str
    type: str
    category: MoveCategory
    pp: int = Field(..., ge=1, le=40)
    accuracy: Optional[int] = Field(..., ge=0, le=100)
    power: Optional[int] = Field(..., ge=0, le=200)
    simple_effect: str


class CustomEvolution(StrictModel):
    kind: Literal["none", "evolves_from", "evolves_to", "split_paths"]
    notes: Optional[str] = None
    from_ref: Optional[SpeciesRef] = None
    to_refs: Optional[List[SpeciesRef]] = None


class IntroducedIn(StrictModel):
    campaign_id: str
    first_seen_location_id: str
    first_seen_session_id: str


class CustomPokemon(StrictModel):
    """A user-designed species"""

    custom_species_id: str = Field(..., pattern=f"^{CUSTOM_SPECIES_PREFIX}")
    display_name: str = Field(..., min_length=1)
    classification: CustomClassification
    resembles: Optional[Resemblance] = None
    concept: str
    typing: List[str] = Field(..., min_length=1, max_length=2)
    lore: str
    design_hooks: List[str]
    ability: CustomAbility
    signature_move: Optional[SignatureMove] = None
    learnset_simplified: List[str]
    evolution: CustomEvolution
    introduced_in: IntroducedIn
