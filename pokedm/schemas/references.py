"""
Species and form references.

A species reference on the wire is ``{"kind": "canon", "ref": "canon:pikachu"}``
or ``{"kind": "custom", "ref": "custom:cstm_embermole"}``. Inside the engine the
string form is parsed once into ``CanonRef`` / ``CustomRef`` so no component has
to sniff prefixes itself.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

from pydantic import Field, model_validator

from .base import StrictModel

CANON_PREFIX = "canon:"
CUSTOM_PREFIX = "custom:"
CUSTOM_SPECIES_PREFIX = "cstm_"

RefKind = Literal["canon", "custom"]
FormKind = Literal[
    "none",
    "regional_variant",
    "regional_evolution",
    "split_evolution",
    "convergent_species",
    "new_species",
]


@dataclass(frozen=True)
class CanonRef:
    """Built-in reference game data, e.g. ``canon:pikachu``"""

    name: str

    @property
    def kind(self) -> RefKind:
        return "canon"

    def format(self) -> str:
        return f"{CANON_PREFIX}{self.name}"


@dataclass(frozen=True)
class CustomRef:
    """User-created species, e.g. ``custom:cstm_embermole``"""

    species_id: str

    @property
    def kind(self) -> RefKind:
        return "custom"

    def format(self) -> str:
        return f"{CUSTOM_PREFIX}{self.species_id}"


EntityRef = Union[CanonRef, CustomRef]


def parse_ref(value: str) -> EntityRef:
    """
    Parse a prefixed reference string

    Raises:
        ValueError: unknown prefix, empty name, or a custom id without ``cstm_``
    """
    if value.startswith(CANON_PREFIX):
        name = value[len(CANON_PREFIX):]
        if not name:
            raise ValueError(f"Empty canon reference: {value!r}")
        return CanonRef(name)
    if value.startswith(CUSTOM_PREFIX):
        species_id = value[len(CUSTOM_PREFIX):]
        if not species_id.startswith(CUSTOM_SPECIES_PREFIX):
            raise ValueError(
                f"Custom reference must name a '{CUSTOM_SPECIES_PREFIX}' id: {value!r}"
            )
        return CustomRef(species_id)
    raise ValueError(
        f"Reference must start with '{CANON_PREFIX}' or '{CUSTOM_PREFIX}': {value!r}"
    )


def format_ref(ref: EntityRef) -> str:
    return ref.format()


class SpeciesRef(StrictModel):
    """Tagged species reference; ``kind`` must agree with the ``ref`` prefix"""

    kind: RefKind = Field(..., description="canon or custom")
    ref: str = Field(..., min_length=1, description="Prefixed reference string")

    @model_validator(mode="after")
    def check_prefix(self) -> "SpeciesRef":
        parsed = parse_ref(self.ref)
        if parsed.kind != self.kind:
            raise ValueError(
                f"Reference {self.ref!r} does not match kind {self.kind!r}"
            )
        return self

    def parsed(self) -> EntityRef:
        return parse_ref(self.ref)

    @classmethod
    def from_entity(cls, ref: EntityRef) -> "SpeciesRef":
        return cls(kind=ref.kind, ref=ref.format())


class FormRef(StrictModel):
    """Variant form of a species"""

    kind: FormKind
    region: Optional[str] = None
    lore: Optional[str] = None
    base_canon_ref: Optional[str] = None
