"""
Custom dex registry: checks the ruleset before a custom Pokémon is added
"""

from typing import Any, Dict

from pydantic import ValidationError

from pokedm.schemas.custom_pokemon import DERIVED_CLASSIFICATIONS, CustomPokemon
from pokedm.schemas.session import CANON_CACHE_KINDS


class CustomDexError(ValueError):
    """A custom Pokémon violates the session's ruleset"""


class CustomDexRegistry:
    """Builds merge proposals that add entries to ``custom_dex.pokemon``"""

    def build_registration(self, document: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate ``payload`` against the ruleset and return a partial update

        Raises:
            CustomDexError: ruleset violation, duplicate or canon alias
        """
        try:
            entry = CustomPokemon.model_validate(payload)
        except ValidationError as e:
            raise CustomDexError(f"Invalid custom Pokémon: {e}") from e

        custom_dex = document["custom_dex"]
        species_id = entry.custom_species_id

        if entry.classification == "new_species" and not custom_dex["ruleset_flags"]["allow_new_species"]:
            raise CustomDexError(
                "New species creation is disabled. Set ruleset_flags.allow_new_species to true."
            )
        if entry.classification in DERIVED_CLASSIFICATIONS and not (
            entry.resembles and entry.resembles.base_canon_ref
        ):
            raise CustomDexError(f"{entry.classification} requires resembles.base_canon_ref")
        if species_id in custom_dex["pokemon"]:
            raise CustomDexError(f"Custom Pokémon {species_id} already exists")

        canon_cache = document["dex"]["canon_cache"]
        if any(species_id in canon_cache.get(kind, {}) for kind in CANON_CACHE_KINDS):
            raise CustomDexError(f"Custom id {species_id} collides with a canon cache entry")

        return {
            "custom_dex": {
                "pokemon": {species_id: entry.model_dump(mode="json", exclude_unset=True)}
            }
        }
