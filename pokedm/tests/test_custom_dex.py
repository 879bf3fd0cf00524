"""
Tests for custom Pokémon registration
"""

import pytest

from pokedm.engine.custom_dex import CustomDexError, CustomDexRegistry
from pokedm.engine.merge import StateMergeEngine


@pytest.fixture
def registry():
    return CustomDexRegistry()


class TestCustomDexRegistry:
    """Test ruleset checks before a custom entry is merged"""

    def test_registration_merges(self, registry, seeded_document, custom_pokemon):
        update = registry.build_registration(seeded_document, custom_pokemon)
        merged = StateMergeEngine().merge(seeded_document, update)
        assert merged["custom_dex"]["pokemon"]["cstm_embermole"]["display_name"] == "Embermole"

    def test_new_species_needs_flag(self, registry, seeded_document, custom_pokemon):
        custom_pokemon["classification"] = "new_species"
        custom_pokemon.pop("resembles")
        with pytest.raises(CustomDexError, match="allow_new_species"):
            registry.build_registration(seeded_document, custom_pokemon)

        seeded_document["custom_dex"]["ruleset_flags"]["allow_new_species"] = True
        update = registry.build_registration(seeded_document, custom_pokemon)
        assert "cstm_embermole" in update["custom_dex"]["pokemon"]

    def test_variant_requires_canon_base(self, registry, seeded_document, custom_pokemon):
        custom_pokemon.pop("resembles")
        with pytest.raises(CustomDexError, match="base_canon_ref"):
            registry.build_registration(seeded_document, custom_pokemon)

    def test_duplicate_rejected(self, registry, seeded_document, custom_pokemon):
        merged = StateMergeEngine().merge(
            seeded_document, registry.build_registration(seeded_document, custom_pokemon)
        )
        with pytest.raises(CustomDexError, match="already exists"):
            registry.build_registration(merged, custom_pokemon)

    def test_canon_collision_rejected(self, registry, seeded_document, custom_pokemon):
        seeded_document["dex"]["canon_cache"]["species"]["cstm_embermole"] = {"_cached_at": 0}
        with pytest.raises(CustomDexError, match="collides"):
            registry.build_registration(seeded_document, custom_pokemon)

    def test_invalid_payload(self, registry, seeded_document, custom_pokemon):
        custom_pokemon["custom_species_id"] = "embermole"
        with pytest.raises(CustomDexError, match="Invalid"):
            registry.build_registration(seeded_document, custom_pokemon)
