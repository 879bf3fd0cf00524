"""
Tests for legacy conversion and the version upgrade chain
"""

import copy

import pytest

from pokedm.engine.migration import is_legacy_format, needs_upgrade, upgrade_document
from pokedm.schemas.session import SCHEMA_VERSION
from pokedm.schemas.validation import validate_session

LEGACY_SESSION = {
    "state_version": "0.9.0",
    "campaign": {
        "campaign_id": "campaign_coast",
        "name": "Coastal Run",
        "theme": ["coastal", "mystery"],
        "region_type": "island",
        "weather": "foggy",
    },
    "world_state": {
        "locations": {
            "Harbor Town": {"status": "calm", "npc_presence": ["Professor Reed"]},
            "Route 3": {},
        },
        "global_effects": {"fog_season": "Thick fog rolls in every evening"},
    },
    "trainers": [
        {
            "trainer_id": "trainer_mia",
            "name": "Mia",
            "class": "Ace Trainer",
            "party": [
                {"pokemon_id": "pkmn_eevee", "species": "Eevee", "level": 7, "status": "healthy", "nickname": "Pip"},
                {
                    "species": "Growlithe",
                    "variant": "Coastal Form",
                    "level": 6,
                    "experience": {"current_xp": 40, "xp_to_next": 100},
                },
            ],
            "milestones": ["met_professor"],
        }
    ],
    "known_species_flags": {"growlithe_variant_seen": True},
    "session": {
        "session_id": "legacy_1",
        "title": "Fog on the Harbor",
        "starting_location": "Harbor",
        "narrative_flags": {"met_professor": True},
        "summary": "Mia arrived at the harbor.",
    },
    "next_actions": {"session_2_entry": "Investigate the lighthouse"},
}


class TestLegacyMigration:
    """Test conversion of the legacy example format"""

    def test_detects_legacy(self, empty_document):
        assert is_legacy_format(LEGACY_SESSION)
        assert not is_legacy_format(empty_document)

    def test_migrated_document_validates(self, clock):
        migrated = validate_session(upgrade_document(copy.deepcopy(LEGACY_SESSION), clock=clock))

        assert migrated["session"]["session_id"] == "legacy_1"
        assert migrated["campaign"]["campaign_id"] == "campaign_coast"
        assert migrated["session"]["campaign_id"] == "campaign_coast"
        assert migrated["session"]["scene"]["location_id"] == "harbor_town"
        assert migrated["state_versioning"]["current_version"] == SCHEMA_VERSION
        assert migrated["state_versioning"]["previous_versions"] == ["0.9.0"]

    def test_trainers_become_characters(self, clock):
        migrated = upgrade_document(copy.deepcopy(LEGACY_SESSION), clock=clock)
        character = migrated["characters"][0]
        party = character["pokemon_party"]

        assert migrated["session"]["character_ids"] == ["trainer_mia"]
        assert character["trainer"]["name"] == "Mia"
        assert party[0]["species_ref"] == {"kind": "canon", "ref": "canon:eevee"}
        assert party[0]["nickname"] == "Pip"
        assert party[1]["species_ref"]["kind"] == "custom"
        assert party[1]["form_ref"]["base_canon_ref"] == "canon:growlithe"

    def test_objectives_and_continuity(self, clock):
        migrated = upgrade_document(copy.deepcopy(LEGACY_SESSION), clock=clock)
        objectives = {o["objective_id"]: o["status"] for o in migrated["session"]["current_objectives"]}

        assert objectives == {"met_professor": "completed", "session_entry": "active"}
        assert migrated["continuity"]["discovered_pokemon"][0]["species_ref"]["ref"] == "custom:cstm_growlithe"
        assert migrated["continuity"]["timeline"][0]["summary"] == "Mia arrived at the harbor."

    def test_input_is_not_modified(self, clock):
        legacy = copy.deepcopy(LEGACY_SESSION)
        upgrade_document(legacy, clock=clock)
        assert legacy == LEGACY_SESSION


class TestVersionChain:
    """Test upgrades between schema versions"""

    def test_current_version_untouched(self, empty_document):
        assert not needs_upgrade(empty_document)
        assert upgrade_document(empty_document) == empty_document

    def test_upgrade_from_1_0_0(self, empty_document, clock):
        old = copy.deepcopy(empty_document)
        old["schema_version"] = "1.0.0"
        old["state_versioning"]["current_version"] = "1.0.0"
        del old["session"]["controls"]["explain_requested"]
        del old["session"]["fail_soft_flags"]["auto_scaled_last_encounter"]

        assert needs_upgrade(old)
        upgraded = validate_session(upgrade_document(old, clock=clock))
        assert upgraded["session"]["controls"]["explain_requested"] is False
        assert upgraded["state_versioning"]["previous_versions"] == ["1.0.0"]
        assert upgraded["schema_version"] == SCHEMA_VERSION

    def test_unknown_version_left_for_validation(self, empty_document):
        empty_document["state_versioning"]["current_version"] = "0.1.0"
        empty_document["schema_version"] = "0.1.0"
        assert upgrade_document(empty_document)["state_versioning"]["current_version"] == "0.1.0"
