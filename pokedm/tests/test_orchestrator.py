"""
End-to-end turn tests against file storage with canned agent replies
"""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from pokedm.agents import AgentDispatcher
from pokedm.engine.encounter import EncounterSynthesizer
from pokedm.engine.orchestrator import TurnOrchestrator, match_choice, party_confidence
from pokedm.engine.quick_actions import (
    BATTLE_ACTIVE_MESSAGE,
    NO_PARTY_MESSAGE,
    PAUSE_MESSAGE,
    RESTART_MESSAGE,
    SAVE_CONFIRMATION,
    SETUP_SKIPPED,
)
from pokedm.engine.recap import NO_RECAP_MESSAGE
from pokedm.engine.session_factory import STARTER_NARRATION
from pokedm.errors import GenerationError, StaleWriteError, StorageError, TurnError
from pokedm.schemas.agent import IntentClassification

NARRATION_REPLY = {
    "narration": "You push into the tall grass near the cliffs.",
    "choices": [
        {"option_id": "look", "label": "Look closer", "description": "Peer into the grass.", "risk_level": "medium"},
        {"option_id": "wait", "label": "Wait", "description": "Stay still and listen.", "risk_level": "low"},
    ],
}


def _router(intent="narration"):
    router = AsyncMock()
    router.classify.return_value = IntentClassification(intent=intent, confidence=0.9)
    return router


@pytest.fixture
def build_orchestrator(file_storage, clock, make_provider):
    def build(replies=(), intent="narration", **kwargs):
        provider = make_provider(list(replies))
        orchestrator = TurnOrchestrator(
            file_storage,
            kwargs.pop("router", None) or _router(intent),
            AgentDispatcher.from_provider(provider),
            encounters=EncounterSynthesizer(rng=random.Random(7), clock=clock),
            clock=clock,
            llm_recaps=kwargs.pop("llm_recaps", False),
            **kwargs,
        )
        return orchestrator

    return build


@pytest_asyncio.fixture
async def stored(file_storage, seeded_document):
    await file_storage.save("sess_test", seeded_document)
    return await file_storage.load("sess_test")


def _battle_outcome(result, **extra):
    return {
        "explanation": "Sparky lands the final blow.",
        "battle_outcome": {"result": result, "summary": f"The battle ended: {result}", **extra},
    }


class TestHelpers:
    @pytest.mark.parametrize(
        "failures,successes,expected",
        [(0, 0, "medium"), (2, 5, "low"), (0, 2, "high"), (1, 1, "medium"), (1, 2, "high")],
    )
    def test_party_confidence(self, failures, successes, expected):
        assert party_confidence(failures, successes) == expected

    def test_match_choice(self, seeded_document):
        options = seeded_document["session"]["player_choices"]["options_presented"]
        assert match_choice("2", options) == "explore_town"
        assert match_choice("Visit Professor Willow", options) == "visit_lab"
        assert match_choice("head_to_route_1", options) == "head_to_route_1"
        assert match_choice("dance", options) is None


class TestNarrationTurns:
    """Test routed turns"""

    @pytest.mark.asyncio
    async def test_wild_battle_starts(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([NARRATION_REPLY])
        response = await orchestrator.process_turn("start a wild battle", session_id="sess_test")
        after = await file_storage.load("sess_test")
        session = after["session"]

        assert response.intent == "narration"
        assert response.battle_active is True
        assert session["battle_state"]["active"] is True
        assert session["battle_state"]["round"] == 1
        assert len(response.choices) == 3
        assert response.safe_default == "battle_opening"
        assert len(session["encounters"]) == len(stored["session"]["encounters"]) + 1
        new_kinds = [e["kind"] for e in session["event_log"][len(stored["session"]["event_log"]):]]
        assert new_kinds.count("encounter") == 1
        assert new_kinds.count("battle") == 1
        assert response.narration.startswith("You push into the tall grass")
        assert "Round 1" in response.narration

    @pytest.mark.asyncio
    async def test_choices_come_from_narrator(self, build_orchestrator, stored):
        stored_events = len(stored["session"]["event_log"])
        orchestrator = build_orchestrator([NARRATION_REPLY])
        # "1" selects the first presented option
        response = await orchestrator.process_turn("1", session_id="sess_test")
        document = await orchestrator.storage.load("sess_test")

        assert [c.option_id for c in response.choices] == ["look", "wait"]
        assert response.safe_default == "wait"
        assert document["session"]["player_choices"]["last_choice"]["option_id"] == "visit_lab"
        assert document["session"]["event_log"][stored_events]["kind"] == "choice"

    @pytest.mark.asyncio
    async def test_new_session_is_created(self, build_orchestrator, file_storage):
        orchestrator = build_orchestrator([{"narration": "Hello there.", "choices": []}])
        response = await orchestrator.process_turn(
            "hello", session_id="sess_new", campaign_id="", character_ids=["char_9"]
        )
        document = await file_storage.load("sess_new")

        assert response.session_id == "sess_new"
        assert document["session"]["character_ids"] == ["char_9"]
        assert response.battle_active is False

    @pytest.mark.asyncio
    async def test_invalid_state_update_becomes_warning(self, build_orchestrator, stored, file_storage):
        reply = {"summary": "Mood changed.", "state_update": {"session": {"scene": {"mood": "furious"}}}}
        orchestrator = build_orchestrator([reply], intent="state")
        response = await orchestrator.process_turn("make it furious", session_id="sess_test")

        assert response.state_applied is False
        assert response.warnings
        assert (await file_storage.load("sess_test"))["session"]["scene"]["mood"] == "adventurous"

    @pytest.mark.asyncio
    async def test_state_update_is_applied(self, build_orchestrator, stored, file_storage):
        reply = {"summary": "Mood changed.", "state_update": {"session": {"scene": {"mood": "tense"}}}}
        orchestrator = build_orchestrator([reply], intent="state")
        response = await orchestrator.process_turn("make it tense", session_id="sess_test")

        assert response.state_applied is True
        assert (await file_storage.load("sess_test"))["session"]["scene"]["mood"] == "tense"

    @pytest.mark.asyncio
    async def test_concurrent_turns_both_persist(self, build_orchestrator, stored, file_storage):
        replies = [
            {"summary": "Mood changed.", "state_update": {"session": {"scene": {"mood": "tense"}}}},
            {
                "summary": "Scene described.",
                "state_update": {"session": {"scene": {"description": "Fog rolls over the harbor."}}},
            },
        ]
        orchestrator = build_orchestrator(replies, intent="state")

        first, second = await asyncio.gather(
            orchestrator.process_turn("make it tense", session_id="sess_test"),
            orchestrator.process_turn("describe the fog", session_id="sess_test"),
        )
        scene = (await file_storage.load("sess_test"))["session"]["scene"]

        assert first.state_applied is True
        assert second.state_applied is True
        assert scene["mood"] == "tense"
        assert scene["description"] == "Fog rolls over the harbor."

    @pytest.mark.asyncio
    async def test_custom_pokemon_registered(self, build_orchestrator, stored, file_storage, custom_pokemon):
        reply = {"explanation": "Meet Embermole!", "custom_pokemon": custom_pokemon}
        orchestrator = build_orchestrator([reply, reply], intent="design")

        first = await orchestrator.process_turn("design a fire mole", session_id="sess_test")
        second = await orchestrator.process_turn("design it again", session_id="sess_test")

        assert first.state_applied is True
        assert "cstm_embermole" in (await file_storage.load("sess_test"))["custom_dex"]["pokemon"]
        assert any("already exists" in warning for warning in second.warnings)


class TestBattleResolution:
    """Test outcomes reported by the rules agent"""

    @pytest.mark.asyncio
    async def test_win_resolves_and_rewards(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([_battle_outcome("win")], intent="roll")
        await orchestrator.process_turn("/battle", session_id="sess_test")
        response = await orchestrator.process_turn("use thunder shock", session_id="sess_test")
        document = await file_storage.load("sess_test")
        session = document["session"]

        assert response.battle_active is False
        assert session["encounters"][-1]["status"] == "resolved"
        assert session["fail_soft_flags"]["recent_successes"] == 1
        assert document["characters"][0]["progression"]["badges"] == 1
        assert "first_battle" in response.narration
        assert any(e.get("details") == "outcome=win" for e in session["event_log"])

    @pytest.mark.asyncio
    async def test_capture_adds_to_party(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([_battle_outcome("captured", capture_succeeded=True)], intent="roll")
        await orchestrator.process_turn("/battle", session_id="sess_test")
        await orchestrator.process_turn("throw a poke ball", session_id="sess_test")
        document = await file_storage.load("sess_test")
        slot = document["session"]["encounters"][-1]["wild_slots"][0]

        assert len(document["characters"][0]["pokemon_party"]) == 2
        assert slot["capture"]["result"] == "succeeded"
        assert document["characters"][0]["pokemon_party"][1]["species_ref"] == slot["species_ref"]

    @pytest.mark.asyncio
    async def test_losses_lower_confidence(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([_battle_outcome("loss"), _battle_outcome("loss")], intent="roll")
        for _ in range(2):
            await orchestrator.process_turn("/battle", session_id="sess_test")
            await orchestrator.process_turn("use growl", session_id="sess_test")
        flags = (await file_storage.load("sess_test"))["session"]["fail_soft_flags"]

        assert flags["recent_failures"] == 2
        assert flags["party_confidence"] == "low"

    @pytest.mark.asyncio
    async def test_resolving_turn_opens_no_new_battle(self, build_orchestrator, stored, file_storage):
        reply = _battle_outcome("win")
        reply["explanation"] = "Sparky wins the battle!"
        orchestrator = build_orchestrator([reply], intent="roll")
        await orchestrator.process_turn("/battle", session_id="sess_test")
        response = await orchestrator.process_turn("finish the battle", session_id="sess_test")
        session = (await file_storage.load("sess_test"))["session"]

        assert response.battle_active is False
        assert session["battle_state"]["active"] is False
        assert len(session["encounters"]) == len(stored["session"]["encounters"]) + 1
        assert session["encounters"][-1]["status"] == "resolved"


class TestQuickActions:
    """Test commands that bypass routing"""

    @pytest.mark.asyncio
    async def test_save(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/save", session_id="sess_test")

        assert response.narration == SAVE_CONFIRMATION
        assert response.quick_action == "save"
        orchestrator.router.classify.assert_not_awaited()
        assert await file_storage.load("sess_test") == stored

    @pytest.mark.asyncio
    async def test_start_skipped_on_progress(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/start", session_id="sess_test")

        assert response.narration == SETUP_SKIPPED
        assert await file_storage.load("sess_test") == stored

    @pytest.mark.asyncio
    async def test_start_seeds_empty_session(self, build_orchestrator, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn(
            "get started Misty", session_id="sess_new", character_ids=["char_9"]
        )
        document = await file_storage.load("sess_new")

        assert response.narration == STARTER_NARRATION
        assert response.safe_default == "visit_lab"
        assert document["characters"][0]["character_id"] == "char_9"
        assert document["characters"][0]["trainer"]["name"] == "Misty"

    @pytest.mark.asyncio
    async def test_restart_mints_new_session(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/restart", session_id="sess_test")

        assert response.narration == RESTART_MESSAGE
        assert response.session_id != "sess_test"
        assert await file_storage.load("sess_test") is None
        fresh = await file_storage.load(response.session_id)
        assert fresh["session"]["campaign_id"] == stored["session"]["campaign_id"]
        assert fresh["session"]["character_ids"] == stored["session"]["character_ids"]

    @pytest.mark.asyncio
    async def test_pause_then_next_turn_clears(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([{"narration": "Welcome back.", "choices": []}])
        response = await orchestrator.process_turn("/pause", session_id="sess_test")
        assert response.narration == PAUSE_MESSAGE
        assert (await file_storage.load("sess_test"))["session"]["controls"]["pause_requested"] is True

        await orchestrator.process_turn("I'm back", session_id="sess_test")
        assert (await file_storage.load("sess_test"))["session"]["controls"]["pause_requested"] is False

    @pytest.mark.asyncio
    async def test_hint(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/hint adult", session_id="sess_test")
        controls = (await file_storage.load("sess_test"))["session"]["controls"]

        assert "Visit Professor Willow" in response.narration
        assert controls["explain_requested"] is True
        assert controls["explain_depth"] == "adult"

    @pytest.mark.asyncio
    async def test_recap_recorded(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/recap", session_id="sess_test")
        document = await file_storage.load("sess_test")

        assert "A Spark on the Coast" in response.narration
        assert document["continuity"]["recaps"][-1]["text"] == response.narration
        assert document["session"]["event_log"][-1]["kind"] == "recap"

    @pytest.mark.asyncio
    async def test_recap_without_history(self, build_orchestrator, file_storage):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/recap", session_id="sess_new")
        assert response.narration == NO_RECAP_MESSAGE
        assert (await file_storage.load("sess_new"))["continuity"]["recaps"] == []

    @pytest.mark.asyncio
    async def test_recap_polish(self, build_orchestrator, stored, make_provider):
        orchestrator = build_orchestrator(
            recap_provider=make_provider(["Sparky and Alex set out from the harbor."]), llm_recaps=True
        )
        response = await orchestrator.process_turn("/recap", session_id="sess_test")
        assert response.narration == "Sparky and Alex set out from the harbor."

    @pytest.mark.asyncio
    async def test_recap_polish_failure_keeps_plain_text(self, build_orchestrator, stored, make_provider):
        orchestrator = build_orchestrator(recap_provider=make_provider([]), llm_recaps=True)
        response = await orchestrator.process_turn("/recap", session_id="sess_test")
        assert "A Spark on the Coast" in response.narration

    @pytest.mark.asyncio
    async def test_battle_test(self, build_orchestrator, stored):
        orchestrator = build_orchestrator()
        first = await orchestrator.process_turn("/battle trainer", session_id="sess_test")
        second = await orchestrator.process_turn("/battle", session_id="sess_test")

        assert first.battle_active is True
        assert "trainer battle" in first.narration
        assert second.narration == BATTLE_ACTIVE_MESSAGE

    @pytest.mark.asyncio
    async def test_battle_test_needs_party(self, build_orchestrator):
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/battle", session_id="sess_new", character_ids=["char_1"])
        assert response.narration == NO_PARTY_MESSAGE
        assert response.battle_active is False


class TestTurnErrors:
    """Test failures abort the turn without persisting"""

    @pytest.mark.asyncio
    async def test_generation_failure(self, build_orchestrator, stored, file_storage):
        orchestrator = build_orchestrator([GenerationError("model down", retryable=False)])
        with pytest.raises(TurnError) as exc_info:
            await orchestrator.process_turn("look around", session_id="sess_test")

        assert exc_info.value.kind == "external"
        assert exc_info.value.session_id == "sess_test"
        assert await file_storage.load("sess_test") == stored

    @pytest.mark.asyncio
    async def test_validation_failure(self, build_orchestrator):
        orchestrator = build_orchestrator()
        with pytest.raises(TurnError) as exc_info:
            await orchestrator.process_turn("hi", session_id="sess_new", character_ids=["a", "a"])
        assert exc_info.value.kind == "validation"

    @pytest.mark.asyncio
    async def test_storage_failure(self, clock):
        storage = AsyncMock()
        storage.load_with_revision.side_effect = StorageError("disk gone", code="LOAD_FAILED")
        orchestrator = TurnOrchestrator(storage, _router(), AsyncMock(), clock=clock)

        with pytest.raises(TurnError) as exc_info:
            await orchestrator.process_turn("hi", session_id="sess_test")
        assert exc_info.value.kind == "storage"

    @pytest.mark.asyncio
    async def test_stale_write_is_reapplied_once(self, build_orchestrator, stored, file_storage, monkeypatch):
        real_save = file_storage.save
        calls = []

        async def flaky_save(session_id, document, expected_revision=None):
            calls.append(expected_revision)
            if len(calls) == 1:
                raise StaleWriteError(session_id, expected_revision, "other")
            return await real_save(session_id, document, expected_revision=expected_revision)

        monkeypatch.setattr(file_storage, "save", flaky_save)
        orchestrator = build_orchestrator()
        response = await orchestrator.process_turn("/pause", session_id="sess_test")

        assert response.narration == PAUSE_MESSAGE
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_second_conflict_is_transient(self, build_orchestrator, stored, file_storage, monkeypatch):
        async def stale_save(session_id, document, expected_revision=None):
            raise StaleWriteError(session_id, expected_revision, "other")

        monkeypatch.setattr(file_storage, "save", stale_save)
        orchestrator = build_orchestrator()
        with pytest.raises(TurnError) as exc_info:
            await orchestrator.process_turn("/pause", session_id="sess_test")
        assert exc_info.value.kind == "transient"
