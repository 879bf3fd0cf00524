"""
Shared fixtures: a controllable clock, a canned-response provider and
session documents in the states the tests need.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from pokedm.errors import GenerationError
from pokedm.engine.session_factory import new_session_document, seed_starter_session
from pokedm.providers.base import BaseProvider, ProviderResponse
from pokedm.storage.database import DatabaseStorageAdapter
from pokedm.storage.file import FileStorageAdapter


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider(BaseProvider):
    """
    Provider returning queued replies.

    A dict is returned as a honored structured reply, a string as plain text
    only, and an exception is raised.
    """

    def __init__(self, responses: Optional[List[Any]] = None):
        super().__init__("http://fake.local/v1", "test-key", "fake-model")
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def _invoke(self, messages, json_schema=None, **kwargs) -> ProviderResponse:
        self.calls.append({"messages": messages, "json_schema": json_schema})
        if not self.responses:
            raise GenerationError("No canned response left", retryable=False, model=self.model_name)
        reply = self.responses.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return ProviderResponse(content=json.dumps(reply), structured=reply, model=self.model_name)
        return ProviderResponse(content=reply, model=self.model_name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def empty_document(clock):
    return new_session_document(
        session_id="sess_test", campaign_id="", character_ids=["char_1"], clock=clock
    )


@pytest.fixture
def seeded_document(empty_document, clock):
    """Starter session: trainer Alex with a level 5 Pikachu"""
    return seed_starter_session(empty_document, trainer_name="Alex", clock=clock)


@pytest.fixture
def file_storage(tmp_path, clock):
    return FileStorageAdapter(sessions_dir=str(tmp_path / "sessions"), clock=clock)


@pytest.fixture
def db_storage(tmp_path, clock):
    adapter = DatabaseStorageAdapter(database_url=f"sqlite:///{tmp_path / 'pokedm.db'}", clock=clock)
    yield adapter
    adapter.engine.dispose()


@pytest.fixture
def custom_pokemon():
    """A valid regional variant entry for the custom dex"""
    return {
        "custom_species_id": "cstm_embermole",
        "display_name": "Embermole",
        "classification": "regional_variant",
        "resembles": {"base_canon_ref": "canon:diglett", "note": "Volcanic cousin"},
        "concept": "A burrowing mole that keeps its tunnels warm with embers.",
        "typing": ["Fire", "Ground"],
        "lore": "Fishermen follow its warm tunnels to find hot springs.",
        "design_hooks": ["glowing claws", "smoke puffs from burrows"],
        "ability": {"name": "Warm Burrow", "description": "Heals a little each turn underground."},
        "signature_move": {
            "name": "Cinder Dig",
            "type": "Fire",
            "category": "physical",
            "pp": 15,
            "accuracy": 90,
            "power": 60,
            "simple_effect": "Digs under the foe and bursts up in flames.",
        },
        "learnset_simplified": ["ember", "dig", "scratch"],
        "evolution": {"kind": "none"},
        "introduced_in": {
            "campaign_id": "campaign_test",
            "first_seen_location_id": "loc_route_1",
            "first_seen_session_id": "sess_test",
        },
    }


@pytest.fixture
def make_provider():
    """Factory for providers preloaded with replies"""
    return FakeProvider
