"""
API integration tests for the FastAPI app.

Services are swapped through ``app.dependency_overrides`` so every request
runs against temporary file storage and canned providers.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from pokedm.engine.quick_actions import SAVE_CONFIRMATION
from pokedm.errors import CanonFetchError, TurnError
from pokedm.main import app
from pokedm.services import build_services, get_services


@pytest.fixture
def fetcher():
    fetcher = AsyncMock()
    fetcher.fetch.return_value = {"id": 25, "name": "pikachu", "types": ["electric"]}
    return fetcher


@pytest.fixture
def services(file_storage, clock, make_provider, fetcher):
    return build_services(
        storage=file_storage,
        provider=make_provider([{"narration": "The harbor bells ring.", "choices": []}]),
        router_provider=make_provider([{"intent": "narration", "confidence": 0.8}]),
        clock=clock,
        fetcher=fetcher,
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestRootEndpoints:
    """Test basic root endpoints"""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAgentAPI:
    """Test the turn endpoint"""

    def test_quick_action_creates_session(self, client, file_storage):
        response = client.post(
            "/agent/turn", json={"message": "/save", "session_id": "sess_api", "character_ids": ["char_1"]}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["narration"] == SAVE_CONFIRMATION
        assert data["quick_action"] == "save"
        assert data["session_id"] == "sess_api"
        assert data["revision"]

    def test_routed_turn(self, client):
        response = client.post("/agent/turn", json={"message": "look around the harbor"})
        assert response.status_code == 200
        data = response.json()
        assert data["intent"] == "narration"
        assert data["narration"] == "The harbor bells ring."
        assert data["battle_active"] is False

    def test_empty_message_rejected(self, client):
        response = client.post("/agent/turn", json={"message": ""})
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "kind,status", [("validation", 422), ("external", 502), ("storage", 500), ("transient", 503)]
    )
    def test_turn_error_status(self, client, services, kind, status):
        services.orchestrator.process_turn = AsyncMock(
            side_effect=TurnError(kind, "it broke", retry_hint="retry", session_id="sess_api")
        )
        response = client.post("/agent/turn", json={"message": "hello", "session_id": "sess_api"})

        assert response.status_code == status
        detail = response.json()["detail"]
        assert detail["kind"] == kind
        assert detail["session_id"] == "sess_api"


class TestSessionsAPI:
    """Test session read and delete endpoints"""

    def test_get_and_delete(self, client, file_storage):
        client.post("/agent/turn", json={"message": "/save", "session_id": "sess_api"})

        assert client.get("/sessions").json() == ["sess_api"]
        response = client.get("/sessions/sess_api")
        assert response.status_code == 200
        assert response.json()["session"]["session_id"] == "sess_api"

        response = client.delete("/sessions/sess_api")
        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert client.get("/sessions/sess_api").status_code == 404

    def test_missing_session(self, client):
        assert client.get("/sessions/sess_missing").status_code == 404
        assert client.delete("/sessions/sess_missing").status_code == 404

    def test_invalid_session_id(self, client):
        response = client.get("/sessions/bad id!")
        assert response.status_code == 500
        assert response.json()["code"] == "INVALID_ID"


class TestCanonCacheAPI:
    """Test the per-session reference cache endpoints"""

    @pytest.fixture
    def session(self, client):
        client.post("/agent/turn", json={"message": "/save", "session_id": "sess_api"})
        return "sess_api"

    def test_miss_fetched_then_served_from_cache(self, client, session, fetcher):
        response = client.get(f"/sessions/{session}/canon/pokemon/pikachu")
        assert response.status_code == 200
        assert response.json()["data"]["types"] == ["electric"]

        response = client.get(f"/sessions/{session}/canon/pokemon/pikachu")
        assert response.status_code == 200
        fetcher.fetch.assert_awaited_once_with("pokemon", "pikachu")

        stored = client.get(f"/sessions/{session}").json()
        assert "pikachu" in stored["dex"]["canon_cache"]["pokemon"]

    def test_put_and_clear(self, client, session, fetcher):
        response = client.put(
            f"/sessions/{session}/canon/moves/tackle", json={"name": "tackle", "power": 40}
        )
        assert response.status_code == 200
        assert response.json()["evicted"] == []

        assert client.get(f"/sessions/{session}/canon/moves/tackle").json()["data"]["power"] == 40
        fetcher.fetch.assert_not_awaited()

        response = client.delete(f"/sessions/{session}/canon", params={"kind": "moves"})
        assert response.status_code == 200
        stored = client.get(f"/sessions/{session}").json()
        assert stored["dex"]["canon_cache"]["moves"] == {}

    def test_unknown_entry_and_kind(self, client, session, fetcher):
        fetcher.fetch.return_value = None
        assert client.get(f"/sessions/{session}/canon/pokemon/missingno").status_code == 404
        assert client.get(f"/sessions/{session}/canon/berries/oran").status_code == 400

    def test_missing_session(self, client, fetcher):
        assert client.get("/sessions/sess_missing/canon/pokemon/pikachu").status_code == 404
        fetcher.fetch.assert_not_awaited()

    def test_fetch_failure_is_bad_gateway(self, client, session, fetcher):
        fetcher.fetch.side_effect = CanonFetchError("timed out", kind="pokemon", key="pikachu")
        response = client.get(f"/sessions/{session}/canon/pokemon/pikachu")
        assert response.status_code == 502
        assert response.json()["kind"] == "external"

    def test_delete_session_drops_memory(self, client, session, services):
        client.get(f"/sessions/{session}/canon/pokemon/pikachu")
        assert services.canon_cache.memory.stats()["sessions"] == 1

        client.delete(f"/sessions/{session}")
        assert services.canon_cache.memory.stats()["sessions"] == 0


class TestCampaignsAPI:
    """Test campaign CRUD endpoints"""

    def test_crud(self, client):
        response = client.post(
            "/campaigns", json={"campaign": {"region": {"name": "Frost Isles"}}, "character_ids": ["char_1"]}
        )
        assert response.status_code == 201
        campaign_id = response.json()["campaign_id"]

        assert client.get(f"/campaigns/{campaign_id}").json()["region"]["name"] == "Frost Isles"
        assert [c["campaign_id"] for c in client.get("/campaigns").json()] == [campaign_id]

        response = client.patch(f"/campaigns/{campaign_id}", json={"region": {"name": "Ember Reach"}})
        assert response.status_code == 200
        assert response.json()["region"]["name"] == "Ember Reach"

        response = client.delete(f"/campaigns/{campaign_id}")
        assert response.json()["sessions_deleted"] == 1
        assert client.get(f"/campaigns/{campaign_id}").status_code == 404

    def test_invalid_campaign_returns_field_errors(self, client):
        response = client.post("/campaigns", json={"campaign": {"locations": "nowhere"}})
        assert response.status_code == 422
        data = response.json()
        assert data["kind"] == "validation"
        assert any(error["path"].startswith("campaign.locations") for error in data["errors"])

    def test_missing_campaign(self, client):
        assert client.get("/campaigns/campaign_missing").status_code == 404
        assert client.patch("/campaigns/campaign_missing", json={"region": {"name": "x"}}).status_code == 404
        assert client.delete("/campaigns/campaign_missing").status_code == 404
