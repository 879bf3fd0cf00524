"""
Tests for the storage adapters, run against both backends
"""

import json

import pytest

from pokedm.errors import StaleWriteError, StorageError
from pokedm.schemas.validation import SessionValidationError
from pokedm.storage import available_adapters, create_adapter


@pytest.fixture(params=["file", "database"])
def storage(request):
    fixture_name = {"file": "file_storage", "database": "db_storage"}[request.param]
    return request.getfixturevalue(fixture_name)


class TestStorageAdapters:
    """Behavior shared by every adapter"""

    @pytest.mark.asyncio
    async def test_round_trip(self, storage, seeded_document):
        revision = await storage.save("sess_test", seeded_document)
        loaded, loaded_revision = await storage.load_with_revision("sess_test")

        assert loaded["characters"][0]["trainer"]["name"] == "Alex"
        assert loaded["session"]["session_id"] == "sess_test"
        assert loaded_revision == revision

    @pytest.mark.asyncio
    async def test_missing_session(self, storage):
        assert await storage.load("sess_missing") is None
        assert await storage.delete("sess_missing") is False

    @pytest.mark.asyncio
    async def test_invalid_document_is_not_written(self, storage, seeded_document):
        seeded_document["session"]["battle_state"]["round"] = -3
        with pytest.raises(SessionValidationError):
            await storage.save("sess_test", seeded_document)
        assert await storage.load("sess_test") is None

    @pytest.mark.asyncio
    async def test_id_mismatch(self, storage, seeded_document):
        with pytest.raises(StorageError) as exc_info:
            await storage.save("sess_other", seeded_document)
        assert exc_info.value.code == "ID_MISMATCH"

    @pytest.mark.asyncio
    async def test_stale_write_rejected(self, storage, seeded_document):
        """A save against an outdated revision fails and leaves the newer write"""
        first = await storage.save("sess_test", seeded_document)
        seeded_document["session"]["scene"]["mood"] = "tense"
        await storage.save("sess_test", seeded_document, expected_revision=first)

        seeded_document["session"]["scene"]["mood"] = "calm"
        with pytest.raises(StaleWriteError):
            await storage.save("sess_test", seeded_document, expected_revision=first)
        assert (await storage.load("sess_test"))["session"]["scene"]["mood"] == "tense"

    @pytest.mark.asyncio
    async def test_list_and_filter(self, storage, seeded_document, empty_document):
        await storage.save("sess_test", seeded_document)
        other = dict(empty_document)
        other["session"] = dict(empty_document["session"], session_id="sess_other")
        await storage.save("sess_other", other)

        campaign_id = seeded_document["session"]["campaign_id"]
        assert await storage.list() == ["sess_other", "sess_test"]
        assert await storage.list(campaign_id) == ["sess_test"]

    @pytest.mark.asyncio
    async def test_delete(self, storage, seeded_document):
        await storage.save("sess_test", seeded_document)
        assert await storage.delete("sess_test") is True
        assert await storage.load("sess_test") is None


class TestFileStorage:
    @pytest.mark.asyncio
    async def test_pretty_printed_json(self, file_storage, seeded_document):
        await file_storage.save("sess_test", seeded_document)
        text = file_storage.path_for("sess_test").read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        assert json.loads(text)["session"]["session_id"] == "sess_test"

    @pytest.mark.asyncio
    async def test_unsafe_id_rejected(self, file_storage):
        with pytest.raises(StorageError) as exc_info:
            await file_storage.load("../etc/passwd")
        assert exc_info.value.code == "INVALID_ID"

    @pytest.mark.asyncio
    async def test_corrupt_file(self, file_storage):
        file_storage.sessions_dir.mkdir(parents=True)
        file_storage.path_for("sess_bad").write_text("{not json")
        with pytest.raises(StorageError) as exc_info:
            await file_storage.load("sess_bad")
        assert exc_info.value.code == "CORRUPT_DOCUMENT"

    @pytest.mark.asyncio
    async def test_legacy_file_is_upgraded_on_load(self, file_storage, empty_document):
        empty_document["state_versioning"]["current_version"] = "1.0.0"
        file_storage.sessions_dir.mkdir(parents=True)
        file_storage.path_for("sess_test").write_text(json.dumps(empty_document))

        loaded = await file_storage.load("sess_test")
        assert loaded["state_versioning"]["previous_versions"] == ["1.0.0"]


class TestDatabaseStorage:
    @pytest.mark.asyncio
    async def test_revisions_increment(self, db_storage, seeded_document):
        first = await db_storage.save("sess_test", seeded_document)
        second = await db_storage.save("sess_test", seeded_document, expected_revision=first)
        assert (first, second) == ("1", "2")


class TestRegistry:
    def test_builtin_adapters(self):
        assert {"file", "database"} <= set(available_adapters())

    def test_unknown_adapter(self):
        with pytest.raises(StorageError) as exc_info:
            create_adapter("redis")
        assert exc_info.value.code == "UNKNOWN_PROVIDER"

    def test_create_file_adapter(self, tmp_path):
        adapter = create_adapter("file", sessions_dir=str(tmp_path))
        assert adapter.name == "file"
