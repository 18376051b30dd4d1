"""
Unit Tests for the Artifact Resolver and recording paths

Tests recording/artifacts.py and recording/paths.py.
"""

import uuid

import pytest
import pytest_asyncio

from recording.paths import build_storage_path, parse_storage_path
from utils.errors import AccessDenied, ArtifactNotFound, InvalidReference

ROOM_ID = "6f1c2d3e-4a5b-4c6d-8e7f-9a0b1c2d3e4f"


class TestStoragePaths:

    def test_build_path(self):
        assert build_storage_path(ROOM_ID, "user-bob") == f"{ROOM_ID}/user-bob.ogg"

    def test_parse_roundtrip(self):
        assert parse_storage_path(f"{ROOM_ID}/user-bob.ogg") == (ROOM_ID, "user-bob", "ogg")

    def test_identity_with_dots(self):
        assert parse_storage_path(f"{ROOM_ID}/bob.smith@example.com.ogg")[1] == "bob.smith@example.com"

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "user-bob.ogg",
            f"/{ROOM_ID}/user-bob.ogg",
            f"{ROOM_ID}/../other/user-bob.ogg",
            f"{ROOM_ID}/..ogg",
            f"{ROOM_ID}/user-bob",
            f"{ROOM_ID}/user-bob.",
            f"{ROOM_ID.upper()}/user-bob.ogg",
            f"{ROOM_ID}\\user-bob.ogg",
            "not-a-uuid/user-bob.ogg",
            f"{ROOM_ID}/sub/user-bob.ogg",
        ],
    )
    def test_malformed_paths_rejected(self, bad):
        with pytest.raises(InvalidReference):
            parse_storage_path(bad)


@pytest_asyncio.fixture
async def room(orchestrator, alice, bob):
    room = await orchestrator.registry.create_room(alice, "Team Sync")
    await orchestrator.tracker.record_join(room.id, bob.user_id)
    return room


class TestGetDownloadUrl:

    @pytest.mark.asyncio
    async def test_member_gets_url(self, orchestrator, room, bob, object_store):
        path = f"{room.id}/{bob.user_id}.ogg"
        object_store.objects[path] = b"OggS"

        signed = await orchestrator.artifacts.get_download_url(bob, path)

        assert signed.path == path
        assert signed.ttl_seconds == 3600
        assert "X-Goog-Expires=3600" in signed.url

    @pytest.mark.asyncio
    async def test_urls_are_not_cached(self, orchestrator, room, alice, object_store):
        path = f"{room.id}/user-bob.ogg"
        object_store.objects[path] = b"OggS"

        first = await orchestrator.artifacts.get_download_url(alice, path, ttl_seconds=60)
        second = await orchestrator.artifacts.get_download_url(alice, path, ttl_seconds=60)

        assert first.url != second.url

    @pytest.mark.asyncio
    async def test_non_member_denied(self, orchestrator, room, mallory, object_store):
        path = f"{room.id}/user-bob.ogg"
        object_store.objects[path] = b"OggS"

        with pytest.raises(AccessDenied):
            await orchestrator.artifacts.get_download_url(mallory, path)

    @pytest.mark.asyncio
    async def test_unknown_room_looks_like_denial(self, orchestrator, alice):
        with pytest.raises(AccessDenied):
            await orchestrator.artifacts.get_download_url(alice, f"{uuid.uuid4()}/user-bob.ogg")

    @pytest.mark.asyncio
    async def test_missing_object(self, orchestrator, room, alice):
        with pytest.raises(ArtifactNotFound):
            await orchestrator.artifacts.get_download_url(alice, f"{room.id}/user-bob.ogg")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5, 604801])
    async def test_ttl_bounds(self, orchestrator, room, alice, object_store, ttl):
        path = f"{room.id}/user-bob.ogg"
        object_store.objects[path] = b"OggS"
        with pytest.raises(InvalidReference):
            await orchestrator.artifacts.get_download_url(alice, path, ttl_seconds=ttl)

    @pytest.mark.asyncio
    async def test_traversal_rejected_before_lookup(self, orchestrator, alice):
        with pytest.raises(InvalidReference):
            await orchestrator.artifacts.get_download_url(alice, "../secrets/key.json")

    @pytest.mark.asyncio
    async def test_boolean_ttl_rejected(self, orchestrator, room, alice, object_store):
        path = f"{room.id}/user-bob.ogg"
        object_store.objects[path] = b"OggS"
        with pytest.raises(InvalidReference):
            await orchestrator.artifacts.get_download_url(alice, path, ttl_seconds=True)

    @pytest.mark.asyncio
    async def test_membership_checked_through_tracker(self, orchestrator, room, bob, object_store, monkeypatch):
        path = f"{room.id}/user-bob.ogg"
        object_store.objects[path] = b"OggS"
        seen = []
        original = orchestrator.tracker.is_member

        async def spy(room_id, identity):
            seen.append((room_id, identity))
            return await original(room_id, identity)

        monkeypatch.setattr(orchestrator.tracker, "is_member", spy)

        await orchestrator.artifacts.get_download_url(bob, path)

        assert seen == [(room.id, bob.user_id)]


class TestDeleteArtifact:

    @pytest.mark.asyncio
    async def test_recording_delete_goes_through_resolver(self, orchestrator, room, alice, bob, object_store, monkeypatch):
        started = await orchestrator.lifecycle.start_recording(alice, room.id, bob.user_id)
        await orchestrator.lifecycle.stop_recording(alice, started.id)
        object_store.objects[started.storage_path] = b"OggS"
        deleted = []
        original = orchestrator.artifacts.delete_artifact

        async def spy(path):
            deleted.append(path)
            return await original(path)

        monkeypatch.setattr(orchestrator.artifacts, "delete_artifact", spy)

        await orchestrator.lifecycle.delete_recording(alice, started.id)

        assert deleted == [started.storage_path]
        assert started.storage_path not in object_store.objects

    @pytest.mark.asyncio
    async def test_malformed_path_never_reaches_store(self, orchestrator, object_store):
        with pytest.raises(InvalidReference):
            await orchestrator.artifacts.delete_artifact("../secrets/key.json")
        assert object_store.removed == []
