"""
Unit Tests for the Room Registry

Tests rooms/registry.py: reference parsing, demo room dedup, naming rules and
owner-only rename.
"""

import asyncio
import uuid

import pytest

from rooms.registry import DEMO_ROOM_NAME, RoomRegistry, normalize_room_name, parse_room_id
from utils.errors import AccessDenied, InvalidReference, NotFound


@pytest.fixture
def registry(room_storage):
    return RoomRegistry(room_storage)


class TestParseRoomId:
    """Room reference validation happens before any store call."""

    def test_canonicalizes_uuid(self):
        raw = "3F2504E0-4F89-11D3-9A0C-0305E82C3301"
        assert parse_room_id(raw) == "3f2504e0-4f89-11d3-9a0c-0305e82c3301"

    @pytest.mark.parametrize("bad", ["", "   ", "not-a-uuid", "../etc/passwd", None])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InvalidReference):
            parse_room_id(bad)


class TestDemoRoom:
    """The reserved demo room is created once per owner."""

    @pytest.mark.asyncio
    async def test_first_resolve_creates_demo_room(self, registry, alice):
        room = await registry.resolve_or_create_room(alice, "demo")

        assert room.name == DEMO_ROOM_NAME
        assert room.owner_id == alice.user_id
        assert room.reserved_key == "demo"

    @pytest.mark.asyncio
    async def test_repeat_resolve_returns_same_room(self, registry, room_storage, alice):
        first = await registry.resolve_or_create_room(alice, "demo")
        second = await registry.resolve_or_create_room(alice, "demo")

        assert first.id == second.id
        assert room_storage.insert_attempts == 1

    @pytest.mark.asyncio
    async def test_legacy_alias_resolves_to_same_room(self, registry, alice):
        first = await registry.resolve_or_create_room(alice, "demo")
        legacy = await registry.resolve_or_create_room(alice, "demo-test-room")

        assert legacy.id == first.id

    @pytest.mark.asyncio
    async def test_concurrent_first_resolves_converge(self, registry, room_storage, alice):
        """Parallel first requests produce exactly one demo room row."""
        rooms = await asyncio.gather(*(registry.resolve_or_create_room(alice, "demo") for _ in range(8)))

        assert len({room.id for room in rooms}) == 1
        demo_rows = [r for r in room_storage.rooms.values() if r.reserved_key == "demo"]
        assert len(demo_rows) == 1

    @pytest.mark.asyncio
    async def test_each_owner_gets_own_demo_room(self, registry, alice, bob):
        alices = await registry.resolve_or_create_room(alice, "demo")
        bobs = await registry.resolve_or_create_room(bob, "demo")

        assert alices.id != bobs.id

    @pytest.mark.asyncio
    async def test_renamed_room_does_not_become_demo(self, registry, alice):
        """Dedup uses the reserved marker, not the display name."""
        named = await registry.create_room(alice, DEMO_ROOM_NAME)
        demo = await registry.resolve_or_create_room(alice, "demo")

        assert named.id != demo.id
        assert named.reserved_key is None


class TestResolveById:

    @pytest.mark.asyncio
    async def test_existing_room_is_returned(self, registry, alice, bob):
        room = await registry.create_room(alice, "Team Sync")
        resolved = await registry.resolve_or_create_room(bob, room.id)
        assert resolved.id == room.id

    @pytest.mark.asyncio
    async def test_unknown_uuid_is_not_found(self, registry, alice):
        with pytest.raises(NotFound):
            await registry.resolve_or_create_room(alice, str(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_garbage_reference_is_invalid(self, registry, room_storage, alice):
        with pytest.raises(InvalidReference):
            await registry.resolve_or_create_room(alice, "lobby")
        assert room_storage.insert_attempts == 0


class TestRoomNames:

    def test_name_is_trimmed(self):
        assert normalize_room_name("  Team Sync  ") == "Team Sync"

    @pytest.mark.parametrize("bad", ["", "   ", "x" * 201, None])
    def test_bad_names_rejected(self, bad):
        with pytest.raises(InvalidReference):
            normalize_room_name(bad)

    def test_max_length_allowed(self):
        assert normalize_room_name("x" * 200) == "x" * 200

    @pytest.mark.asyncio
    async def test_list_rooms_newest_first(self, registry, alice, bob):
        first = await registry.create_room(alice, "First")
        second = await registry.create_room(alice, "Second")
        await registry.create_room(bob, "Not mine")

        rooms = await registry.list_rooms(alice)

        assert [r.id for r in rooms] == [second.id, first.id]


class TestRenameRoom:

    @pytest.mark.asyncio
    async def test_owner_can_rename(self, registry, alice):
        room = await registry.create_room(alice, "Old")
        renamed = await registry.rename_room(alice, room.id, "  New  ")
        assert renamed.name == "New"
        assert renamed.id == room.id

    @pytest.mark.asyncio
    async def test_non_owner_cannot_rename(self, registry, alice, bob):
        room = await registry.create_room(alice, "Old")
        with pytest.raises(AccessDenied):
            await registry.rename_room(bob, room.id, "Hijacked")

    @pytest.mark.asyncio
    async def test_rename_validates_before_lookup(self, registry, alice):
        with pytest.raises(InvalidReference):
            await registry.rename_room(alice, str(uuid.uuid4()), "   ")
