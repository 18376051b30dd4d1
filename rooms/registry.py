"""
Room registry.

Resolves a client-supplied room reference to a Room row, creating the
caller's demo room on first use. Reserved rooms are found by an explicit
reserved_key marker, never by matching names.
"""

import logging
import uuid
from typing import Optional

from db.models import Room
from db.storage import RoomStorage
from utils.errors import AccessDenied, InvalidReference, NotFound
from utils.identity import CallerContext

logger = logging.getLogger(__name__)

MAX_ROOM_NAME_LENGTH = 200

DEMO_ROOM_KEY = "demo"
DEMO_ROOM_NAME = "🎧 Demo Test Room"

# Client-facing reference -> reserved_key
RESERVED_REFERENCES = {
    "demo": DEMO_ROOM_KEY,
    "demo-test-room": DEMO_ROOM_KEY,
}

RESERVED_ROOM_NAMES = {
    DEMO_ROOM_KEY: DEMO_ROOM_NAME,
}


def parse_room_id(room_ref: Optional[str]) -> str:
    """Return the canonical form of a room UUID or raise InvalidReference."""
    if not isinstance(room_ref, str) or not room_ref.strip():
        raise InvalidReference("Room reference is required")
    try:
        return str(uuid.UUID(room_ref.strip()))
    except ValueError as exc:
        raise InvalidReference(f"Invalid room id: {room_ref!r}", {"room_ref": room_ref}) from exc


def normalize_room_name(name: Optional[str]) -> str:
    if not isinstance(name, str):
        raise InvalidReference("Room name is required")
    cleaned = name.strip()
    if not cleaned:
        raise InvalidReference("Room name cannot be empty")
    if len(cleaned) > MAX_ROOM_NAME_LENGTH:
        raise InvalidReference(
            f"Room name must be at most {MAX_ROOM_NAME_LENGTH} characters",
            {"max_length": MAX_ROOM_NAME_LENGTH},
        )
    return cleaned


class RoomRegistry:
    """Room lookup, creation and renaming."""

    def __init__(self, rooms: RoomStorage):
        self.rooms = rooms

    async def get_room(self, room_id: str) -> Room:
        room_id = parse_room_id(room_id)
        room = await self.rooms.get_room(room_id)
        if room is None:
            raise NotFound(f"Room {room_id} not found", {"room_id": room_id})
        return room

    async def resolve_or_create_room(self, owner: CallerContext, room_ref: str) -> Room:
        """
        Resolve ``room_ref`` to a room.

        A reserved reference (``demo``) returns the owner's reserved room,
        creating it if needed. Concurrent first calls converge on one row: the
        losing insert reports ALREADY_EXISTED and re-reads the winner.
        Anything else must be a room UUID.
        """
        reserved_key = RESERVED_REFERENCES.get((room_ref or "").strip().lower())
        if reserved_key is None:
            return await self.get_room(room_ref)

        existing = await self.rooms.get_reserved_room(owner.user_id, reserved_key)
        if existing is not None:
            return existing

        result = await self.rooms.insert_reserved_room(
            owner.user_id,
            reserved_key,
            RESERVED_ROOM_NAMES[reserved_key],
        )
        if result.created:
            return result.row

        winner = await self.rooms.get_reserved_room(owner.user_id, reserved_key)
        if winner is None:
            # Only possible if the row was deleted between the two statements
            logger.error("Reserved room %s for %s vanished after conflict", reserved_key, owner.user_id)
            raise NotFound(f"Reserved room {reserved_key} not found", {"room_ref": room_ref})
        return winner

    async def create_room(self, owner: CallerContext, name: str) -> Room:
        return await self.rooms.create_room(owner.user_id, normalize_room_name(name))

    async def list_rooms(self, owner: CallerContext) -> list[Room]:
        """Rooms owned by the caller, newest first."""
        return await self.rooms.list_rooms_for_owner(owner.user_id)

    async def rename_room(self, caller: CallerContext, room_id: str, name: str) -> Room:
        name = normalize_room_name(name)
        room = await self.get_room(room_id)
        if room.owner_id != caller.user_id:
            raise AccessDenied("Only the room owner can rename a room", {"room_id": room.id})

        renamed = await self.rooms.rename_room(room.id, name)
        if renamed is None:
            raise NotFound(f"Room {room.id} not found", {"room_id": room.id})
        logger.info("Room %s renamed by %s", room.id, caller.user_id)
        return renamed


__all__ = [
    "DEMO_ROOM_KEY",
    "DEMO_ROOM_NAME",
    "MAX_ROOM_NAME_LENGTH",
    "RoomRegistry",
    "normalize_room_name",
    "parse_room_id",
]
