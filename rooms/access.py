"""Room-level authorization shared by the recording and artifact operations."""

import logging

from db.models import Room
from db.storage import RoomStorage
from rooms.participants import ParticipantTracker
from rooms.registry import parse_room_id
from utils.errors import AccessDenied, NotFound
from utils.identity import CallerContext

logger = logging.getLogger(__name__)


class RoomAccess:
    def __init__(self, rooms: RoomStorage, tracker: ParticipantTracker):
        self.rooms = rooms
        self.tracker = tracker

    async def _load(self, room_id: str, hide_missing: bool) -> Room:
        room_id = parse_room_id(room_id)
        room = await self.rooms.get_room(room_id)
        if room is None:
            if hide_missing:
                raise AccessDenied("Access denied", {"room_id": room_id})
            raise NotFound(f"Room {room_id} not found", {"room_id": room_id})
        return room

    async def require_owner(self, caller: CallerContext, room_id: str) -> Room:
        room = await self._load(room_id, hide_missing=False)
        if room.owner_id != caller.user_id:
            raise AccessDenied("Only the room owner can do this", {"room_id": room.id})
        return room

    async def require_participant(
        self,
        caller: CallerContext,
        room_id: str,
        hide_missing: bool = False,
    ) -> Room:
        """
        Allow the room owner or anyone who has joined the room.

        With ``hide_missing`` a nonexistent room is reported as AccessDenied
        so callers cannot discover which room ids exist.
        """
        room = await self._load(room_id, hide_missing)
        if room.owner_id == caller.user_id:
            return room
        if await self.tracker.is_member(room.id, caller.user_id):
            return room
        logger.info("Denied %s access to room %s", caller.user_id, room.id)
        raise AccessDenied("You are not a participant of this room", {"room_id": room.id})


__all__ = ["RoomAccess"]
