"""Participant tracker: idempotent membership records per room."""

import logging
from datetime import datetime, timezone
from typing import Optional

from db.models import Participant
from db.storage import ParticipantStorage
from rooms.registry import parse_room_id

logger = logging.getLogger(__name__)


class ParticipantTracker:
    def __init__(self, participants: ParticipantStorage):
        self.participants = participants

    async def record_join(
        self,
        room_id: str,
        identity: str,
        joined_at: Optional[datetime] = None,
        display_name: Optional[str] = None,
    ) -> bool:
        """Record that ``identity`` joined. Returns True only for the first join."""
        room_id = parse_room_id(room_id)
        result = await self.participants.insert_participant(
            room_id,
            identity,
            joined_at or datetime.now(timezone.utc),
            display_name,
        )
        if result.created:
            logger.info("Participant %s joined room %s", identity, room_id)
        return result.created

    async def list_participants(self, room_id: str) -> list[Participant]:
        """Participants in join order (earliest first)."""
        return await self.participants.list_participants(parse_room_id(room_id))

    async def is_member(self, room_id: str, identity: str) -> bool:
        return await self.participants.is_member(parse_room_id(room_id), identity)


__all__ = ["ParticipantTracker"]
