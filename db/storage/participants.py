"""
Room membership storage.

Membership history is retained: rows are inserted once per (room, identity)
and never updated or deleted.
"""

import logging
from datetime import datetime
from typing import Optional

from db.models import InsertOutcome, InsertResult, Participant
from db.schema_constants import PARTICIPANTS_FULL
from db.storage.base import BaseStorage

logger = logging.getLogger(__name__)

_PARTICIPANT_COLUMNS = "room_id, identity, display_name, joined_at"


class ParticipantStorage(BaseStorage):
    """Operations for the room_participants table."""

    async def insert_participant(
        self,
        room_id: str,
        identity: str,
        joined_at: datetime,
        display_name: Optional[str] = None,
    ) -> InsertResult[Participant]:
        row = await self._fetch_one(
            "insert_participant",
            f"""
            INSERT INTO {PARTICIPANTS_FULL} (room_id, identity, display_name, joined_at)
            VALUES (%s::uuid, %s, %s, %s)
            ON CONFLICT (room_id, identity) DO NOTHING
            RETURNING {_PARTICIPANT_COLUMNS}
            """,
            (room_id, identity, display_name, joined_at),
            commit=True,
        )

        if row is None:
            return InsertResult(InsertOutcome.ALREADY_EXISTED, None)
        return InsertResult(InsertOutcome.CREATED, Participant.from_row(row))

    async def list_participants(self, room_id: str) -> list[Participant]:
        rows = await self._fetch_all(
            "list_participants",
            f"""
            SELECT {_PARTICIPANT_COLUMNS}
            FROM {PARTICIPANTS_FULL}
            WHERE room_id = %s::uuid
            ORDER BY joined_at ASC, identity ASC
            """,
            (room_id,),
        )
        return [Participant.from_row(row) for row in rows]

    async def is_member(self, room_id: str, identity: str) -> bool:
        row = await self._fetch_one(
            "is_member",
            f"""
            SELECT 1 AS member FROM {PARTICIPANTS_FULL}
            WHERE room_id = %s::uuid AND identity = %s
            LIMIT 1
            """,
            (room_id, identity),
        )
        return row is not None
