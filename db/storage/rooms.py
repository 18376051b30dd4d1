"""
Room storage.

Rooms are keyed by a server-generated UUID. System-reserved rooms (the per-owner
demo room) additionally carry a reserved_key, with a partial unique index on
(owner_id, reserved_key) so concurrent creators cannot produce duplicates.
"""

import logging
from typing import Optional

from db.models import InsertOutcome, InsertResult, Room
from db.schema_constants import ROOMS_FULL
from db.storage.base import BaseStorage

logger = logging.getLogger(__name__)

_ROOM_COLUMNS = "id, name, owner_id, reserved_key, created_at"


class RoomStorage(BaseStorage):
    """CRUD operations for the rooms table."""

    async def get_room(self, room_id: str) -> Optional[Room]:
        row = await self._fetch_one(
            "get_room",
            f"SELECT {_ROOM_COLUMNS} FROM {ROOMS_FULL} WHERE id = %s::uuid LIMIT 1",
            (room_id,),
        )
        return Room.from_row(row) if row else None

    async def get_reserved_room(self, owner_id: str, reserved_key: str) -> Optional[Room]:
        row = await self._fetch_one(
            "get_reserved_room",
            f"""
            SELECT {_ROOM_COLUMNS}
            FROM {ROOMS_FULL}
            WHERE owner_id = %s AND reserved_key = %s
            LIMIT 1
            """,
            (owner_id, reserved_key),
        )
        return Room.from_row(row) if row else None

    async def insert_reserved_room(
        self,
        owner_id: str,
        reserved_key: str,
        name: str,
    ) -> InsertResult[Room]:
        """
        Insert a reserved room unless the owner already has one.

        Returns ALREADY_EXISTED (with no row) when the unique index rejected the
        insert; the caller re-reads to find the winner.
        """
        row = await self._fetch_one(
            "insert_reserved_room",
            f"""
            INSERT INTO {ROOMS_FULL} (name, owner_id, reserved_key)
            VALUES (%s, %s, %s)
            ON CONFLICT (owner_id, reserved_key) WHERE reserved_key IS NOT NULL
            DO NOTHING
            RETURNING {_ROOM_COLUMNS}
            """,
            (name, owner_id, reserved_key),
            commit=True,
        )

        if row is None:
            logger.info("Reserved room %s for owner %s already exists", reserved_key, owner_id)
            return InsertResult(InsertOutcome.ALREADY_EXISTED, None)

        room = Room.from_row(row)
        logger.info("Created reserved room %s (%s) for owner %s", room.id, reserved_key, owner_id)
        return InsertResult(InsertOutcome.CREATED, room)

    async def create_room(self, owner_id: str, name: str) -> Room:
        row = await self._fetch_one(
            "create_room",
            f"""
            INSERT INTO {ROOMS_FULL} (name, owner_id)
            VALUES (%s, %s)
            RETURNING {_ROOM_COLUMNS}
            """,
            (name, owner_id),
            commit=True,
        )
        room = Room.from_row(row)
        logger.info("Created room %s (%r) for owner %s", room.id, name, owner_id)
        return room

    async def list_rooms_for_owner(self, owner_id: str) -> list[Room]:
        rows = await self._fetch_all(
            "list_rooms_for_owner",
            f"""
            SELECT {_ROOM_COLUMNS}
            FROM {ROOMS_FULL}
            WHERE owner_id = %s
            ORDER BY created_at DESC
            """,
            (owner_id,),
        )
        return [Room.from_row(row) for row in rows]

    async def rename_room(self, room_id: str, name: str) -> Optional[Room]:
        row = await self._fetch_one(
            "rename_room",
            f"""
            UPDATE {ROOMS_FULL}
            SET name = %s
            WHERE id = %s::uuid
            RETURNING {_ROOM_COLUMNS}
            """,
            (name, room_id),
            commit=True,
        )
        return Room.from_row(row) if row else None
