"""
Recording storage.

Every status change is a conditional UPDATE guarded by the expected current
status, so two racing writers cannot both apply a transition. The partial
unique index on (room_id, participant_identity) for live statuses backs the
"one live egress per participant" rule at insert time.
"""

import logging
from typing import Any, Iterable, Optional

from db.models import (
    LIVE_STATUSES,
    InsertOutcome,
    InsertResult,
    Recording,
    RecordingStatus,
    TERMINAL_STATUSES,
)
from db.schema_constants import RECORDING_COLUMNS, RECORDINGS_FULL
from db.storage.base import BaseStorage

logger = logging.getLogger(__name__)

# Columns a transition may write alongside status
TRANSITION_FIELDS = frozenset({"egress_id", "size_bytes", "duration_seconds", "error", "ended_at"})


def _status_values(statuses: Iterable[RecordingStatus]) -> list[str]:
    return sorted(RecordingStatus(s).value for s in statuses)


class RecordingStorage(BaseStorage):
    """Operations for the recordings table."""

    async def insert_live_recording(
        self,
        room_id: str,
        participant_identity: str,
        storage_path: str,
        created_by: str,
    ) -> InsertResult[Recording]:
        """
        Create a STARTING row unless the participant already has a live one.

        The check and the write are one statement: the partial unique index
        rejects the insert when a starting/recording row exists.
        """
        row = await self._fetch_one(
            "insert_live_recording",
            f"""
            INSERT INTO {RECORDINGS_FULL}
                (room_id, participant_identity, storage_path, status, created_by)
            VALUES (%s::uuid, %s, %s, %s, %s)
            ON CONFLICT (room_id, participant_identity)
                WHERE status IN ('starting', 'recording')
            DO NOTHING
            RETURNING {RECORDING_COLUMNS}
            """,
            (room_id, participant_identity, storage_path, RecordingStatus.STARTING.value, created_by),
            commit=True,
        )

        if row is None:
            return InsertResult(InsertOutcome.ALREADY_EXISTED, None)
        return InsertResult(InsertOutcome.CREATED, Recording.from_row(row))

    async def get_recording(self, recording_id: str) -> Optional[Recording]:
        row = await self._fetch_one(
            "get_recording",
            f"SELECT {RECORDING_COLUMNS} FROM {RECORDINGS_FULL} WHERE id = %s::uuid LIMIT 1",
            (recording_id,),
        )
        return Recording.from_row(row) if row else None

    async def get_recording_by_egress(self, egress_id: str) -> Optional[Recording]:
        row = await self._fetch_one(
            "get_recording_by_egress",
            f"SELECT {RECORDING_COLUMNS} FROM {RECORDINGS_FULL} WHERE egress_id = %s LIMIT 1",
            (egress_id,),
        )
        return Recording.from_row(row) if row else None

    async def get_live_recording(self, room_id: str, participant_identity: str) -> Optional[Recording]:
        row = await self._fetch_one(
            "get_live_recording",
            f"""
            SELECT {RECORDING_COLUMNS}
            FROM {RECORDINGS_FULL}
            WHERE room_id = %s::uuid
              AND participant_identity = %s
              AND status = ANY(%s)
            LIMIT 1
            """,
            (room_id, participant_identity, _status_values(LIVE_STATUSES)),
        )
        return Recording.from_row(row) if row else None

    async def transition(
        self,
        recording_id: str,
        expected: Iterable[RecordingStatus],
        target: RecordingStatus,
        **fields: Any,
    ) -> Optional[Recording]:
        """
        Move a recording to ``target`` if it is currently in one of ``expected``.

        Returns:
            The updated row, or None if the row was missing or no longer in an
            expected status (a concurrent writer got there first)
        """
        update_fields = {k: v for k, v in fields.items() if k in TRANSITION_FIELDS}
        ignored = set(fields) - set(update_fields)
        if ignored:
            logger.debug("Ignoring non-transition fields %s for recording %s", sorted(ignored), recording_id)

        assignments = ["status = %s", "updated_at = now()"]
        values: list[Any] = [RecordingStatus(target).value]
        for column, value in update_fields.items():
            assignments.append(f"{column} = %s")
            values.append(value)
        values.extend([recording_id, _status_values(expected)])

        row = await self._fetch_one(
            "transition_recording",
            f"""
            UPDATE {RECORDINGS_FULL}
            SET {", ".join(assignments)}
            WHERE id = %s::uuid AND status = ANY(%s)
            RETURNING {RECORDING_COLUMNS}
            """,
            values,
            commit=True,
        )
        return Recording.from_row(row) if row else None

    async def fill_completion_metadata(
        self,
        recording_id: str,
        size_bytes: Optional[int],
        duration_seconds: Optional[float],
    ) -> Optional[Recording]:
        """Set size/duration on a COMPLETED row that was stopped before they were known."""
        row = await self._fetch_one(
            "fill_completion_metadata",
            f"""
            UPDATE {RECORDINGS_FULL}
            SET size_bytes = COALESCE(size_bytes, %s),
                duration_seconds = COALESCE(duration_seconds, %s),
                updated_at = now()
            WHERE id = %s::uuid
              AND status = %s
              AND (size_bytes IS NULL OR duration_seconds IS NULL)
            RETURNING {RECORDING_COLUMNS}
            """,
            (size_bytes, duration_seconds, recording_id, RecordingStatus.COMPLETED.value),
            commit=True,
        )
        return Recording.from_row(row) if row else None

    async def list_recordings(self, room_id: str) -> list[Recording]:
        rows = await self._fetch_all(
            "list_recordings",
            f"""
            SELECT {RECORDING_COLUMNS}
            FROM {RECORDINGS_FULL}
            WHERE room_id = %s::uuid
            ORDER BY created_at DESC
            """,
            (room_id,),
        )
        return [Recording.from_row(row) for row in rows]

    async def list_live_recordings(self, room_id: str) -> list[Recording]:
        rows = await self._fetch_all(
            "list_live_recordings",
            f"""
            SELECT {RECORDING_COLUMNS}
            FROM {RECORDINGS_FULL}
            WHERE room_id = %s::uuid AND status = ANY(%s)
            ORDER BY created_at ASC
            """,
            (room_id, _status_values(LIVE_STATUSES)),
        )
        return [Recording.from_row(row) for row in rows]

    async def delete_terminal_recording(self, recording_id: str) -> bool:
        """Hard-delete a recording row, only if it is completed or failed."""
        deleted = await self._execute(
            "delete_recording",
            f"""
            DELETE FROM {RECORDINGS_FULL}
            WHERE id = %s::uuid AND status = ANY(%s)
            """,
            (recording_id, _status_values(TERMINAL_STATUSES)),
        )
        if deleted:
            logger.info("Deleted recording row %s", recording_id)
        return deleted > 0

    async def path_shared_with_other_rows(self, recording_id: str, storage_path: str) -> bool:
        """True if any other recording row points at the same object."""
        row = await self._fetch_one(
            "path_shared_with_other_rows",
            f"""
            SELECT 1 AS shared FROM {RECORDINGS_FULL}
            WHERE storage_path = %s AND id <> %s::uuid
            LIMIT 1
            """,
            (storage_path, recording_id),
        )
        return row is not None
