"""
Recording lifecycle manager

State machine per (room, participant):

    NONE --start--> STARTING --egress active--> RECORDING --stop / egress complete--> COMPLETED
    STARTING / RECORDING --egress failed--> FAILED

Explicit stop, webhook notifications and room reconciliation all go through
_apply_transition, which only writes with a conditional UPDATE guarded by the
expected current status. A second notification for a terminal row is a no-op,
except that a COMPLETED row still missing size/duration accepts them once.

A start whose media server call timed out stays STARTING; the egress it may
have launched is adopted later by its webhook or by reconcile_room.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from db.models import LIVE_STATUSES, Recording, RecordingStatus
from db.storage import RecordingStorage, RoomStorage
from recording.artifacts import ArtifactResolver
from recording.media_server import EgressState, EgressUpdate, MediaServerClient
from recording.paths import DEFAULT_FILE_EXTENSION, build_storage_path, validate_identity
from rooms.access import RoomAccess
from rooms.registry import parse_room_id
from utils.errors import (
    AccessDenied,
    AlreadyRecording,
    EgressRejected,
    InvalidReference,
    InvalidState,
    NotFound,
    UpstreamUnavailable,
)
from utils.identity import CallerContext

logger = logging.getLogger(__name__)

EGRESS_ID_PREFIX = "EG_"

# STARTING rows that never got an egress id are abandoned after this long
STALE_STARTING_AFTER = timedelta(minutes=2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordingLifecycleManager:
    """Start, stop and reconcile per-participant recordings."""

    def __init__(
        self,
        recordings: RecordingStorage,
        rooms: RoomStorage,
        access: RoomAccess,
        media: MediaServerClient,
        artifacts: ArtifactResolver,
        file_extension: str = DEFAULT_FILE_EXTENSION,
    ):
        self.recordings = recordings
        self.rooms = rooms
        self.access = access
        self.media = media
        self.artifacts = artifacts
        self.file_extension = file_extension

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _apply_transition(self, recording: Recording, update: EgressUpdate) -> Optional[Recording]:
        """
        Apply one egress observation to a recording row.

        Returns the updated row, or None when nothing changed.
        """
        if update.state is EgressState.ACTIVE:
            if recording.status is not RecordingStatus.STARTING:
                return None
            return await self.recordings.transition(
                recording.id,
                [RecordingStatus.STARTING],
                RecordingStatus.RECORDING,
                egress_id=update.egress_id,
            )

        if update.state is EgressState.COMPLETE:
            if recording.status.is_live:
                updated = await self.recordings.transition(
                    recording.id,
                    LIVE_STATUSES,
                    RecordingStatus.COMPLETED,
                    size_bytes=update.size_bytes,
                    duration_seconds=update.duration_seconds,
                    ended_at=_utcnow(),
                )
                if updated is not None:
                    logger.info("Recording %s completed (egress %s)", recording.id, update.egress_id)
                    return updated
                # Lost the race to another writer; fall through to the metadata fill

            if update.size_bytes is None and update.duration_seconds is None:
                return None
            filled = await self.recordings.fill_completion_metadata(
                recording.id,
                update.size_bytes,
                update.duration_seconds,
            )
            if filled is not None:
                logger.info("Recording %s completion metadata filled", recording.id)
            return filled

        if update.state is EgressState.FAILED:
            if not recording.status.is_live:
                return None
            updated = await self.recordings.transition(
                recording.id,
                LIVE_STATUSES,
                RecordingStatus.FAILED,
                error=update.error or "Egress failed",
                ended_at=_utcnow(),
            )
            if updated is not None:
                logger.warning("Recording %s failed: %s", recording.id, update.error)
            return updated

        # STARTING / ENDING carry nothing the row does not already reflect
        return None

    async def _mark_failed(self, recording: Recording, reason: str) -> Optional[Recording]:
        return await self.recordings.transition(
            recording.id,
            LIVE_STATUSES,
            RecordingStatus.FAILED,
            error=reason,
            ended_at=_utcnow(),
        )

    async def _adopt_egress(self, recording: Recording, update: EgressUpdate) -> Optional[Recording]:
        """Attach an egress whose start was never confirmed to its STARTING row."""
        adopted = await self.recordings.transition(
            recording.id,
            [RecordingStatus.STARTING],
            RecordingStatus.RECORDING,
            egress_id=update.egress_id,
        )
        if adopted is None:
            return None
        logger.info("Recording %s adopted egress %s (%s)", recording.id, update.egress_id, update.state.value)
        if update.state in (EgressState.COMPLETE, EgressState.FAILED):
            return await self._apply_transition(adopted, update) or adopted
        return adopted

    async def _unclaimed_egress_for(
        self,
        recording: Recording,
        updates: list[EgressUpdate],
    ) -> Optional[EgressUpdate]:
        """An egress for this participant's path that no recording row owns yet."""
        # Running jobs first, so an old finished take is never preferred
        candidates = sorted(
            updates,
            key=lambda u: u.state in (EgressState.COMPLETE, EgressState.FAILED),
        )
        for update in candidates:
            if update.filepath:
                if update.filepath != recording.storage_path:
                    continue
            elif update.participant_identity != recording.participant_identity:
                continue
            if await self.recordings.get_recording_by_egress(update.egress_id) is None:
                return update
        return None

    async def _starting_row_for(self, update: EgressUpdate) -> Optional[Recording]:
        if not update.room_name or not update.participant_identity:
            return None
        try:
            room_id = parse_room_id(update.room_name)
        except InvalidReference:
            return None
        live = await self.recordings.get_live_recording(room_id, update.participant_identity)
        if live is None or live.status is not RecordingStatus.STARTING or live.egress_id:
            return None
        if update.filepath and update.filepath != live.storage_path:
            return None
        return live

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_recording(
        self,
        caller: CallerContext,
        room_id: str,
        participant_identity: str,
    ) -> Recording:
        """
        Start recording one participant.

        Raises:
            AccessDenied: caller is neither the owner nor a member recording themself
            AlreadyRecording: the participant already has a live recording here
            EgressRejected: the media server refused the job (row is FAILED)
            UpstreamUnavailable: the media server timed out (row stays STARTING)
        """
        validate_identity(participant_identity)
        room = await self.access.require_participant(caller, room_id)
        if room.owner_id != caller.user_id and participant_identity != caller.user_id:
            raise AccessDenied(
                "Only the room owner can record other participants",
                {"room_id": room.id},
            )

        storage_path = build_storage_path(room.id, participant_identity, self.file_extension)
        result = await self.recordings.insert_live_recording(
            room.id,
            participant_identity,
            storage_path,
            caller.user_id,
        )
        if not result.created:
            live = await self.recordings.get_live_recording(room.id, participant_identity)
            raise AlreadyRecording(
                f"{participant_identity} is already being recorded",
                {"recording_id": live.id if live else None, "room_id": room.id},
            )

        recording = result.row
        logger.info("Recording %s created for %s in room %s", recording.id, participant_identity, room.id)

        try:
            egress = await self.media.start_participant_egress(room.id, participant_identity, storage_path)
        except EgressRejected as exc:
            await self._mark_failed(recording, exc.message)
            raise
        except UpstreamUnavailable:
            # The server may have accepted the job before the timeout. The row
            # stays STARTING so a retry gets AlreadyRecording; the egress is
            # adopted by its webhook or by reconcile_room.
            logger.warning(
                "Start of recording %s unconfirmed, leaving it starting until the egress is seen",
                recording.id,
            )
            raise

        updated = await self.recordings.transition(
            recording.id,
            [RecordingStatus.STARTING],
            RecordingStatus.RECORDING,
            egress_id=egress.egress_id,
        )
        if updated is None:
            # A concurrent writer moved the row; report whatever it is now
            return await self.recordings.get_recording(recording.id) or recording
        return updated

    async def _find_recording(self, ref: str) -> Recording:
        ref = (ref or "").strip()
        if ref.startswith(EGRESS_ID_PREFIX):
            recording = await self.recordings.get_recording_by_egress(ref)
        else:
            try:
                recording_id = parse_room_id(ref)
            except InvalidReference as exc:
                raise InvalidReference(f"Invalid recording reference: {ref!r}", {"ref": ref}) from exc
            recording = await self.recordings.get_recording(recording_id)
        if recording is None:
            raise NotFound(f"Recording {ref} not found", {"ref": ref})
        return recording

    async def stop_recording(self, caller: CallerContext, recording_ref: str) -> Recording:
        """
        Stop a RECORDING row by recording id or egress id.

        On a media server timeout the row is left as it was, so the call can
        be retried. If the server refuses the stop because the egress already
        ended or failed, the server's view of the job is applied instead.
        """
        recording = await self._find_recording(recording_ref)

        room = await self.rooms.get_room(recording.room_id)
        allowed = {recording.participant_identity, recording.created_by}
        if room is not None:
            allowed.add(room.owner_id)
        if caller.user_id not in allowed:
            raise AccessDenied("You cannot stop this recording", {"recording_id": recording.id})

        if recording.status is not RecordingStatus.RECORDING or not recording.egress_id:
            raise InvalidState(
                f"Recording is {recording.status.value}, not recording",
                {"recording_id": recording.id, "status": recording.status.value},
            )

        try:
            update = await self.media.stop_egress(recording.egress_id)
        except EgressRejected:
            server_view = await self.media.list_egress(recording.room_id)
            update = next((u for u in server_view if u.egress_id == recording.egress_id), None)
            if update is None or update.state not in (EgressState.COMPLETE, EgressState.FAILED):
                raise
            logger.info("Stop of egress %s refused, server reports it %s", recording.egress_id, update.state.value)

        updated = await self._apply_transition(recording, update)
        if updated is None:
            return await self.recordings.get_recording(recording.id) or recording
        return updated

    async def handle_egress_update(self, update: EgressUpdate) -> Optional[Recording]:
        """
        Apply an out-of-band egress notification.

        An egress id no row knows is adopted by the participant's STARTING row
        when one is waiting for it; otherwise the update is ignored.
        """
        recording = await self.recordings.get_recording_by_egress(update.egress_id)
        if recording is not None:
            return await self._apply_transition(recording, update)

        starting = await self._starting_row_for(update)
        if starting is not None:
            return await self._adopt_egress(starting, update)

        logger.info("Ignoring update for unknown egress %s (%s)", update.egress_id, update.state.value)
        return None

    async def list_recordings(self, caller: CallerContext, room_id: str) -> list[Recording]:
        """Recordings for a room, newest first."""
        room = await self.access.require_participant(caller, room_id)
        return await self.recordings.list_recordings(room.id)

    async def reconcile_room(self, caller: CallerContext, room_id: str) -> list[Recording]:
        """
        Bring live rows in line with what the media server reports.

        Used when webhooks were lost. Returns the rows that changed.
        """
        room = await self.access.require_owner(caller, room_id)
        live = await self.recordings.list_live_recordings(room.id)
        if not live:
            return []

        server_updates = await self.media.list_egress(room.id)
        server_view = {update.egress_id: update for update in server_updates}
        changed: list[Recording] = []
        now = _utcnow()

        for recording in live:
            updated = None
            if recording.egress_id and recording.egress_id in server_view:
                updated = await self._apply_transition(recording, server_view[recording.egress_id])
            elif recording.egress_id:
                updated = await self._mark_failed(recording, "Egress no longer known to media server")
            else:
                orphan = await self._unclaimed_egress_for(recording, server_updates)
                if orphan is not None:
                    updated = await self._adopt_egress(recording, orphan)
                elif recording.created_at and now - recording.created_at > STALE_STARTING_AFTER:
                    updated = await self._mark_failed(recording, "Egress never started")

            if updated is not None:
                changed.append(updated)

        logger.info("Reconciled room %s: %d of %d live recordings changed", room.id, len(changed), len(live))
        return changed

    async def delete_recording(self, caller: CallerContext, recording_id: str) -> None:
        """
        Remove a finished recording and its object. Owner only.

        The object is kept if a newer row for the same participant still
        points at it.
        """
        recording = await self._find_recording(recording_id)
        await self.access.require_owner(caller, recording.room_id)

        if recording.status.is_live:
            raise InvalidState(
                "Stop the recording before deleting it",
                {"recording_id": recording.id, "status": recording.status.value},
            )

        if await self.recordings.path_shared_with_other_rows(recording.id, recording.storage_path):
            logger.info("Keeping object %s, still referenced by another recording", recording.storage_path)
        else:
            await self.artifacts.delete_artifact(recording.storage_path)

        if not await self.recordings.delete_terminal_recording(recording.id):
            raise InvalidState("Recording changed while deleting", {"recording_id": recording.id})


__all__ = ["RecordingLifecycleManager", "EGRESS_ID_PREFIX"]
