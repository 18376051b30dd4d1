"""
Shared fixtures: in-memory stand-ins for the storage classes, the LiveKit
client and the GCS object store.

The fakes keep the same contracts as the SQL they replace: reserved rooms are
unique per (owner, key), membership is unique per (room, identity), at most one
starting/recording row exists per (room, participant), and every status change
is conditional on the current status.
"""

import asyncio
import itertools
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from api.services import build_orchestrator
from db.models import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    InsertOutcome,
    InsertResult,
    Participant,
    Recording,
    RecordingStatus,
    Room,
)
from recording.media_server import EgressState, EgressUpdate
from utils.errors import EgressRejected, UpstreamUnavailable
from utils.identity import CallerContext


class FakeClock:
    """Strictly increasing timestamps so ordering assertions are stable."""

    def __init__(self):
        self._base = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
        self._ticks = itertools.count()

    def now(self) -> datetime:
        return self._base + timedelta(milliseconds=next(self._ticks))


class FakeRoomStorage:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.rooms: dict[str, Room] = {}
        self.insert_attempts = 0

    async def get_room(self, room_id: str) -> Optional[Room]:
        await asyncio.sleep(0)
        return self.rooms.get(room_id)

    async def get_reserved_room(self, owner_id: str, reserved_key: str) -> Optional[Room]:
        await asyncio.sleep(0)
        for room in self.rooms.values():
            if room.owner_id == owner_id and room.reserved_key == reserved_key:
                return room
        return None

    async def insert_reserved_room(self, owner_id: str, reserved_key: str, name: str) -> InsertResult[Room]:
        await asyncio.sleep(0)
        self.insert_attempts += 1
        for room in self.rooms.values():
            if room.owner_id == owner_id and room.reserved_key == reserved_key:
                return InsertResult(InsertOutcome.ALREADY_EXISTED, None)
        room = Room(
            id=str(uuid.uuid4()),
            name=name,
            owner_id=owner_id,
            created_at=self.clock.now(),
            reserved_key=reserved_key,
        )
        self.rooms[room.id] = room
        return InsertResult(InsertOutcome.CREATED, room)

    async def create_room(self, owner_id: str, name: str) -> Room:
        await asyncio.sleep(0)
        room = Room(id=str(uuid.uuid4()), name=name, owner_id=owner_id, created_at=self.clock.now())
        self.rooms[room.id] = room
        return room

    async def list_rooms_for_owner(self, owner_id: str) -> list[Room]:
        await asyncio.sleep(0)
        owned = [r for r in self.rooms.values() if r.owner_id == owner_id]
        return sorted(owned, key=lambda r: r.created_at, reverse=True)

    async def rename_room(self, room_id: str, name: str) -> Optional[Room]:
        await asyncio.sleep(0)
        room = self.rooms.get(room_id)
        if room is None:
            return None
        self.rooms[room_id] = replace(room, name=name)
        return self.rooms[room_id]


class FakeParticipantStorage:
    def __init__(self):
        self.rows: dict[tuple[str, str], Participant] = {}
        self.fail_inserts = False

    async def insert_participant(self, room_id, identity, joined_at, display_name=None) -> InsertResult[Participant]:
        await asyncio.sleep(0)
        if self.fail_inserts:
            raise UpstreamUnavailable("database", "insert_participant")
        key = (room_id, identity)
        if key in self.rows:
            return InsertResult(InsertOutcome.ALREADY_EXISTED, None)
        self.rows[key] = Participant(room_id=room_id, identity=identity, joined_at=joined_at, display_name=display_name)
        return InsertResult(InsertOutcome.CREATED, self.rows[key])

    async def list_participants(self, room_id: str) -> list[Participant]:
        await asyncio.sleep(0)
        members = [p for (rid, _), p in self.rows.items() if rid == room_id]
        return sorted(members, key=lambda p: (p.joined_at, p.identity))

    async def is_member(self, room_id: str, identity: str) -> bool:
        await asyncio.sleep(0)
        return (room_id, identity) in self.rows


class FakeRecordingStorage:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.rows: dict[str, Recording] = {}
        self.writes = 0

    def _live_row(self, room_id: str, identity: str) -> Optional[Recording]:
        for row in self.rows.values():
            if row.room_id == room_id and row.participant_identity == identity and row.status in LIVE_STATUSES:
                return row
        return None

    async def insert_live_recording(self, room_id, participant_identity, storage_path, created_by) -> InsertResult[Recording]:
        await asyncio.sleep(0)
        if self._live_row(room_id, participant_identity) is not None:
            return InsertResult(InsertOutcome.ALREADY_EXISTED, None)
        now = self.clock.now()
        row = Recording(
            id=str(uuid.uuid4()),
            room_id=room_id,
            participant_identity=participant_identity,
            storage_path=storage_path,
            status=RecordingStatus.STARTING,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.rows[row.id] = row
        self.writes += 1
        return InsertResult(InsertOutcome.CREATED, row)

    async def get_recording(self, recording_id: str) -> Optional[Recording]:
        await asyncio.sleep(0)
        return self.rows.get(recording_id)

    async def get_recording_by_egress(self, egress_id: str) -> Optional[Recording]:
        await asyncio.sleep(0)
        for row in self.rows.values():
            if row.egress_id == egress_id:
                return row
        return None

    async def get_live_recording(self, room_id, participant_identity) -> Optional[Recording]:
        await asyncio.sleep(0)
        return self._live_row(room_id, participant_identity)

    async def transition(self, recording_id, expected, target, **fields) -> Optional[Recording]:
        await asyncio.sleep(0)
        row = self.rows.get(recording_id)
        if row is None or row.status not in set(expected):
            return None
        self.rows[recording_id] = replace(row, status=RecordingStatus(target), updated_at=self.clock.now(), **fields)
        self.writes += 1
        return self.rows[recording_id]

    async def fill_completion_metadata(self, recording_id, size_bytes, duration_seconds) -> Optional[Recording]:
        await asyncio.sleep(0)
        row = self.rows.get(recording_id)
        if row is None or row.status is not RecordingStatus.COMPLETED or row.has_completion_metadata:
            return None
        self.rows[recording_id] = replace(
            row,
            size_bytes=row.size_bytes if row.size_bytes is not None else size_bytes,
            duration_seconds=row.duration_seconds if row.duration_seconds is not None else duration_seconds,
            updated_at=self.clock.now(),
        )
        self.writes += 1
        return self.rows[recording_id]

    async def list_recordings(self, room_id: str) -> list[Recording]:
        await asyncio.sleep(0)
        rows = [r for r in self.rows.values() if r.room_id == room_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    async def list_live_recordings(self, room_id: str) -> list[Recording]:
        await asyncio.sleep(0)
        rows = [r for r in self.rows.values() if r.room_id == room_id and r.status in LIVE_STATUSES]
        return sorted(rows, key=lambda r: r.created_at)

    async def delete_terminal_recording(self, recording_id: str) -> bool:
        await asyncio.sleep(0)
        row = self.rows.get(recording_id)
        if row is None or row.status not in TERMINAL_STATUSES:
            return False
        del self.rows[recording_id]
        return True

    async def path_shared_with_other_rows(self, recording_id: str, storage_path: str) -> bool:
        await asyncio.sleep(0)
        return any(r.storage_path == storage_path and r.id != recording_id for r in self.rows.values())


class FakeMediaServer:
    """Stands in for MediaServerClient. Failure modes are set per test."""

    url = "wss://livekit.test"

    def __init__(self):
        self.egress: dict[str, EgressUpdate] = {}
        self.started: list[tuple[str, str, str]] = []
        self.stopped: list[str] = []
        self.ensured_rooms: list[str] = []
        self.ensure_room_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        # Raised after the job is launched, like a response lost to a timeout
        self.start_error_after_launch: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None
        self.stop_reports_already_complete = False
        self.webhook_updates: dict[str, EgressUpdate] = {}
        self._ids = itertools.count(1)

    async def ensure_room(self, room_name: str) -> None:
        if self.ensure_room_error:
            raise self.ensure_room_error
        self.ensured_rooms.append(room_name)

    def sign_token(self, room_name, identity, display_name, ttl_seconds=21600):
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        return f"jwt:{room_name}:{identity}:{display_name}", expires_at

    async def start_participant_egress(self, room_name, identity, filepath) -> EgressUpdate:
        if self.start_error:
            raise self.start_error
        egress_id = f"EG_{next(self._ids):04d}"
        update = EgressUpdate(
            egress_id=egress_id,
            state=EgressState.ACTIVE,
            room_name=room_name,
            participant_identity=identity,
            filepath=filepath,
        )
        self.egress[egress_id] = update
        self.started.append((room_name, identity, filepath))
        if self.start_error_after_launch:
            raise self.start_error_after_launch
        return update

    async def stop_egress(self, egress_id: str) -> EgressUpdate:
        if self.stop_error:
            raise self.stop_error
        self.stopped.append(egress_id)
        previous = self.egress.get(egress_id)
        update = EgressUpdate(egress_id=egress_id, state=EgressState.COMPLETE)
        if previous is not None:
            update = replace(previous, state=EgressState.COMPLETE)
        self.egress[egress_id] = update
        return update

    async def list_egress(self, room_name: str) -> list[EgressUpdate]:
        return [u for u in self.egress.values() if u.room_name in (None, room_name)]

    def parse_webhook(self, body: str, auth_header: Optional[str]) -> Optional[EgressUpdate]:
        return self.webhook_updates.get(body)


class FakeObjectStore:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.removed: list[str] = []
        self._signatures = itertools.count(1)

    async def put(self, blob_path: str, data: bytes, content_type: str = "audio/ogg", metadata=None) -> str:
        self.objects[blob_path] = data
        return f"gs://calls/{blob_path}"

    async def remove(self, blob_path: str) -> bool:
        self.removed.append(blob_path)
        return self.objects.pop(blob_path, None) is not None

    async def exists(self, blob_path: str) -> bool:
        return blob_path in self.objects

    async def sign(self, blob_path: str, ttl_seconds: int) -> str:
        return (
            f"https://storage.googleapis.com/calls/{blob_path}"
            f"?X-Goog-Expires={ttl_seconds}&X-Goog-Signature={next(self._signatures):08x}"
        )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def room_storage(clock):
    return FakeRoomStorage(clock)


@pytest.fixture
def participant_storage():
    return FakeParticipantStorage()


@pytest.fixture
def recording_storage(clock):
    return FakeRecordingStorage(clock)


@pytest.fixture
def media():
    return FakeMediaServer()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def orchestrator(room_storage, participant_storage, recording_storage, media, object_store):
    return build_orchestrator(
        rooms=room_storage,
        participants=participant_storage,
        recordings=recording_storage,
        media=media,
        object_store=object_store,
    )


@pytest.fixture
def alice():
    return CallerContext(user_id="user-alice", display_name="Alice", email="alice@example.com")


@pytest.fixture
def bob():
    return CallerContext(user_id="user-bob", display_name="Bob")


@pytest.fixture
def mallory():
    return CallerContext(user_id="user-mallory", display_name="Mallory")


@pytest.fixture
def egress_rejected():
    return EgressRejected("participant not found", {"reason": "participant not found"})
