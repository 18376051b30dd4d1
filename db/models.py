"""
Row models for rooms, participants and recordings.

Storage classes return these dataclasses instead of raw RealDictCursor rows so
the orchestrator never depends on column spelling.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Mapping, Optional, TypeVar


class RecordingStatus(str, Enum):
    STARTING = "starting"
    RECORDING = "recording"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_live(self) -> bool:
        return self in LIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


LIVE_STATUSES = frozenset({RecordingStatus.STARTING, RecordingStatus.RECORDING})
TERMINAL_STATUSES = frozenset({RecordingStatus.COMPLETED, RecordingStatus.FAILED})


class InsertOutcome(str, Enum):
    """Result tag for insert-or-reread writes."""
    CREATED = "created"
    ALREADY_EXISTED = "already_existed"


T = TypeVar("T")


@dataclass(frozen=True)
class InsertResult(Generic[T]):
    outcome: InsertOutcome
    row: Optional[T]

    @property
    def created(self) -> bool:
        return self.outcome is InsertOutcome.CREATED


@dataclass
class Room:
    id: str
    name: str
    owner_id: str
    created_at: datetime
    reserved_key: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Room":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            owner_id=str(row["owner_id"]),
            created_at=row["created_at"],
            reserved_key=row.get("reserved_key"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "reserved_key": self.reserved_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Participant:
    room_id: str
    identity: str
    joined_at: datetime
    display_name: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Participant":
        return cls(
            room_id=str(row["room_id"]),
            identity=row["identity"],
            joined_at=row["joined_at"],
            display_name=row.get("display_name"),
        )


@dataclass
class Recording:
    id: str
    room_id: str
    participant_identity: str
    storage_path: str
    status: RecordingStatus
    created_by: str
    created_at: datetime
    egress_id: Optional[str] = None
    size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
    error: Optional[str] = None
    updated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def has_completion_metadata(self) -> bool:
        return self.size_bytes is not None and self.duration_seconds is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Recording":
        duration = row.get("duration_seconds")
        size = row.get("size_bytes")
        return cls(
            id=str(row["id"]),
            room_id=str(row["room_id"]),
            participant_identity=row["participant_identity"],
            storage_path=row["storage_path"],
            status=RecordingStatus(row["status"]),
            created_by=str(row["created_by"]),
            created_at=row["created_at"],
            egress_id=row.get("egress_id"),
            size_bytes=int(size) if size is not None else None,
            duration_seconds=float(duration) if duration is not None else None,
            error=row.get("error"),
            updated_at=row.get("updated_at"),
            ended_at=row.get("ended_at"),
        )


__all__ = [
    "RecordingStatus",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "InsertOutcome",
    "InsertResult",
    "Room",
    "Participant",
    "Recording",
]
