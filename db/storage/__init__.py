"""
Database storage submodule.

Contains the runtime storage classes used by the room registry, the
participant tracker and the recording lifecycle manager.
"""

from db.storage.participants import ParticipantStorage
from db.storage.recordings import RecordingStorage
from db.storage.rooms import RoomStorage

__all__ = [
    "ParticipantStorage",
    "RecordingStorage",
    "RoomStorage",
]
