"""
Orchestrator wiring.

Builds the registry, token issuer, tracker, lifecycle manager and artifact
resolver over one set of storage and upstream clients. Route handlers get the
shared instance through get_orchestrator(), which FastAPI tests override.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from db.storage import ParticipantStorage, RecordingStorage, RoomStorage
from recording.artifacts import ArtifactResolver
from recording.lifecycle import RecordingLifecycleManager
from recording.media_server import MediaServerClient
from rooms.access import RoomAccess
from rooms.participants import ParticipantTracker
from rooms.registry import RoomRegistry
from rooms.session import RoomSession
from rooms.tokens import TokenIssuer
from storage.gcs import GCSStorageManager

logger = logging.getLogger(__name__)


@dataclass
class Orchestrator:
    registry: RoomRegistry
    access: RoomAccess
    tokens: TokenIssuer
    tracker: ParticipantTracker
    session: RoomSession
    lifecycle: RecordingLifecycleManager
    artifacts: ArtifactResolver
    media: MediaServerClient


def build_orchestrator(
    rooms: Optional[RoomStorage] = None,
    participants: Optional[ParticipantStorage] = None,
    recordings: Optional[RecordingStorage] = None,
    media: Optional[MediaServerClient] = None,
    object_store: Optional[GCSStorageManager] = None,
) -> Orchestrator:
    """Wire every component. Missing collaborators are built from the environment."""
    rooms = rooms or RoomStorage()
    participants = participants or ParticipantStorage()
    recordings = recordings or RecordingStorage()
    media = media or MediaServerClient()
    object_store = object_store or GCSStorageManager()

    registry = RoomRegistry(rooms)
    tracker = ParticipantTracker(participants)
    access = RoomAccess(rooms, tracker)
    tokens = TokenIssuer(media)
    artifacts = ArtifactResolver(access, object_store)

    return Orchestrator(
        registry=registry,
        access=access,
        tokens=tokens,
        tracker=tracker,
        session=RoomSession(registry, tokens, tracker),
        lifecycle=RecordingLifecycleManager(recordings, rooms, access, media, artifacts),
        artifacts=artifacts,
        media=media,
    )


# Singleton instance
_orchestrator: Orchestrator | None = None


def get_orchestrator() -> Orchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
        logger.info("Orchestrator initialized")
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None
