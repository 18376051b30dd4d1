"""
Participant recording module.

Contains:
- media_server: MediaServerClient for LiveKit rooms, tokens, egress and webhooks
- paths: deterministic {room_id}/{identity}.{ext} object paths
- lifecycle: RecordingLifecycleManager state machine
- artifacts: ArtifactResolver for signed download URLs
"""

from recording.media_server import (
    EgressState,
    EgressUpdate,
    MediaServerClient,
    egress_update_from_info,
)
from recording.paths import build_storage_path, parse_storage_path
from recording.lifecycle import RecordingLifecycleManager
from recording.artifacts import ArtifactResolver, SignedUrl

__all__ = [
    # Media server
    "EgressState",
    "EgressUpdate",
    "MediaServerClient",
    "egress_update_from_info",
    # Paths
    "build_storage_path",
    "parse_storage_path",
    # Lifecycle
    "RecordingLifecycleManager",
    # Artifacts
    "ArtifactResolver",
    "SignedUrl",
]
