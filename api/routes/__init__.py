"""
API Routes Module.

Contains route handlers:
- rooms: Room CRUD, join and participants (/rooms)
- recordings: Recording lifecycle and signed URLs (/rooms/{id}/recordings, /recordings)
- webhooks: LiveKit egress notifications (/webhooks/livekit)
"""

from .rooms import router as rooms_router
from .recordings import router as recordings_router
from .webhooks import router as webhooks_router

__all__ = [
    "rooms_router",
    "recordings_router",
    "webhooks_router",
]
