"""
Voice room module.

Contains:
- registry: RoomRegistry, room reference parsing and the demo room
- access: RoomAccess owner/member checks
- tokens: TokenIssuer for LiveKit join tokens
- participants: ParticipantTracker for membership
- session: RoomSession join flow
"""

from rooms.access import RoomAccess
from rooms.participants import ParticipantTracker
from rooms.registry import (
    DEMO_ROOM_KEY,
    DEMO_ROOM_NAME,
    RoomRegistry,
    parse_room_id,
)
from rooms.session import JoinResult, RoomSession
from rooms.tokens import SignedToken, TokenIssuer

__all__ = [
    # Registry
    "RoomRegistry",
    "DEMO_ROOM_KEY",
    "DEMO_ROOM_NAME",
    "parse_room_id",
    # Access
    "RoomAccess",
    # Tokens
    "SignedToken",
    "TokenIssuer",
    # Participants
    "ParticipantTracker",
    # Join
    "JoinResult",
    "RoomSession",
]
