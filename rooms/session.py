"""
Join flow: resolve the room, issue a token, record membership.

Recording membership is best effort. A failure there is logged and returned
as a warning; the caller still gets a usable token. A token failure aborts the
join before any membership row is written.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from db.models import Room
from rooms.participants import ParticipantTracker
from rooms.registry import RoomRegistry
from rooms.tokens import SignedToken, TokenIssuer
from utils.errors import OrchestratorError
from utils.identity import CallerContext

logger = logging.getLogger(__name__)


@dataclass
class JoinResult:
    room: Room
    token: SignedToken
    warnings: list[str] = field(default_factory=list)


class RoomSession:
    def __init__(self, registry: RoomRegistry, tokens: TokenIssuer, tracker: ParticipantTracker):
        self.registry = registry
        self.tokens = tokens
        self.tracker = tracker

    async def join_room(self, caller: CallerContext, room_ref: str) -> JoinResult:
        room = await self.registry.resolve_or_create_room(caller, room_ref)
        token = await self.tokens.issue_token(room.id, caller.user_id, caller.display_name)

        warnings: list[str] = []
        try:
            await self.tracker.record_join(
                room.id,
                caller.user_id,
                datetime.now(timezone.utc),
                caller.display_name,
            )
        except Exception as exc:  # noqa: BLE001 - membership is best effort once a token exists
            reason = exc.message if isinstance(exc, OrchestratorError) else (str(exc) or type(exc).__name__)
            logger.warning(
                "Could not record join of %s to room %s: %s", caller.user_id, room.id, reason, exc_info=True
            )
            warnings.append(f"Membership not recorded: {reason}")

        return JoinResult(room=room, token=token, warnings=warnings)


__all__ = ["JoinResult", "RoomSession"]
