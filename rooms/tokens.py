"""
Access token issuer.

Every call ensures the LiveKit room exists (idempotent on the server) and signs
a fresh join token. Nothing is cached and no local state is written.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from livekit import api

from recording.media_server import DEFAULT_TOKEN_TTL_SECONDS, MediaServerClient
from utils.errors import OrchestratorError, TokenIssuanceFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedToken:
    token: str
    room_id: str
    identity: str
    expires_at: datetime
    server_url: str

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "room_id": self.room_id,
            "identity": self.identity,
            "expires_at": self.expires_at.isoformat(),
            "server_url": self.server_url,
        }


class TokenIssuer:
    def __init__(self, media: MediaServerClient, ttl_seconds: Optional[int] = None):
        self.media = media
        self.ttl_seconds = ttl_seconds or int(
            os.getenv("LIVEKIT_TOKEN_TTL_SECONDS", str(DEFAULT_TOKEN_TTL_SECONDS))
        )

    async def issue_token(self, room_id: str, participant_identity: str, display_name: str) -> SignedToken:
        """
        Issue a LiveKit join token for ``participant_identity`` in ``room_id``.

        Raises:
            TokenIssuanceFailed: the media server timed out, was unreachable or
                refused to create the room (retryable)
        """
        try:
            await self.media.ensure_room(room_id)
        except (OrchestratorError, api.TwirpError) as exc:
            logger.error("Token issuance failed for %s in room %s: %s", participant_identity, room_id, exc)
            raise TokenIssuanceFailed(
                "Could not issue a room token, try again",
                {"room_id": room_id},
            ) from exc

        token, expires_at = self.media.sign_token(
            room_id,
            participant_identity,
            display_name,
            ttl_seconds=self.ttl_seconds,
        )
        logger.info("Issued token for %s in room %s (expires %s)", participant_identity, room_id, expires_at.isoformat())
        return SignedToken(
            token=token,
            room_id=room_id,
            identity=participant_identity,
            expires_at=expires_at,
            server_url=self.media.url,
        )


__all__ = ["SignedToken", "TokenIssuer"]
