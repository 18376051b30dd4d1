"""
Artifact resolver: time-limited download links for finished recordings.

Signed URLs are generated on every request and never cached.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from recording.paths import parse_storage_path
from rooms.access import RoomAccess
from storage.gcs import GCSStorageManager, MAX_SIGNED_URL_TTL_SECONDS
from utils.errors import ArtifactNotFound, InvalidReference
from utils.identity import CallerContext

logger = logging.getLogger(__name__)

DEFAULT_URL_TTL_SECONDS = 3600


@dataclass(frozen=True)
class SignedUrl:
    url: str
    path: str
    expires_at: datetime
    ttl_seconds: int

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "path": self.path,
            "expires_at": self.expires_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
        }


class ArtifactResolver:
    def __init__(self, access: RoomAccess, object_store: GCSStorageManager):
        self.access = access
        self.object_store = object_store

    async def get_download_url(
        self,
        caller: CallerContext,
        path: str,
        ttl_seconds: int = DEFAULT_URL_TTL_SECONDS,
    ) -> SignedUrl:
        """
        Sign a GET URL for a recording object.

        Raises:
            InvalidReference: malformed path or TTL out of range
            AccessDenied: caller is not owner or member of the path's room,
                or the room does not exist
            ArtifactNotFound: the object is not in the bucket
        """
        room_id, _, _ = parse_storage_path(path)
        valid_int = isinstance(ttl_seconds, int) and not isinstance(ttl_seconds, bool)
        if not valid_int or not 1 <= ttl_seconds <= MAX_SIGNED_URL_TTL_SECONDS:
            raise InvalidReference(
                f"ttl_seconds must be between 1 and {MAX_SIGNED_URL_TTL_SECONDS}",
                {"ttl_seconds": ttl_seconds},
            )

        await self.access.require_participant(caller, room_id, hide_missing=True)

        if not await self.object_store.exists(path):
            raise ArtifactNotFound(f"Recording {path} not found", {"path": path})

        url = await self.object_store.sign(path, ttl_seconds)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        logger.info("Issued download URL for %s to %s", path, caller.user_id)
        return SignedUrl(url=url, path=path, expires_at=expires_at, ttl_seconds=ttl_seconds)

    async def delete_artifact(self, path: str) -> bool:
        parse_storage_path(path)
        return await self.object_store.remove(path)


__all__ = ["ArtifactResolver", "DEFAULT_URL_TTL_SECONDS", "SignedUrl"]
