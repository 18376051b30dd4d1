"""
LiveKit media server client

Handles:
1. Ensuring a LiveKit room exists and signing join tokens for it
2. Starting, stopping and listing per-participant egress jobs
3. Verifying webhook deliveries and turning egress events into EgressUpdate

Every network call runs under MEDIA_SERVER_TIMEOUT_SECONDS. A timeout or a
transport failure is raised as UpstreamUnavailable; a request the server
understood and refused is raised as EgressRejected.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

import aiohttp
from dotenv import load_dotenv
from livekit import api

from utils.errors import AuthenticationRequired, EgressRejected, UpstreamUnavailable

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = float(os.getenv("MEDIA_SERVER_TIMEOUT_SECONDS", "10"))
DEFAULT_TOKEN_TTL_SECONDS = int(os.getenv("LIVEKIT_TOKEN_TTL_SECONDS", str(6 * 3600)))

# Twirp codes that mean "try again later" rather than "request refused"
_TRANSIENT_TWIRP_CODES = frozenset({"unavailable", "deadline_exceeded", "internal", "unknown"})

EGRESS_WEBHOOK_EVENTS = frozenset({"egress_started", "egress_updated", "egress_ended"})


class EgressState(str, Enum):
    """Egress status collapsed to what the recording state machine cares about."""
    STARTING = "starting"
    ACTIVE = "active"
    ENDING = "ending"
    COMPLETE = "complete"
    FAILED = "failed"


_STATUS_MAP = {
    api.EgressStatus.EGRESS_STARTING: EgressState.STARTING,
    api.EgressStatus.EGRESS_ACTIVE: EgressState.ACTIVE,
    api.EgressStatus.EGRESS_ENDING: EgressState.ENDING,
    api.EgressStatus.EGRESS_COMPLETE: EgressState.COMPLETE,
    api.EgressStatus.EGRESS_FAILED: EgressState.FAILED,
    api.EgressStatus.EGRESS_ABORTED: EgressState.FAILED,
    api.EgressStatus.EGRESS_LIMIT_REACHED: EgressState.FAILED,
}


@dataclass(frozen=True)
class EgressUpdate:
    """A point-in-time view of one egress job, from a response or a webhook."""
    egress_id: str
    state: EgressState
    size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
    error: Optional[str] = None
    room_name: Optional[str] = None
    participant_identity: Optional[str] = None
    filepath: Optional[str] = None


def _participant_target(info: Any) -> tuple[Optional[str], Optional[str]]:
    """(identity, filepath) of a participant egress request, if that is what started it."""
    if info.WhichOneof("request") != "participant":
        return None, None
    request = info.participant
    outputs = list(request.file_outputs)
    filepath = outputs[0].filepath if outputs else None
    return request.identity or None, filepath or None


def egress_update_from_info(info: Any) -> EgressUpdate:
    """Convert a LiveKit EgressInfo message to an EgressUpdate."""
    state = _STATUS_MAP.get(info.status, EgressState.FAILED)
    identity, filepath = _participant_target(info)

    size_bytes = None
    duration_seconds = None
    file_results = list(getattr(info, "file_results", None) or [])
    if file_results:
        result = file_results[0]
        filepath = filepath or result.filename or None
        if result.size:
            size_bytes = int(result.size)
        if result.duration:
            # FileInfo.duration is in nanoseconds
            duration_seconds = result.duration / 1_000_000_000

    return EgressUpdate(
        egress_id=info.egress_id,
        state=state,
        size_bytes=size_bytes,
        duration_seconds=duration_seconds,
        error=info.error or None,
        room_name=info.room_name or None,
        participant_identity=identity,
        filepath=filepath,
    )


def _is_already_complete(exc: Exception) -> bool:
    text = f"{getattr(exc, 'message', '')} {exc}".lower()
    return "egress_complete" in text or ("already" in text and "complete" in text)


class MediaServerClient:
    """Thin async wrapper over the LiveKit server API."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        gcs_bucket: Optional[str] = None,
        gcs_credentials_json: Optional[str] = None,
        api_factory: Optional[Callable[[], Any]] = None,
    ):
        self.url = url or os.getenv("LIVEKIT_URL")
        self.api_key = api_key or os.getenv("LIVEKIT_API_KEY")
        self.api_secret = api_secret or os.getenv("LIVEKIT_API_SECRET")
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT_SECONDS

        if not all([self.url, self.api_key, self.api_secret]):
            raise ValueError("Missing LiveKit credentials. Set LIVEKIT_URL, LIVEKIT_API_KEY, LIVEKIT_API_SECRET")

        self.gcs_bucket = gcs_bucket or os.getenv("GCS_BUCKET")
        self._gcs_credentials_json = gcs_credentials_json
        self._api_factory = api_factory or (
            lambda: api.LiveKitAPI(self.url, self.api_key, self.api_secret)
        )

    def _gcp_upload(self) -> api.GCPUpload:
        credentials_json = self._gcs_credentials_json
        if credentials_json is None:
            # Egress expects the service account JSON content, not a path
            credentials_path = os.getenv("GCS_CREDENTIALS_JSON")
            if credentials_path and os.path.exists(credentials_path):
                with open(credentials_path, "r") as f:
                    credentials_json = f.read()
        return api.GCPUpload(bucket=self.gcs_bucket or "", credentials=credentials_json or "")

    async def _call(self, operation: str, func: Callable[[Any], Any]) -> Any:
        """Run ``func(lkapi)`` under the timeout and close the API session afterwards."""
        lkapi = self._api_factory()
        try:
            return await asyncio.wait_for(func(lkapi), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("LiveKit %s timed out after %.1fs", operation, self.timeout_seconds)
            raise UpstreamUnavailable("media_server", operation, "Media server timed out") from exc
        except aiohttp.ClientError as exc:
            logger.error("LiveKit %s unreachable: %s", operation, exc)
            raise UpstreamUnavailable("media_server", operation, str(exc)) from exc
        except api.TwirpError as exc:
            if exc.code in _TRANSIENT_TWIRP_CODES:
                logger.error("LiveKit %s failed (%s): %s", operation, exc.code, exc.message)
                raise UpstreamUnavailable("media_server", operation, exc.message) from exc
            raise
        finally:
            await lkapi.aclose()

    # ------------------------------------------------------------------
    # Rooms and tokens
    # ------------------------------------------------------------------

    async def ensure_room(self, room_name: str) -> None:
        """Create the LiveKit room. CreateRoom is idempotent on the server."""
        await self._call(
            "create_room",
            lambda lkapi: lkapi.room.create_room(api.CreateRoomRequest(name=room_name)),
        )
        logger.debug("LiveKit room ensured: %s", room_name)

    def sign_token(
        self,
        room_name: str,
        identity: str,
        display_name: str,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> tuple[str, datetime]:
        """Sign a join token locally. Returns (jwt, expires_at)."""
        ttl = timedelta(seconds=ttl_seconds)
        expires_at = datetime.now(timezone.utc) + ttl
        token = (
            api.AccessToken(self.api_key, self.api_secret)
            .with_identity(identity)
            .with_name(display_name)
            .with_ttl(ttl)
            .with_grants(
                api.VideoGrants(
                    room_join=True,
                    room=room_name,
                    can_publish=True,
                    can_subscribe=True,
                )
            )
            .to_jwt()
        )
        return token, expires_at

    # ------------------------------------------------------------------
    # Egress
    # ------------------------------------------------------------------

    async def start_participant_egress(
        self,
        room_name: str,
        identity: str,
        filepath: str,
    ) -> EgressUpdate:
        """
        Start recording one participant's audio to ``filepath`` in the bucket.

        Raises:
            EgressRejected: the server refused the request
            UpstreamUnavailable: timeout or transport failure
        """
        request = api.ParticipantEgressRequest(
            room_name=room_name,
            identity=identity,
            file_outputs=[
                api.EncodedFileOutput(
                    file_type=api.EncodedFileType.OGG,
                    filepath=filepath,
                    gcp=self._gcp_upload(),
                )
            ],
        )
        try:
            info = await self._call(
                "start_participant_egress",
                lambda lkapi: lkapi.egress.start_participant_egress(request),
            )
        except api.TwirpError as exc:
            logger.warning("LiveKit rejected egress for %s in %s: %s", identity, room_name, exc.message)
            raise EgressRejected(exc.message or "Egress rejected", {"reason": exc.message}) from exc

        update = egress_update_from_info(info)
        if update.state is EgressState.FAILED:
            reason = update.error or "Egress failed to start"
            raise EgressRejected(reason, {"reason": reason, "egress_id": update.egress_id})

        logger.info("Started egress %s for %s in room %s -> %s", update.egress_id, identity, room_name, filepath)
        return update

    async def stop_egress(self, egress_id: str) -> EgressUpdate:
        """
        Stop an egress job.

        An "already complete" refusal is reported as a COMPLETE update with no
        file metadata; the egress_ended webhook carries it later.
        """
        try:
            info = await self._call(
                "stop_egress",
                lambda lkapi: lkapi.egress.stop_egress(api.StopEgressRequest(egress_id=egress_id)),
            )
        except api.TwirpError as exc:
            if _is_already_complete(exc):
                logger.info("Egress %s already completed", egress_id)
                return EgressUpdate(egress_id=egress_id, state=EgressState.COMPLETE)
            logger.warning("LiveKit refused to stop egress %s: %s", egress_id, exc.message)
            raise EgressRejected(exc.message or "Stop rejected", {"reason": exc.message, "egress_id": egress_id}) from exc

        update = egress_update_from_info(info)
        if update.state in (EgressState.ACTIVE, EgressState.ENDING, EgressState.STARTING):
            # Stop was acknowledged; the job finishes asynchronously
            update = EgressUpdate(
                egress_id=update.egress_id or egress_id,
                state=EgressState.COMPLETE,
                size_bytes=update.size_bytes,
                duration_seconds=update.duration_seconds,
            )
        logger.info("Stopped egress %s", egress_id)
        return update

    async def list_egress(self, room_name: str) -> list[EgressUpdate]:
        """All egress jobs the server knows for a room."""
        response = await self._call(
            "list_egress",
            lambda lkapi: lkapi.egress.list_egress(api.ListEgressRequest(room_name=room_name)),
        )
        return [egress_update_from_info(info) for info in response.items]

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def parse_webhook(self, body: str, auth_header: Optional[str]) -> Optional[EgressUpdate]:
        """
        Verify a webhook delivery and extract the egress update, if any.

        Returns None for events that are not about egress.

        Raises:
            AuthenticationRequired: missing or invalid webhook signature
        """
        if not auth_header:
            raise AuthenticationRequired("Missing webhook Authorization header")

        receiver = api.WebhookReceiver(api.TokenVerifier(self.api_key, self.api_secret))
        try:
            event = receiver.receive(body, auth_header)
        except Exception as exc:  # noqa: BLE001 - the SDK raises jwt and ValueError variants
            logger.warning("Rejected LiveKit webhook: %s", exc)
            raise AuthenticationRequired("Invalid webhook signature") from exc

        if event.event not in EGRESS_WEBHOOK_EVENTS or not event.HasField("egress_info"):
            logger.debug("Ignoring LiveKit webhook event %s", event.event)
            return None
        return egress_update_from_info(event.egress_info)


__all__ = [
    "EgressState",
    "EgressUpdate",
    "MediaServerClient",
    "egress_update_from_info",
]
