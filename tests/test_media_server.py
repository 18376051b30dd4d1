"""
Unit Tests for the LiveKit media server client

Tests recording/media_server.py against a mocked LiveKitAPI session.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from livekit import api

from recording.media_server import EgressState, MediaServerClient, egress_update_from_info
from utils.errors import AuthenticationRequired, EgressRejected, UpstreamUnavailable

API_KEY = "APItestkey"
API_SECRET = "test-livekit-secret-of-sufficient-length"


@pytest.fixture
def lkapi():
    session = MagicMock()
    session.aclose = AsyncMock()
    session.room.create_room = AsyncMock()
    session.egress.start_participant_egress = AsyncMock()
    session.egress.stop_egress = AsyncMock()
    session.egress.list_egress = AsyncMock()
    return session


@pytest.fixture
def client(lkapi):
    return MediaServerClient(
        url="wss://livekit.test",
        api_key=API_KEY,
        api_secret=API_SECRET,
        timeout_seconds=0.2,
        gcs_bucket="calls",
        gcs_credentials_json="{}",
        api_factory=lambda: lkapi,
    )


class TestEgressInfoConversion:

    def test_complete_with_file_result(self):
        info = api.EgressInfo(
            egress_id="EG_1",
            status=api.EgressStatus.EGRESS_COMPLETE,
            file_results=[api.FileInfo(filename="r/a.ogg", size=102400, duration=37_000_000_000)],
        )

        update = egress_update_from_info(info)

        assert update.state is EgressState.COMPLETE
        assert update.size_bytes == 102400
        assert update.duration_seconds == 37.0

    def test_participant_request_identifies_target(self):
        info = api.EgressInfo(
            egress_id="EG_7",
            room_name="room-1",
            status=api.EgressStatus.EGRESS_ACTIVE,
            participant=api.ParticipantEgressRequest(
                room_name="room-1",
                identity="user-bob",
                file_outputs=[api.EncodedFileOutput(filepath="room-1/user-bob.ogg")],
            ),
        )

        update = egress_update_from_info(info)

        assert (update.room_name, update.participant_identity, update.filepath) == (
            "room-1",
            "user-bob",
            "room-1/user-bob.ogg",
        )

    @pytest.mark.parametrize(
        "status",
        [api.EgressStatus.EGRESS_FAILED, api.EgressStatus.EGRESS_ABORTED, api.EgressStatus.EGRESS_LIMIT_REACHED],
    )
    def test_failure_statuses_collapse(self, status):
        info = api.EgressInfo(egress_id="EG_1", status=status, error="boom")
        update = egress_update_from_info(info)
        assert update.state is EgressState.FAILED
        assert update.error == "boom"


class TestTokens:

    @pytest.mark.asyncio
    async def test_ensure_room_calls_create_room(self, client, lkapi):
        await client.ensure_room("room-1")

        request = lkapi.room.create_room.call_args.args[0]
        assert request.name == "room-1"
        lkapi.aclose.assert_awaited_once()

    def test_signed_token_carries_room_and_identity(self, client):
        token, expires_at = client.sign_token("room-1", "user-bob", "Bob", ttl_seconds=600)

        claims = jwt.decode(token, API_SECRET, algorithms=["HS256"], options={"verify_aud": False})
        assert claims["sub"] == "user-bob"
        assert claims["name"] == "Bob"
        assert claims["video"]["room"] == "room-1"
        assert claims["video"]["roomJoin"] is True
        assert expires_at is not None

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_unavailable(self, client, lkapi):
        async def slow(*_):
            await asyncio.sleep(1)

        lkapi.room.create_room.side_effect = slow

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await client.ensure_room("room-1")

        assert exc_info.value.details["operation"] == "create_room"
        lkapi.aclose.assert_awaited_once()


class TestEgress:

    @pytest.mark.asyncio
    async def test_start_builds_ogg_gcs_request(self, client, lkapi):
        lkapi.egress.start_participant_egress.return_value = api.EgressInfo(
            egress_id="EG_42", status=api.EgressStatus.EGRESS_STARTING
        )

        update = await client.start_participant_egress("room-1", "user-bob", "room-1/user-bob.ogg")

        request = lkapi.egress.start_participant_egress.call_args.args[0]
        assert request.room_name == "room-1"
        assert request.identity == "user-bob"
        assert request.file_outputs[0].filepath == "room-1/user-bob.ogg"
        assert request.file_outputs[0].file_type == api.EncodedFileType.OGG
        assert request.file_outputs[0].gcp.bucket == "calls"
        assert update.egress_id == "EG_42"

    @pytest.mark.asyncio
    async def test_start_rejected(self, client, lkapi):
        lkapi.egress.start_participant_egress.side_effect = api.TwirpError(
            "not_found", "participant not found", status=404
        )

        with pytest.raises(EgressRejected) as exc_info:
            await client.start_participant_egress("room-1", "user-bob", "room-1/user-bob.ogg")

        assert exc_info.value.details["reason"] == "participant not found"

    @pytest.mark.asyncio
    async def test_start_server_unavailable(self, client, lkapi):
        lkapi.egress.start_participant_egress.side_effect = api.TwirpError(
            "unavailable", "egress service unavailable", status=503
        )

        with pytest.raises(UpstreamUnavailable):
            await client.start_participant_egress("room-1", "user-bob", "room-1/user-bob.ogg")

    @pytest.mark.asyncio
    async def test_stop_ack_is_complete(self, client, lkapi):
        lkapi.egress.stop_egress.return_value = api.EgressInfo(
            egress_id="EG_42", status=api.EgressStatus.EGRESS_ENDING
        )

        update = await client.stop_egress("EG_42")

        assert update.state is EgressState.COMPLETE
        assert lkapi.egress.stop_egress.call_args.args[0].egress_id == "EG_42"

    @pytest.mark.asyncio
    async def test_stop_already_complete(self, client, lkapi):
        lkapi.egress.stop_egress.side_effect = api.TwirpError(
            "failed_precondition", "egress_complete", status=412
        )

        update = await client.stop_egress("EG_42")

        assert update.state is EgressState.COMPLETE
        assert update.size_bytes is None

    @pytest.mark.asyncio
    async def test_list_egress(self, client, lkapi):
        lkapi.egress.list_egress.return_value = api.ListEgressResponse(
            items=[
                api.EgressInfo(egress_id="EG_1", status=api.EgressStatus.EGRESS_ACTIVE),
                api.EgressInfo(egress_id="EG_2", status=api.EgressStatus.EGRESS_COMPLETE),
            ]
        )

        updates = await client.list_egress("room-1")

        assert [(u.egress_id, u.state) for u in updates] == [
            ("EG_1", EgressState.ACTIVE),
            ("EG_2", EgressState.COMPLETE),
        ]


class TestWebhook:

    def test_missing_header_rejected(self, client):
        with pytest.raises(AuthenticationRequired):
            client.parse_webhook("{}", None)

    def test_bad_signature_rejected(self, client):
        with patch("recording.media_server.api.WebhookReceiver") as receiver_cls:
            receiver_cls.return_value.receive.side_effect = ValueError("sha256 checksum of body does not match")
            with pytest.raises(AuthenticationRequired):
                client.parse_webhook("{}", "token")

    def test_egress_ended_event(self, client):
        event = api.WebhookEvent(
            event="egress_ended",
            egress_info=api.EgressInfo(
                egress_id="EG_42",
                status=api.EgressStatus.EGRESS_COMPLETE,
                file_results=[api.FileInfo(size=2048, duration=4_500_000_000)],
            ),
        )
        with patch("recording.media_server.api.WebhookReceiver") as receiver_cls:
            receiver_cls.return_value.receive.return_value = event
            update = client.parse_webhook("{}", "token")

        assert update.egress_id == "EG_42"
        assert update.size_bytes == 2048
        assert update.duration_seconds == 4.5

    def test_non_egress_event_ignored(self, client):
        event = api.WebhookEvent(event="participant_joined")
        with patch("recording.media_server.api.WebhookReceiver") as receiver_cls:
            receiver_cls.return_value.receive.return_value = event
            assert client.parse_webhook("{}", "token") is None
