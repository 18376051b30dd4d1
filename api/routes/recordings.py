"""
Recording Routes Module.

Handles per-participant recordings:
- POST /rooms/{room_id}/recordings: Start recording a participant
- GET /rooms/{room_id}/recordings: List recordings, newest first
- POST /rooms/{room_id}/recordings/reconcile: Repair live rows from the media server
- POST /recordings/{ref}/stop: Stop by recording id or egress id
- DELETE /recordings/{recording_id}: Remove a finished recording and its object
- POST /recordings/signed-url: Time-limited download link (never cached)
"""

import logging

from fastapi import APIRouter, Depends, Response, status

from api.models import (
    RecordingResponse,
    SignedUrlRequest,
    SignedUrlResponse,
    StartRecordingRequest,
)
from api.services import Orchestrator, get_caller, get_orchestrator
from utils.identity import CallerContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recordings"])


@router.post(
    "/rooms/{room_id}/recordings",
    response_model=RecordingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_recording(
    room_id: str,
    request: StartRecordingRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RecordingResponse:
    recording = await orchestrator.lifecycle.start_recording(caller, room_id, request.participant_identity)
    return RecordingResponse.model_validate(recording)


@router.get("/rooms/{room_id}/recordings", response_model=list[RecordingResponse])
async def list_recordings(
    room_id: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[RecordingResponse]:
    recordings = await orchestrator.lifecycle.list_recordings(caller, room_id)
    return [RecordingResponse.model_validate(r) for r in recordings]


@router.post("/rooms/{room_id}/recordings/reconcile", response_model=list[RecordingResponse])
async def reconcile_room(
    room_id: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[RecordingResponse]:
    """Returns only the recordings whose state changed."""
    changed = await orchestrator.lifecycle.reconcile_room(caller, room_id)
    return [RecordingResponse.model_validate(r) for r in changed]


@router.post("/recordings/signed-url", response_model=SignedUrlResponse)
async def generate_signed_url(
    request: SignedUrlRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SignedUrlResponse:
    signed = await orchestrator.artifacts.get_download_url(caller, request.path, request.ttl_seconds)
    return SignedUrlResponse.model_validate(signed)


@router.post("/recordings/{ref}/stop", response_model=RecordingResponse)
async def stop_recording(
    ref: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RecordingResponse:
    """``ref`` is a recording UUID or a LiveKit egress id (EG_...)."""
    recording = await orchestrator.lifecycle.stop_recording(caller, ref)
    return RecordingResponse.model_validate(recording)


@router.delete("/recordings/{recording_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recording(
    recording_id: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.lifecycle.delete_recording(caller, recording_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
