"""
Room Routes Module.

Handles room management and joining:
- POST /rooms: Create a named room
- GET /rooms: List the caller's rooms
- PATCH /rooms/{room_id}: Rename a room (owner only)
- POST /rooms/{room_ref}/join: Resolve/create the room, issue a token, record membership
- GET /rooms/{room_id}/participants: Participants in join order
"""

import logging

from fastapi import APIRouter, Depends, status

from api.models import (
    CreateRoomRequest,
    JoinResponse,
    ParticipantResponse,
    RenameRoomRequest,
    RoomResponse,
    TokenResponse,
)
from api.services import Orchestrator, get_caller, get_orchestrator
from utils.identity import CallerContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    request: CreateRoomRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RoomResponse:
    room = await orchestrator.registry.create_room(caller, request.name)
    return RoomResponse.model_validate(room)


@router.get("", response_model=list[RoomResponse])
async def list_rooms(
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[RoomResponse]:
    rooms = await orchestrator.registry.list_rooms(caller)
    return [RoomResponse.model_validate(room) for room in rooms]


@router.patch("/{room_id}", response_model=RoomResponse)
async def rename_room(
    room_id: str,
    request: RenameRoomRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> RoomResponse:
    room = await orchestrator.registry.rename_room(caller, room_id, request.name)
    return RoomResponse.model_validate(room)


@router.post("/{room_ref}/join", response_model=JoinResponse)
async def join_room(
    room_ref: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> JoinResponse:
    """
    Enter a room.

    ``room_ref`` is a room UUID or ``demo`` for the caller's demo room.
    Membership failures come back in ``warnings``; the token is still valid.
    """
    result = await orchestrator.session.join_room(caller, room_ref)
    return JoinResponse(
        room=RoomResponse.model_validate(result.room),
        token=TokenResponse.model_validate(result.token),
        warnings=result.warnings,
    )


@router.get("/{room_id}/participants", response_model=list[ParticipantResponse])
async def list_participants(
    room_id: str,
    caller: CallerContext = Depends(get_caller),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[ParticipantResponse]:
    room = await orchestrator.access.require_participant(caller, room_id)
    participants = await orchestrator.tracker.list_participants(room.id)
    return [ParticipantResponse.model_validate(p) for p in participants]
