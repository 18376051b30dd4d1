"""
Pydantic request and response models for the voice room API.

Response models read straight from the row dataclasses via from_attributes.
Bounds checks (name length, TTL range) are left to the orchestrator so they
surface as InvalidReference rather than a 422.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ROOMS
# =============================================================================

class CreateRoomRequest(BaseModel):
    name: str = Field(..., description="Display name, 1-200 characters after trimming")


class RenameRoomRequest(BaseModel):
    name: str


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    owner_id: str
    reserved_key: Optional[str] = None
    created_at: datetime


class TokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    room_id: str
    identity: str
    expires_at: datetime
    server_url: str


class JoinResponse(BaseModel):
    room: RoomResponse
    token: TokenResponse
    warnings: list[str] = Field(default_factory=list)


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: str
    identity: str
    display_name: Optional[str] = None
    joined_at: datetime


# =============================================================================
# RECORDINGS
# =============================================================================

class StartRecordingRequest(BaseModel):
    participant_identity: str = Field(..., description="LiveKit identity of the participant to record")


class RecordingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    room_id: str
    participant_identity: str
    storage_path: str
    status: str
    egress_id: Optional[str] = None
    size_bytes: Optional[int] = None
    duration_seconds: Optional[float] = None
    error: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class SignedUrlRequest(BaseModel):
    path: str = Field(..., description="Object path, {room_id}/{identity}.{ext}")
    ttl_seconds: int = Field(3600, description="Link lifetime in seconds (1-604800)")


class SignedUrlResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    url: str
    path: str
    expires_at: datetime
    ttl_seconds: int


class WebhookResponse(BaseModel):
    status: str
    recording_id: Optional[str] = None
