"""
Webhook Routes Module.

- POST /webhooks/livekit: Egress notifications signed by LiveKit

The body is verified against the LiveKit API secret before anything is read
from it. Non-egress events and unknown egress ids are acknowledged with 200 so
LiveKit does not retry them.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from api.models import WebhookResponse
from api.services import Orchestrator, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/livekit", response_model=WebhookResponse)
async def livekit_webhook(
    request: Request,
    authorization: Optional[str] = Header(None),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> WebhookResponse:
    body = (await request.body()).decode("utf-8")
    update = orchestrator.media.parse_webhook(body, authorization)
    if update is None:
        return WebhookResponse(status="ignored")

    recording = await orchestrator.lifecycle.handle_egress_update(update)
    if recording is None:
        return WebhookResponse(status="unchanged")

    logger.info("Webhook moved recording %s to %s", recording.id, recording.status.value)
    return WebhookResponse(status="applied", recording_id=recording.id)
