"""
MODULE OVERVIEW:
The producer route: `POST /broadcast` with `{"message": ...}`.

WHAT IS HAPPENING HERE:
This is the only write path. Whatever the body carries becomes the topic's latest
message and is handed to every parked long poll. The response echoes what was
stored so the producer learns the time stamped on it.
"""
from fastapi import APIRouter, Depends, Query

from pollcast.server.long_pollers import BroadcasterRegistry
from pollcast.shared.config import settings
from pollcast.shared.models import BroadcastRequest, LatestMessage
from pollcast.shared.route_utils import get_registry

router = APIRouter()

@router.post("/broadcast", response_model=LatestMessage)
async def broadcast(
    body: BroadcastRequest,
    topic: str = Query(settings.DEFAULT_TOPIC),
    registry: BroadcasterRegistry = Depends(get_registry),
):
    broadcaster = registry.get(topic)
    broadcaster.broadcast(body.message)
    return broadcaster.last_message
