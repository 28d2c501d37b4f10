"""
MODULE OVERVIEW:
The long-poll route: `GET /poll/long?lastMessageTime=<ms>`.

WHAT IS HAPPENING HERE:
The route never decides anything on its own. It wraps the request in a
`PendingResponse`, lets the broadcaster either answer it (catch-up) or park it,
and then simply awaits the handle. While parked, a watcher task checks whether
the client hung up and closes the handle if so, which pulls it out of the pool.
"""
import asyncio
from fastapi import APIRouter, Depends, Query, Request, Response

from pollcast.server.long_pollers import BroadcasterRegistry
from pollcast.server.response_handle import HandleClosedError, PendingResponse
from pollcast.shared.config import settings
from pollcast.shared.models import LatestMessage
from pollcast.shared.route_utils import (
    extract_client_id,
    get_registry,
    log_connection,
    parse_last_message_time,
    watch_disconnect,
)

router = APIRouter()

# 499 is what nginx logs for "client closed request"; nobody reads this body
CLIENT_CLOSED_REQUEST = 499

@router.get("/poll/long", response_model=LatestMessage)
async def long_poll(
    request: Request,
    last_message_time: str | None = Query(None, alias="lastMessageTime", description="Time of the last message seen, in ms"),
    topic: str = Query(settings.DEFAULT_TOPIC),
    client_id: str | None = Query(None, description="Unique client identifier"),
    registry: BroadcasterRegistry = Depends(get_registry),
):
    cid = await extract_client_id(client_id)
    seen = parse_last_message_time(last_message_time)
    broadcaster = registry.get(topic)
    handle = PendingResponse(cid)

    parked = broadcaster.subscribe(seen, handle)
    await log_connection("long_poll:connect", cid, {"topic": topic, "seen": seen, "parked": parked})

    watcher = None
    if parked:
        watcher = asyncio.create_task(watch_disconnect(request, handle))

    try:
        await handle.wait()
        return Response(content=handle.content, media_type="application/json")
    except HandleClosedError:
        if handle.error:
            return Response(status_code=500)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    finally:
        if watcher:
            watcher.cancel()
        # No-op once finished; on cancellation this pulls the handle out of the pool
        handle.close()
        await log_connection("long_poll:disconnect", cid, {"topic": topic, "state": handle.state})
