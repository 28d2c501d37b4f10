import uuid
import asyncio
from fastapi import Request
from loguru import logger

from pollcast.server.response_handle import PendingResponse

async def extract_client_id(client_id: str | None) -> str:
    """
    If the caller provided a client_id, use it.
    If not, generate a short readable one like 'client-a3f2'.
    This prevents anonymous connections from cluttering logs.
    """
    if client_id:
        return client_id
    return f"client-{str(uuid.uuid4())[:4]}"

async def log_connection(protocol: str, client_id: str, extra: dict | None = None) -> None:
    """
    Single structured log entry for any new connection.
    Every route calls this once on connect and once on disconnect.
    """
    log_str = f"protocol={protocol} client_id={client_id}"
    for k, v in (extra or {}).items():
        log_str += f" {k}={v}"
    logger.info(log_str)

def parse_last_message_time(raw: str | None) -> int:
    """Missing, non-numeric or non-finite cursors all mean 'never seen anything'."""
    if raw is None:
        return 0
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return 0

async def watch_disconnect(request: Request, handle: PendingResponse) -> None:
    """
    Closes `handle` as soon as the HTTP client goes away.
    Runs next to a parked request; the route cancels it once the handle completes.
    A GET has nothing left to read, so the next ASGI message is the disconnect.
    """
    try:
        while not handle.done:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                handle.close()
                return
    except asyncio.CancelledError:
        pass

def get_registry(request: Request):
    """FastAPI dependency: the BroadcasterRegistry owned by the running app."""
    return request.app.state.registry
