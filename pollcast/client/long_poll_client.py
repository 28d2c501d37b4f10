"""
MODULE OVERVIEW:
The Long Polling HTTP client implementation.

WHAT IS HAPPENING HERE:
The client keeps one piece of state: the time of the last message it saw. Every
poll sends it as `lastMessageTime`. If the server has something newer we get it
back immediately (catch-up); otherwise the server parks us until the next broadcast.
Either way we store the new time and poll again right away, so no broadcast that
lands between two polls is ever lost.

Notice there is no server-side timeout, so our HTTPX read timeout is the only thing
that ends a very quiet wait. When it fires we treat it as a network blip and
reconnect with backoff.
"""
import httpx
from json import JSONDecodeError
from typing import Any, Awaitable, Callable

from pollcast.shared.client_utils import make_client_stats, with_reconnect
from pollcast.shared.config import settings
from pollcast.shared.models import LatestMessage

class LongPollClient:
    def __init__(
        self,
        client_id: str,
        server_base_url: str,
        topic: str = settings.DEFAULT_TOPIC,
        timeout_s: float = settings.CLIENT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.server_base_url = server_base_url.rstrip('/')
        self.topic = topic
        self.last_message_time = 0
        self.on_message_callback: Callable[[LatestMessage], Awaitable[None]] | None = None
        self.stats = make_client_stats()
        self.client = httpx.AsyncClient(timeout=timeout_s, transport=transport)

    def set_callback(self, on_message: Callable[[LatestMessage], Awaitable[None]]) -> None:
        self.on_message_callback = on_message

    async def disconnect(self) -> None:
        await self.client.aclose()

    async def poll_once(self) -> LatestMessage | None:
        """One long poll. Returns the message, or None if nothing was ever broadcast."""
        params = {
            "lastMessageTime": self.last_message_time,
            "topic": self.topic,
            "client_id": self.client_id,
        }
        try:
            response = await self.client.get(f"{self.server_base_url}/poll/long", params=params)
            response.raise_for_status()
            latest = LatestMessage.model_validate(response.json())
        except JSONDecodeError as e:
            raise httpx.DecodingError(str(e))

        self.last_message_time = latest.time
        self.stats["last_message_time"] = latest.time
        if latest.time == 0:
            self.stats["empty_responses"] += 1
            return None

        self.stats["messages_received"] += 1
        if self.on_message_callback:
            await self.on_message_callback(latest)
        return latest

    async def run(self, duration_s: float = 60.0) -> None:
        try:
            await with_reconnect(self._poll_forever, self.stats, duration_s, client_id=self.client_id)
        finally:
            await self.disconnect()

    async def _poll_forever(self) -> None:
        while True:
            await self.poll_once()

    async def publish(self, message: Any) -> LatestMessage:
        response = await self.client.post(
            f"{self.server_base_url}/broadcast",
            params={"topic": self.topic},
            json={"message": message},
        )
        response.raise_for_status()
        return LatestMessage.model_validate(response.json())
