"""
MODULE OVERVIEW:
This module defines the strictly typed data structures shared by the pollcast
server and client, powered by Pydantic v2.

WHAT IS HAPPENING HERE:
The long-poll wire format is deliberately tiny: `{"message": ..., "time": ...}`.
The same `LatestMessage` model is what the broadcaster stores, what the HTTP route
returns, and what the client validates, so both sides agree on the contract.
"""
from typing import Any
from datetime import datetime
from pydantic import BaseModel

# WHAT IS HAPPENING HERE:
# The one and only message a broadcaster remembers. `time` is milliseconds since
# epoch and doubles as the cursor clients send back as `lastMessageTime`.
class LatestMessage(BaseModel):
    message: Any = None
    time: int = 0

# The body a client gets when nothing has ever been broadcast on its topic.
NO_MESSAGE = LatestMessage(message=None, time=0)

class BroadcastRequest(BaseModel):
    message: Any

# WHAT IS HAPPENING HERE:
# The outcome of handing one message to one parked client. The fan-out loop
# collects these instead of letting a dead client's exception leak out.
class DeliveryResult(BaseModel):
    client_id: str
    delivered: bool
    error: str | None = None

class TopicStats(BaseModel):
    topic: str
    pending_long_polls: int
    last_message_time: int
    total_broadcasts: int
    total_delivered: int
    total_failed: int

class BroadcastStats(BaseModel):
    topics: list[TopicStats]
    uptime_s: float
    server_time: datetime
