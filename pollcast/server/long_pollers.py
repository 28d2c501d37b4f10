"""
MODULE OVERVIEW:
The long-poll broadcaster. This file is the heart of pollcast.

WHAT IS HAPPENING HERE:
A broadcaster remembers exactly one message (the latest) and a pool of parked
requests. A poll comes in carrying the time of the last message its client saw:

  - If that time differs from ours, the client is behind. Answer it right now
    with the latest message (catch-up). Nothing is parked.
  - If it matches, the client is up to date. Park its handle in the pool.

When `broadcast()` is called the new message replaces the old one, the pool is
drained in one go, and every parked handle gets the message. Clients then poll
again with the new time and get parked until the next broadcast.

Real-world application: the "has anything changed?" endpoint behind chat rooms,
build dashboards and live scoreboards that predate WebSockets.
"""

import threading
import time
from typing import Callable, Dict, List, Set
from loguru import logger

from pollcast.server.response_handle import PendingResponse
from pollcast.shared.models import DeliveryResult, LatestMessage, NO_MESSAGE


def epoch_ms() -> int:
    return int(time.time() * 1000)


class LongPollBroadcaster:
    """Latest-message broadcaster with a pool of parked long-poll handles.

    One instance per topic, created by the app and passed by reference to the
    routes and producers that use it. Pool and latest-message updates share a
    single lock; delivery runs outside it, on a snapshot of the pool.
    """

    def __init__(self, topic: str = "default", clock: Callable[[], int] = epoch_ms):
        self.topic = topic
        self._clock = clock
        self._lock = threading.RLock()
        self._latest: LatestMessage | None = None
        self._pool: Set[PendingResponse] = set()

        self.total_broadcasts = 0
        self.total_delivered = 0
        self.total_failed = 0

    @property
    def last_message(self) -> LatestMessage | None:
        return self._latest

    @property
    def last_message_time(self) -> int:
        return self._latest.time if self._latest else 0

    @property
    def pending_count(self) -> int:
        return len(self._pool)

    def _next_time(self) -> int:
        # Strictly increasing, so two broadcasts in the same millisecond (or a
        # clock stepping backwards) can never hand out a time a client already holds.
        return max(self._clock(), self.last_message_time + 1)

    # ==========================
    # PRODUCER SIDE
    # ==========================
    def broadcast(self, payload) -> None:
        with self._lock:
            self._latest = LatestMessage(message=payload, time=self._next_time())
            latest = self._latest
            waiting = list(self._pool)
            self._pool.clear()
            self.total_broadcasts += 1

        results = [self._deliver(handle, latest) for handle in waiting]

        delivered = sum(1 for r in results if r.delivered)
        failed = len(results) - delivered
        with self._lock:
            self.total_delivered += delivered
            self.total_failed += failed

        logger.info(
            f"topic={self.topic} protocol=long_poll event=broadcast "
            f"time={latest.time} delivered={delivered} failed={failed}"
        )

    def _deliver(self, handle: PendingResponse, latest: LatestMessage) -> DeliveryResult:
        try:
            handle.json(latest)
        except Exception as e:
            logger.warning(f"client_id={handle.client_id} protocol=long_poll event=error reason='{e}'")
            # A handle we could not write to is as good as disconnected
            handle.fail(str(e))
            return DeliveryResult(client_id=handle.client_id, delivered=False, error=str(e))
        return DeliveryResult(client_id=handle.client_id, delivered=True)

    # ==========================
    # CONSUMER SIDE
    # ==========================
    def subscribe(self, last_seen_time: int, handle: PendingResponse) -> bool:
        """Answer `handle` now if its client is behind, otherwise park it.

        Returns True when the handle was parked.
        """
        with self._lock:
            if last_seen_time != self.last_message_time:
                answer = self._latest or NO_MESSAGE
            elif handle.done:
                # Closed before we got to it, parking would orphan it
                logger.debug(f"client_id={handle.client_id} protocol=long_poll event=skip reason=already_{handle.state}")
                return False
            else:
                answer = None
                self._park(handle)

        if answer is None:
            logger.debug(
                f"client_id={handle.client_id} protocol=long_poll event=wait "
                f"reason=up_to_date time={last_seen_time}"
            )
            return True

        logger.debug(
            f"client_id={handle.client_id} protocol=long_poll event=catch_up "
            f"seen={last_seen_time} current={answer.time}"
        )
        result = self._deliver(handle, answer)
        if not result.delivered:
            with self._lock:
                self.total_failed += 1
        return False

    def _park(self, handle: PendingResponse) -> None:
        def connection_ended(h: PendingResponse) -> None:
            h.remove_listener("finish", connection_ended)
            h.remove_listener("close", connection_ended)
            with self._lock:
                # Already gone if a broadcast drained it first
                self._pool.discard(h)

        self._pool.add(handle)
        # finished after a response, or closed while still parked
        handle.on("finish", connection_ended)
        handle.on("close", connection_ended)


class BroadcasterRegistry:
    """Owns one LongPollBroadcaster per topic for the lifetime of the app."""

    def __init__(self, clock: Callable[[], int] = epoch_ms):
        self._clock = clock
        self._lock = threading.Lock()
        self._broadcasters: Dict[str, LongPollBroadcaster] = {}

    def get(self, topic: str) -> LongPollBroadcaster:
        with self._lock:
            if topic not in self._broadcasters:
                self._broadcasters[topic] = LongPollBroadcaster(topic, clock=self._clock)
                logger.info(f"topic={topic} event=created")
            return self._broadcasters[topic]

    def all(self) -> List[LongPollBroadcaster]:
        with self._lock:
            return list(self._broadcasters.values())
