import asyncio
import random
from typing import Callable, Awaitable
from loguru import logger
from datetime import datetime, timezone
import httpx

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    Keys: messages_received, empty_responses, reconnect_count,
          last_message_time, connected_at.
    """
    return {
        "messages_received": 0,
        "empty_responses": 0,
        "reconnect_count": 0,
        "last_message_time": 0,
        "connected_at": datetime.now(timezone.utc).isoformat()
    }

def backoff_delay(attempt: int, base_delay_s: float = 1.0, max_delay_s: float = 32.0) -> float:
    """Exponential backoff capped at `max_delay_s`, plus up to 10% jitter."""
    delay = min(base_delay_s * (2 ** attempt), max_delay_s)
    return delay + random.uniform(0, delay * 0.1)

async def with_reconnect(
    connect_fn: Callable[[], Awaitable[None]],
    stats: dict,
    duration_s: float,
    base_delay_s: float = 1.0,
    max_delay_s: float = 32.0,
    client_id: str = "unknown",
) -> None:
    """
    Calls `connect_fn` over and over until `duration_s` has elapsed.
    Network errors back off exponentially; a successful call resets the backoff.
    """
    loop = asyncio.get_running_loop()
    attempt = 0
    start_time = loop.time()

    while True:
        elapsed = loop.time() - start_time
        if elapsed >= duration_s:
            break

        try:
            # Cap each call at the remaining duration
            remaining = duration_s - elapsed
            await asyncio.wait_for(connect_fn(), timeout=remaining)
            attempt = 0
        except asyncio.TimeoutError:
            # Reached max duration normally
            break
        except (ConnectionError, OSError, httpx.HTTPError) as e:
            attempt += 1
            delay = backoff_delay(attempt, base_delay_s, max_delay_s)
            stats["reconnect_count"] += 1
            logger.warning(
                f"protocol=long_poll client_id={client_id} attempt={attempt} "
                f"delay={delay:.2f}s reason='{e}'"
            )
            remaining = duration_s - (loop.time() - start_time)
            if remaining > 0:
                try:
                    await asyncio.wait_for(asyncio.sleep(delay), timeout=remaining)
                except asyncio.TimeoutError:
                    break
