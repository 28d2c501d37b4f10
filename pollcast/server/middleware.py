"""
MODULE OVERVIEW:
ASGI middleware that stamps every HTTP response with its server-side duration.
Where it fits: wraps the whole app, so it sees every request first and last.

WHAT IS HAPPENING HERE:
The `X-Process-Time-Ms` header is added when the response starts. For a long
poll that number is how long the request sat parked.

Raw ASGI, not `BaseHTTPMiddleware`: parked routes must see the client's
`http.disconnect` on their own `receive`.
"""

import time
from loguru import logger

class TimingMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()

        async def send_with_timing(message):
            if message["type"] == "http.response.start":
                process_time_ms = (time.perf_counter() - start_time) * 1000
                headers = list(message.get("headers", []))
                headers.append((b"x-process-time-ms", f"{process_time_ms:.2f}".encode()))
                message = {**message, "headers": headers}

                # Polls already log connect/disconnect, keep them out of here
                if "/poll/" not in scope["path"]:
                    logger.debug(f"{scope['method']} {scope['path']} completed in {process_time_ms:.2f}ms")
            await send(message)

        await self.app(scope, receive, send_with_timing)
