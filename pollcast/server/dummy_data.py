"""
MODULE OVERVIEW:
An infinite background async generator that produces realistic fake data.

WHAT IS HAPPENING HERE:
In a real deployment the broadcaster is fed by application code (a webhook handler,
a CDC stream, a job finishing). For demos we simulate that with a metrics feed
so a `pollcast listen` session has something to show without a separate producer.
"""

import asyncio
import random
from datetime import datetime, timezone

async def system_metrics_generator(interval_s: float, source: str = "metrics"):
    """Emits CPU/Memory metrics every `interval_s` seconds."""
    cpu = 40.0
    mem = 60.0

    while True:
        cpu = max(0.0, min(100.0, cpu + random.uniform(-5.0, 5.0)))
        mem = max(0.0, min(100.0, mem + random.uniform(-2.0, 2.0)))

        yield {
            "source": source,
            "cpu_percent": round(cpu, 1),
            "memory_percent": round(mem, 1),
            "disk_io": random.randint(0, 1000),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        }
        await asyncio.sleep(interval_s)
