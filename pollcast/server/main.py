"""
MODULE OVERVIEW:
The FastAPI application factory.

WHAT IS HAPPENING HERE:
`create_app()` builds the app together with the `BroadcasterRegistry` it owns and
stores the registry on `app.state`. Routes reach it through a dependency, and the
demo producer is handed it by reference, so there is no module-level broadcaster
to share by accident between apps or tests.

We use a `lifespan` context manager for the optional demo producer. When Uvicorn
starts the server we spawn it with `asyncio.create_task`; on shutdown we cancel it.
"""

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from loguru import logger

from pollcast.server.dummy_data import system_metrics_generator
from pollcast.server.long_pollers import BroadcasterRegistry
from pollcast.server.middleware import TimingMiddleware
from pollcast.server.routes import broadcast, long_polling
from pollcast.shared.config import settings
from pollcast.shared.models import BroadcastStats, TopicStats
from pollcast.shared.route_utils import get_registry

async def generator_runner(generator, registry: BroadcasterRegistry, topic: str):
    """Consumes a data generator and broadcasts every item on `topic`."""
    broadcaster = registry.get(topic)
    try:
        async for payload in generator:
            broadcaster.broadcast(payload)
    except asyncio.CancelledError:
        logger.debug(f"topic={topic} event=producer_cancelled")
    except Exception as e:
        logger.error(f"topic={topic} event=producer_error reason='{e}'")

@asynccontextmanager
async def lifespan(app: FastAPI):
    # STARTUP
    logger.info("pollcast server starting up...")
    background_tasks = set()

    if settings.DEMO_PRODUCER_ENABLED:
        gen = system_metrics_generator(settings.DEMO_PRODUCER_INTERVAL_S)
        task = asyncio.create_task(generator_runner(gen, app.state.registry, settings.DEFAULT_TOPIC))
        background_tasks.add(task)
        logger.info(f"Started demo producer on topic={settings.DEFAULT_TOPIC}.")

    yield

    # SHUTDOWN
    logger.info("Server shutting down. Cancelling background tasks...")
    for task in background_tasks:
        task.cancel()

    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)
    logger.info("Shutdown complete.")


def create_app(registry: BroadcasterRegistry | None = None) -> FastAPI:
    app = FastAPI(
        title="pollcast",
        description="Long-polling broadcast of the latest message",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.registry = registry or BroadcasterRegistry()
    app.state.started_at = datetime.now(timezone.utc)

    # Add Middlewares
    app.add_middleware(TimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Route registrations
    app.include_router(long_polling.router, tags=["Long Polling"])
    app.include_router(broadcast.router, tags=["Long Polling"])

    @app.get("/healthz", tags=["Ops"])
    async def health_check():
        return {"status": "ok"}

    @app.get("/stats", tags=["Ops"], response_model=BroadcastStats)
    async def get_stats(registry: BroadcasterRegistry = Depends(get_registry)):
        now = datetime.now(timezone.utc)
        return BroadcastStats(
            topics=[
                TopicStats(
                    topic=b.topic,
                    pending_long_polls=b.pending_count,
                    last_message_time=b.last_message_time,
                    total_broadcasts=b.total_broadcasts,
                    total_delivered=b.total_delivered,
                    total_failed=b.total_failed,
                )
                for b in registry.all()
            ],
            uptime_s=(now - app.state.started_at).total_seconds(),
            server_time=now,
        )

    return app

app = create_app()
