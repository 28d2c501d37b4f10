"""
CLI entrypoint for pollcast.
"""
import sys
import json
import asyncio
import typer
from loguru import logger

from pollcast.client.long_poll_client import LongPollClient
from pollcast.client.visualizer import Visualizer
from pollcast.shared.config import settings

app = typer.Typer(help="pollcast: long-polling broadcast server and client")

def _base_url() -> str:
    return f"http://127.0.0.1:{settings.PORT}"

def parse_message(raw: str):
    """JSON if it parses, otherwise the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw

@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="Log level for pollcast's own logs")):
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())

@app.command()
def server():
    """Start the FastAPI backend server using Uvicorn."""
    import uvicorn
    typer.echo(f"Starting server on {settings.HOST}:{settings.PORT}...")
    uvicorn.run("pollcast.server.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())

@app.command()
def listen(
    duration: float = typer.Option(60.0, help="Duration to listen in seconds"),
    topic: str = typer.Option(settings.DEFAULT_TOPIC, help="Topic to long-poll"),
):
    """Long-poll a topic and show every message in a live feed."""
    c = LongPollClient("cli_listener", _base_url(), topic=topic)
    visualizer = Visualizer(c)
    try:
        asyncio.run(visualizer.run(duration))
    except KeyboardInterrupt:
        pass

@app.command()
def publish(
    message: str = typer.Argument(..., help="Message to broadcast, JSON or plain text"),
    topic: str = typer.Option(settings.DEFAULT_TOPIC, help="Topic to broadcast on"),
):
    """Broadcast a message to everyone waiting on a topic."""
    async def _publish():
        c = LongPollClient("cli_publisher", _base_url(), topic=topic)
        try:
            return await c.publish(parse_message(message))
        finally:
            await c.disconnect()

    latest = asyncio.run(_publish())
    typer.echo(latest.model_dump_json())

@app.command()
def stats():
    """Query the server for live broadcaster stats."""
    import httpx
    resp = httpx.get(f"{_base_url()}/stats")
    typer.echo(resp.json())

if __name__ == "__main__":
    app()
