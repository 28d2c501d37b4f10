"""
MODULE OVERVIEW:
The Rich terminal feed for `pollcast listen`.

WHAT IS HAPPENING HERE:
The client runs in the background; every message it receives is pushed here
through its callback and the Live layout is redrawn a few times per second.
"""

from rich.live import Live
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from collections import deque
from datetime import datetime
import asyncio
import json

from pollcast.client.long_poll_client import LongPollClient
from pollcast.shared.models import LatestMessage

class Visualizer:
    def __init__(self, client: LongPollClient):
        self.client = client
        self.recent_messages = deque(maxlen=10)

    def on_message(self, latest: LatestMessage):
        ts = datetime.now().strftime("%H:%M:%S")
        payload_str = json.dumps(latest.message, default=str)
        if len(payload_str) > 60:
            payload_str = payload_str[:60] + "..."
        self.recent_messages.appendleft((ts, str(latest.time), payload_str))

    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_row(
            Layout(name="feed", ratio=3),
            Layout(name="stats", ratio=1)
        )

        table = Table(title=f"Topic: {self.client.topic}", expand=True)
        table.add_column("Received", justify="left", style="cyan", no_wrap=True)
        table.add_column("Time (ms)", style="magenta")
        table.add_column("Message", style="green")

        for row in self.recent_messages:
            table.add_row(*row)

        layout["feed"].update(Panel(table, title="Feed"))

        stats = self.client.stats
        stats_text = (
            f"Messages Received: {stats['messages_received']}\n"
            f"Reconnects: {stats['reconnect_count']}\n"
            f"Empty Responses: {stats['empty_responses']}\n"
            f"Last Time: {stats['last_message_time']}"
        )
        layout["stats"].update(Panel(stats_text, title="Connection Stats"))

        return layout

    async def run(self, duration_s: float):
        async def message_hook(m): self.on_message(m)

        self.client.set_callback(message_hook)
        client_task = asyncio.create_task(self.client.run(duration_s))

        with Live(self.generate_layout(), refresh_per_second=4) as live:
            while not client_task.done():
                live.update(self.generate_layout())
                await asyncio.sleep(0.25)
            live.update(self.generate_layout())
