"""
MODULE OVERVIEW:
This module provides application-wide configuration using Pydantic Settings.
Where it fits: Server, CLI and client all read their knobs from here.

WHAT IS HAPPENING HERE:
Long polling has very few timings, but the ones it has matter: how long the
bundled client is willing to hold a request open and how fast the demo producer
talks. There is no server-side poll timeout: a parked request waits
for the next broadcast or for its client to hang up. Everything here can be
overridden with env vars or a `.env` file.
"""
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Topics
    DEFAULT_TOPIC: str = "default"

    # Demo producer
    DEMO_PRODUCER_ENABLED: bool = False
    DEMO_PRODUCER_INTERVAL_S: float = 5.0

    # Client
    CLIENT_TIMEOUT_S: float = 300.0

    class Config:
        env_file = ".env"
        # Tolerate missing env vars to allow easy out-of-the-box execution
        env_file_encoding = 'utf-8'
        extra = 'ignore'

settings = Settings()
