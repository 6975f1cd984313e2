"""Application settings loaded from .env via pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration — values come from environment / .env file."""

    # Spotify
    spotify_client_id: str = ""

    # App
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"
    log_level: str = "INFO"

    # Database
    db_path: str = "./data/queue_shuffle.db"

    # Queue shuffle
    # Marks the end of the user's queue; anything after it is auto-play.
    sentinel_uri: str = "spotify:track:5zOKuItOTZhRCGtPrDYmlj"
    settle_delay: float = 1.0  # seconds after every Player API call
    queue_poll_attempts: int = 5
    shuffle_timeout: Optional[float] = None  # seconds; None = no deadline

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def db_abs_path(self) -> Path:
        """Return the database path as an absolute Path, creating parents if needed."""
        p = Path(self.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p.resolve()


@lru_cache
def get_settings() -> Settings:
    """Cached singleton so .env is read only once."""
    return Settings()
