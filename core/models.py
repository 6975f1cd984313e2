"""Pydantic models shared across the application."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class QueueItem(BaseModel):
    """One entry of the ``GET /me/player/queue`` payload (track or episode)."""

    uri: str  # e.g. "spotify:track:6rqhFgbbKwnb9MLmUQDhG6"
    name: str = ""
    type: str = "track"

    model_config = {"extra": "ignore"}


class QueueResponse(BaseModel):
    """Wire shape of ``GET /me/player/queue``."""

    currently_playing: Optional[QueueItem] = None
    queue: List[QueueItem] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class QueueSnapshot(BaseModel):
    """What the remote reports as coming next, as plain track references.

    Includes auto-play suggestions after the user's real queue; callers
    must cut it at the sentinel.
    """

    currently_playing: Optional[str] = None
    uris: List[str] = Field(default_factory=list)

    @classmethod
    def from_response(cls, resp: QueueResponse) -> "QueueSnapshot":
        return cls(
            currently_playing=resp.currently_playing.uri if resp.currently_playing else None,
            uris=[item.uri for item in resp.queue],
        )


class ShuffleResult(BaseModel):
    """Summary of one completed queue shuffle."""

    captured: List[str] = Field(default_factory=list)  # prefix before the sentinel
    plan: List[str] = Field(default_factory=list)  # order the tracks were re-appended in
    appended: int = 0
    skipped: int = 0
    poll_attempts: int = 0
    sentinel_left_in_queue: bool = False
