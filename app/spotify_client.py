"""Spotify Player API queue client.

Wraps the only three queue primitives Spotify offers:
  - append a track to the end of the queue
  - read the queue
  - skip to the next track

Every call is followed by a fixed settling delay.  Spotify acknowledges
queue writes before they become visible in ``GET /me/player/queue``, so
each result is only trusted after the delay.  The delay is unconditional
and is not an error backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from core.errors import MalformedResponse, RemoteRejected, RemoteUnreachable
from core.models import QueueResponse, QueueSnapshot

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_CONNECT_TIMEOUT = 10.0  # seconds
_READ_TIMEOUT = 30.0
_DEFAULT_SETTLE_DELAY = 1.0  # seconds

_SPOTIFY_API = "https://api.spotify.com"

SleepFn = Callable[[float], Awaitable[None]]


class QueueClient:
    """Authenticated access to one user's playback queue.

    Parameters
    ----------
    access_token : str
        Bearer token borrowed from the auth layer for one operation.
    base_url : str
        Override for tests. Defaults to ``https://api.spotify.com``.
    settle_delay : float
        Seconds to wait after every request.
    sleep : callable
        Awaitable sleep used for the settling delay (``asyncio.sleep``).
    transport : httpx.AsyncBaseTransport, optional
        Forwarded to ``httpx.AsyncClient``; tests pass ``httpx.MockTransport``.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = _SPOTIFY_API,
        settle_delay: float = _DEFAULT_SETTLE_DELAY,
        sleep: SleepFn = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._access_token = access_token
        self._base_url = base_url
        self._settle_delay = settle_delay
        self._sleep = sleep
        self._transport = transport

    # ------------------------------------------------------------------
    # Low-level
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request, then wait out the settling delay.

        Raises ``RemoteUnreachable`` on any request failure (transport,
        body decoding, redirect loops).  Status codes are left to the caller.
        """
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._access_token}"}
        timeout = httpx.Timeout(_READ_TIMEOUT, connect=_CONNECT_TIMEOUT)

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("Request error on %s %s: %s", method, path, exc)
            raise RemoteUnreachable(f"{method} {path}: {exc}") from exc
        finally:
            await self._sleep(self._settle_delay)

        logger.debug("%s %s → %d", method, path, resp.status_code)
        return resp

    # ------------------------------------------------------------------
    # Queue primitives
    # ------------------------------------------------------------------

    async def add_to_queue(self, uri: str) -> None:
        """Append *uri* to the end of the user's queue.  Only 204 is success."""
        resp = await self._request("POST", "/v1/me/player/queue", params={"uri": uri})
        if resp.status_code != 204:
            logger.warning("Queue POST failed for %s: %d", uri, resp.status_code)
            raise RemoteRejected(resp.status_code, resp.text)

    async def get_queue(self) -> QueueSnapshot:
        """Return the queue as currently reported by Spotify."""
        resp = await self._request("GET", "/v1/me/player/queue")
        if resp.status_code != 200:
            logger.warning("Queue GET failed: %d", resp.status_code)
            raise RemoteRejected(resp.status_code, resp.text)

        try:
            parsed = QueueResponse.model_validate(resp.json())
        except (json.JSONDecodeError, ValidationError) as exc:
            raise MalformedResponse(f"Unexpected queue body: {exc}") from exc
        return QueueSnapshot.from_response(parsed)

    async def skip_next(self) -> None:
        """Skip to the next track.  Spotify answers 202 or 204 depending on state."""
        resp = await self._request("POST", "/v1/me/player/next")
        if resp.status_code not in (202, 204):
            logger.warning("Skip POST failed: %d", resp.status_code)
            raise RemoteRejected(resp.status_code, resp.text)
