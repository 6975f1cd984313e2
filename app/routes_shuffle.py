"""Queue shuffle routes: home page and ``POST /shuffle``.

The shuffle itself lives in ``app.shuffler``.  This layer owns what the
engine leaves to its caller:

- resolving the user's access token,
- one in-flight shuffle per user (concurrent runs corrupt each other),
- the optional deadline (a timeout means "outcome unknown").
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app.auth import get_valid_token
from app.config import get_settings
from app.shuffler import QueueShuffler
from app.spotify_client import QueueClient
from core.errors import QueueShuffleError
from core.models import ShuffleResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["shuffle"])

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))

# Key: spotify_user_id → lock held for the duration of one shuffle
_locks: dict[str, asyncio.Lock] = {}


def _get_user_id(request: Request) -> str:
    """Extract spotify_user_id from session or raise 401."""
    uid = request.session.get("spotify_user_id")
    if not uid:
        raise HTTPException(status_code=401, detail="Not logged in — please /login")
    return uid


def _build_shuffler(access_token: str) -> QueueShuffler:
    settings = get_settings()
    client = QueueClient(access_token, settle_delay=settings.settle_delay)
    return QueueShuffler(
        client,
        sentinel_uri=settings.sentinel_uri,
        poll_attempts=settings.queue_poll_attempts,
    )


async def _run_shuffle(user_id: str) -> ShuffleResult:
    """Run one shuffle for *user_id*, mapping failures to HTTP errors."""
    token = await get_valid_token(user_id)
    shuffler = _build_shuffler(token)
    timeout = get_settings().shuffle_timeout

    try:
        return await asyncio.wait_for(shuffler.run(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(
            "Shuffle for %s timed out after %ss in state %s",
            user_id,
            timeout,
            shuffler.state.value,
        )
        raise HTTPException(
            status_code=504,
            detail="Shuffle timed out, queue state is unknown",
        )
    except QueueShuffleError as exc:
        logger.error("Shuffle for %s failed: %s: %s", user_id, exc.tag, exc)
        raise HTTPException(status_code=500, detail=f"{exc.tag}: {exc}") from exc


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------

@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Home page with the shuffle button; redirects to /login when logged out."""
    uid = request.session.get("spotify_user_id")
    if not uid:
        return RedirectResponse("/login")
    return templates.TemplateResponse(request, "home.html", {"user_id": uid})


# ---------------------------------------------------------------------------
# POST /shuffle
# ---------------------------------------------------------------------------

@router.post("/shuffle", status_code=204)
async def shuffle(user_id: str = Depends(_get_user_id)):
    """Shuffle the logged-in user's Spotify queue.

    204 on success, 409 if a shuffle is already running for this user,
    500 on any shuffle failure, 504 if ``SHUFFLE_TIMEOUT`` expires.
    """
    lock = _locks.setdefault(user_id, asyncio.Lock())
    if lock.locked():
        raise HTTPException(status_code=409, detail="A shuffle is already running for this user")

    try:
        async with lock:
            result = await _run_shuffle(user_id)
    finally:
        # Requests never wait on the lock (409 instead), so it can go once released.
        _locks.pop(user_id, None)

    logger.info(
        "Shuffle for %s done: %d tracks, %d skips",
        user_id,
        len(result.plan),
        result.skipped,
    )
    return Response(status_code=204)
