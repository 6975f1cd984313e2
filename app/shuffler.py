"""Queue shuffle: randomize the user's Spotify queue with append + skip only.

Spotify has no reorder or delete for the playback queue, so the shuffle is
built from the three primitives in ``spotify_client``:

1. Append a sentinel track to mark the end of the user's queue.
2. Poll the queue until the sentinel shows up; the tracks before it are
   the user's queue, everything after it is auto-play.
3. Shuffle those tracks and append them again in the new order.
4. Skip past the currently playing track, the old tracks and the
   sentinel, so the shuffled block plays next.

Preconditions for callers: one operation per user at a time (two
interleaved runs corrupt each other's sentinel accounting), and a timeout
means the queue state is unknown, not restored.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from functools import partial
from typing import Callable, List, Optional, Protocol

from core.errors import (
    ConvergenceIncomplete,
    PartialRequeue,
    QueueShuffleError,
    QueueUnresolvable,
)
from core.models import QueueSnapshot, ShuffleResult
from core.shuffle import fisher_yates_shuffle, prefix_before_sentinel

logger = logging.getLogger(__name__)

DEFAULT_POLL_ATTEMPTS = 5

PermuteFn = Callable[[List[str]], List[str]]


class QueueBackend(Protocol):
    """What the shuffler needs from a queue client."""

    async def add_to_queue(self, uri: str) -> None: ...

    async def get_queue(self) -> QueueSnapshot: ...

    async def skip_next(self) -> None: ...


# ---------------------------------------------------------------------------
# Shuffle states
# ---------------------------------------------------------------------------

class ShuffleState(str, Enum):
    IDLE = "idle"
    SENTINEL_INJECTED = "sentinel_injected"
    SNAPSHOT_POLLING = "snapshot_polling"
    SNAPSHOT_CAPTURED = "snapshot_captured"
    SHUFFLED = "shuffled"
    REQUEUED = "requeued"
    SKIPPING_FORWARD = "skipping_forward"
    DONE = "done"
    FAILED = "failed"


class QueueShuffler:
    """Runs one queue shuffle against a ``QueueBackend``.

    An instance is single-use: build a new one per operation.
    """

    def __init__(
        self,
        client: QueueBackend,
        *,
        sentinel_uri: str,
        poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
        permute: Optional[PermuteFn] = None,
        rng: Optional[random.Random] = None,
    ):
        self._client = client
        self._sentinel = sentinel_uri
        self._poll_attempts = poll_attempts
        self._permute = permute or partial(fisher_yates_shuffle, rng=rng or random.Random())
        self.state = ShuffleState.IDLE
        self.error: Optional[QueueShuffleError] = None

    async def run(self) -> ShuffleResult:
        """Execute every phase in order.

        Raises
        ------
        QueueUnresolvable
            The sentinel never appeared in a snapshot.
        PartialRequeue
            An append of the shuffled tracks failed.
        ConvergenceIncomplete
            A skip failed before the shuffled block was reached.
        """
        if self.state != ShuffleState.IDLE:
            raise RuntimeError(f"QueueShuffler already used (state={self.state.value})")

        try:
            return await self._run()
        except QueueShuffleError as exc:
            self.state = ShuffleState.FAILED
            self.error = exc
            raise

    async def _run(self) -> ShuffleResult:
        await self._inject_sentinel()

        prefix, attempts = await self._capture_prefix()
        result = ShuffleResult(captured=list(prefix), poll_attempts=attempts)

        if not prefix:
            # Nothing to shuffle.  The sentinel stays in the queue.
            logger.info("Queue is empty, nothing to shuffle")
            result.sentinel_left_in_queue = True
            self.state = ShuffleState.DONE
            return result

        plan = self._permute(list(prefix))
        self.state = ShuffleState.SHUFFLED
        result.plan = plan

        result.appended = await self._requeue(plan)
        result.skipped = await self._skip_forward(len(prefix))

        self.state = ShuffleState.DONE
        logger.info("Shuffled %d tracks", len(plan))
        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _inject_sentinel(self) -> None:
        # A failed append here is not fatal: polling decides whether it landed.
        try:
            await self._client.add_to_queue(self._sentinel)
        except QueueShuffleError as exc:
            logger.warning("Sentinel append failed, polling anyway: %s", exc)
        self.state = ShuffleState.SENTINEL_INJECTED

    async def _capture_prefix(self) -> tuple[List[str], int]:
        """Poll the queue until the sentinel is visible.

        Returns the tracks before the sentinel and the number of attempts used.
        """
        self.state = ShuffleState.SNAPSHOT_POLLING
        for attempt in range(1, self._poll_attempts + 1):
            try:
                snapshot = await self._client.get_queue()
            except QueueShuffleError as exc:
                logger.warning("Error getting queue (attempt %d): %s", attempt, exc)
                continue

            prefix = prefix_before_sentinel(snapshot.uris, self._sentinel)
            if prefix is not None:
                logger.info("Captured %d queued tracks (attempt %d)", len(prefix), attempt)
                self.state = ShuffleState.SNAPSHOT_CAPTURED
                return prefix, attempt

            logger.warning("Sentinel not in queue yet (attempt %d)", attempt)

        raise QueueUnresolvable(self._poll_attempts)

    async def _requeue(self, plan: List[str]) -> int:
        for appended, uri in enumerate(plan):
            try:
                await self._client.add_to_queue(uri)
            except QueueShuffleError as exc:
                raise PartialRequeue(appended, len(plan)) from exc
        self.state = ShuffleState.REQUEUED
        return len(plan)

    async def _skip_forward(self, n: int) -> int:
        # Currently playing track + the n original tracks + the sentinel.
        required = n + 2
        self.state = ShuffleState.SKIPPING_FORWARD
        for skipped in range(required):
            try:
                await self._client.skip_next()
            except QueueShuffleError as exc:
                raise ConvergenceIncomplete(skipped, required) from exc
        return required
