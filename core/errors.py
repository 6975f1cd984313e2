"""Failure taxonomy for a queue shuffle.

Every exception carries a short ``tag`` that the web layer puts into the
error detail.  Client-level errors (unreachable / rejected / malformed)
are raised by ``app.spotify_client``; the rest by ``app.shuffler``.
"""

from __future__ import annotations


class QueueShuffleError(Exception):
    """Base class for every failure of a shuffle operation."""

    tag = "QueueShuffleError"


# ---------------------------------------------------------------------------
# Remote call failures
# ---------------------------------------------------------------------------

class RemoteUnreachable(QueueShuffleError):
    """Transport-level failure (DNS, connect, timeout, …)."""

    tag = "RemoteUnreachable"


class RemoteRejected(QueueShuffleError):
    """The remote answered with a status that is not a success for the call."""

    tag = "RemoteRejected"

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Spotify API error {status_code}: {detail}")


class MalformedResponse(QueueShuffleError):
    """The queue body could not be parsed into the expected shape."""

    tag = "MalformedResponse"


# ---------------------------------------------------------------------------
# Operation failures
# ---------------------------------------------------------------------------

class QueueUnresolvable(QueueShuffleError):
    """The sentinel was never seen in a queue snapshot."""

    tag = "QueueUnresolvable"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Sentinel not found in queue after {attempts} attempts")


class PartialRequeue(QueueShuffleError):
    """Appending the shuffled tracks stopped part-way; the queue is inconsistent."""

    tag = "PartialRequeue"

    def __init__(self, appended: int, total: int):
        self.appended = appended
        self.total = total
        super().__init__(f"Re-queued {appended} of {total} tracks before failing")


class ConvergenceIncomplete(QueueShuffleError):
    """Skipping past the old queue stopped before the shuffled block was reached."""

    tag = "ConvergenceIncomplete"

    def __init__(self, skipped: int, required: int):
        self.skipped = skipped
        self.required = required
        super().__init__(f"Skipped {skipped} of {required} tracks before failing")
