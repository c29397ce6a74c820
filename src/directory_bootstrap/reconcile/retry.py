"""
Bounded visibility polling.

Directory writes replicate asynchronously. A create followed immediately by a
dependent read must not assume the object is visible, so the engine re-reads
at a fixed interval until it appears or the attempt budget runs out.

The wait between attempts blocks the calling thread, but it waits on a
threading.Event rather than sleeping, so another thread can cancel a stuck
poll by setting RetryPolicy.cancel.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from directory_bootstrap.core.errors import LookupFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for visibility polling.

    max_attempts
    Number of visibility checks, including the first one.

    interval_seconds
    Wait between checks. The defaults give roughly ten minutes.

    cancel
    Set this event to abort the current poll and the rest of the run.
    """

    max_attempts: int = 60
    interval_seconds: float = 10.0
    cancel: threading.Event = field(default_factory=threading.Event, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def wait(self) -> bool:
        """Block for one interval. Return True if the policy was cancelled."""
        return self.cancel.wait(self.interval_seconds)


@dataclass(frozen=True)
class PollOutcome:
    """
    Result of one bounded poll.

    attempts
    Number of checks actually made.

    last_error
    Message of the last failed lookup, if any check raised LookupFailed.
    """

    visible: bool
    attempts: int
    cancelled: bool = False
    last_error: str = ""


def poll_until_visible(
    check: Callable[[], bool],
    policy: RetryPolicy,
    label: str = "object",
) -> PollOutcome:
    """
    Call check until it returns True, the budget is exhausted, or the policy
    is cancelled.

    A LookupFailed raised by check counts as not visible yet.
    """

    last_error = ""
    for attempt in range(1, policy.max_attempts + 1):
        if policy.cancelled:
            return PollOutcome(visible=False, attempts=attempt - 1, cancelled=True, last_error=last_error)

        try:
            if check():
                logger.debug("%s visible after %d attempt(s)", label, attempt)
                return PollOutcome(visible=True, attempts=attempt, last_error=last_error)
        except LookupFailed as exc:
            last_error = str(exc)

        logger.debug("%s not visible yet, attempt %d of %d", label, attempt, policy.max_attempts)

        if attempt < policy.max_attempts and policy.wait():
            return PollOutcome(visible=False, attempts=attempt, cancelled=True, last_error=last_error)

    return PollOutcome(visible=False, attempts=policy.max_attempts, last_error=last_error)
