"""Capped exponential backoff for stream-listing failures.

When the storage account cannot be listed the scheduler has nothing to
do, and retrying immediately only adds load to a backend that is already
failing.  :class:`Backoff` grows the wait between attempts and resets once
a listing succeeds.

Usage::

    backoff = Backoff()
    try:
        streams = directory.list_streams()
        backoff.record_success()
    except ListError:
        cancel.wait(backoff.record_failure())
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

INITIAL_SECONDS = 1.0
MAX_SECONDS = 60.0
MULTIPLIER = 2.0
JITTER = 0.1  # ± fraction of the delay


@dataclass
class Backoff:
    """Tracks consecutive failures and the next delay to use.

    Attributes:
        initial:              Delay after the first failure.
        maximum:              Upper bound on any delay, jitter included.
        multiplier:           Growth factor per consecutive failure.
        jitter:               Random spread as a fraction of the delay.
        consecutive_failures: Failures since the last success.
        total_failures:       Failures since creation, for the run summary.
    """

    initial: float = INITIAL_SECONDS
    maximum: float = MAX_SECONDS
    multiplier: float = MULTIPLIER
    jitter: float = JITTER
    consecutive_failures: int = 0
    total_failures: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def record_failure(self) -> float:
        """Record a failure and return the delay in seconds before retrying."""
        self.consecutive_failures += 1
        self.total_failures += 1

        delay = min(
            self.initial * self.multiplier ** (self.consecutive_failures - 1),
            self.maximum,
        )
        delay += delay * self.jitter * self.rng.uniform(-1.0, 1.0)
        return min(max(delay, 0.0), self.maximum)

    def record_success(self) -> None:
        """Reset the delay after a successful attempt."""
        self.consecutive_failures = 0
