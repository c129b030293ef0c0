"""Retry backoff and refresh health tracking."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


class _RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


@dataclass
class BackoffPolicy:
    """Truncated exponential backoff with jitter.

    The delay grows quadratically with the retry attempt on top of the base
    polling interval, and the extra wait is capped at twenty base intervals.
    See https://cloud.google.com/storage/docs/exponential-backoff.
    """

    max_multiplier: int = 20
    rng: _RandomSource = field(default_factory=random.Random)

    def extra_delay(self, retry_attempt: int, base_interval_seconds: float) -> float:
        """Return the jittered wait added to the base interval."""

        n = max(retry_attempt, 1)
        return min((n - 1) ** 2 + self.rng.uniform(0.0, 1.0), base_interval_seconds * self.max_multiplier)

    def next_delay(self, retry_attempt: int, base_interval_seconds: float) -> float:
        """Calculate the total delay before the next poll after a failure."""

        return base_interval_seconds + self.extra_delay(retry_attempt, base_interval_seconds)


@dataclass
class RefreshHealth:
    """Mutable health status for the refresh loop."""

    status: str = "starting"
    failures: int = 0
    last_error: Optional[str] = None
    last_success: Optional[float] = None
    last_failure: Optional[float] = None
    next_delay: Optional[float] = None

    def record_success(self, next_delay: float) -> None:
        self.status = "ok"
        self.failures = 0
        self.last_error = None
        self.last_success = time.time()
        self.next_delay = next_delay

    def record_failure(self, error: BaseException, next_delay: float) -> None:
        self.status = "degraded"
        self.failures += 1
        self.last_error = str(error) or type(error).__name__
        self.last_failure = time.time()
        self.next_delay = next_delay

    def as_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "failures": self.failures,
            "last_error": self.last_error,
            "last_success": self.last_success,
            "last_failure": self.last_failure,
            "next_delay": self.next_delay,
        }
