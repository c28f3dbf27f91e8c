"""
Wall clock used for TTL decisions.

Stores compare file modification times against this clock, so tests can
move time forward without touching the files.
"""

import time
from dataclasses import dataclass


class SystemClock:
    """Real time source (seconds since the epoch)."""

    def now(self) -> float:
        return time.time()


@dataclass
class ManualClock:
    """
    Controllable time source.

    In tests: start at a fixed instant and advance manually.
    """
    current: float = 0.0

    def now(self) -> float:
        """Get current timestamp without advancing."""
        return self.current

    def advance(self, seconds: float) -> float:
        """Advance clock by seconds and return the new time."""
        self.current += seconds
        return self.current


def is_expired(mtime: float, ttl: float, now: float) -> bool:
    """Age strictly exceeds TTL."""
    return now - mtime > ttl
